"""
Errors raised by the tender extraction package.

Inside the extraction cascade a failed completion call is a
``CompletionStatus``, never an exception. What is raised here are the
conditions a caller has to act on: missing credentials, unreadable input
and bad lookups.

    ExtractionError
    ├── BackendError
    │   └── BackendNotConfiguredError
    ├── PDFError
    │   ├── PDFNotFoundError
    │   └── PDFCorruptedError
    ├── DocumentNotFoundError
    └── UnknownTaskError

Example:
    try:
        result = service.extract_file("tender.pdf", "tender_summary")
    except BackendNotConfiguredError as e:
        sys.exit(f"configure the {e.backend} backend first")
    except PDFError as e:
        log.error(format_error_chain(e))
"""

from __future__ import annotations

from typing import Iterator, Optional, Sequence


class ExtractionError(Exception):
    """
    Root of the package's exception tree.

    ``str(error)`` is the message, followed by ``" | Details: ..."`` when
    technical details are attached.
    """

    def __init__(self, message: str = "Extraction failed", details: Optional[str] = None):
        self.message = message
        self.details = details
        text = f"{message} | Details: {details}" if details else message
        super().__init__(text)


# =============================================================================
# COMPLETION BACKEND
# =============================================================================


class BackendError(ExtractionError):
    """A completion backend cannot be used at all."""


class BackendNotConfiguredError(BackendError):
    """
    The backend has no client or credentials.

    Raised once at the start of a run; no completion call is made.
    """

    def __init__(self, backend: str = "completion", details: Optional[str] = None):
        self.backend = backend
        super().__init__(f"{backend} backend is not configured", details)


# =============================================================================
# INPUT DOCUMENTS
# =============================================================================


class PDFError(ExtractionError):
    """A PDF could not be turned into page texts. ``path`` names the input."""

    def __init__(self, message: str, path: Optional[str] = None, details: Optional[str] = None):
        self.path = path
        super().__init__(f"{message} [{path}]" if path else message, details)


class PDFNotFoundError(PDFError):
    def __init__(self, path: str):
        super().__init__(f"No such PDF: {path}", path=path)


class PDFCorruptedError(PDFError):
    """PyMuPDF refused the data; ``original_error`` keeps its exception."""

    def __init__(self, path: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(
            f"Cannot read PDF: {path}",
            path=path,
            details=str(original_error) if original_error else None,
        )


# =============================================================================
# LOOKUPS
# =============================================================================


class DocumentNotFoundError(ExtractionError):
    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class UnknownTaskError(ExtractionError):
    """No extraction task is registered under ``task``."""

    def __init__(self, task: str, available: Optional[Sequence[str]] = None):
        self.task = task
        self.available = list(available or [])
        details = f"available tasks: {', '.join(self.available)}" if self.available else None
        super().__init__(f"Unknown extraction task: {task}", details)


# =============================================================================
# REPORTING
# =============================================================================


def _chain(error: BaseException) -> Iterator[BaseException]:
    current: Optional[BaseException] = error
    while current is not None:
        yield current
        current = getattr(current, "original_error", None) or current.__cause__


def format_error_chain(error: BaseException) -> str:
    """
    Render an error and the errors behind it, one per line.

    Follows ``original_error`` where present, otherwise ``__cause__``::

        PDFCorruptedError: Cannot read PDF: a.pdf [a.pdf] | Details: ...
          └─ FileDataError: cannot open document
    """
    return "\n".join(
        f"{'  ' * depth}{'└─ ' if depth else ''}{type(err).__name__}: {err}"
        for depth, err in enumerate(_chain(error))
    )
