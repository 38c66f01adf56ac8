"""
Page text extraction via PyMuPDF.

Produces the ordered list of per-page plain text that the pipeline consumes.
Page order and numbering are preserved, so blank pages stay in the list as
empty strings. A document without any selectable text yields no pages.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

import fitz  # PyMuPDF

from .exceptions import PDFCorruptedError, PDFNotFoundError

logger = logging.getLogger(__name__)

PdfSource = Union[str, Path, bytes]


@dataclass
class PdfText:
    """Text content of one PDF."""

    name: str
    pages: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    @property
    def page_count(self) -> int:
        return len(self.pages)


def clean_page_text(text: str) -> str:
    if not text:
        return ""
    cleaned = text.replace("\r\n", "\n").replace("\r", "\n")
    # "submis-\nsion" -> "submission"
    cleaned = re.sub(r"(?<=\w)-\n(?=\w)", "", cleaned)
    cleaned = re.sub(r"[ \t]+", " ", cleaned)
    cleaned = re.sub(r" *\n *", "\n", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def _open(source: PdfSource, name: str) -> fitz.Document:
    try:
        if isinstance(source, bytes):
            return fitz.open(stream=source, filetype="pdf")
        return fitz.open(source)
    except (RuntimeError, ValueError) as e:
        raise PDFCorruptedError(name, e) from e


def read_pdf(source: PdfSource, name: str | None = None) -> PdfText:
    """
    Read every page's text from a PDF.

    Args:
        source: File path or raw PDF bytes
        name: Display name used in errors and logs (defaults to the path)

    Returns:
        PdfText; ``pages`` is empty when the PDF has no selectable text

    Raises:
        PDFNotFoundError: If a path is given and does not exist
        PDFCorruptedError: If the data cannot be opened as a PDF
    """
    if not isinstance(source, bytes):
        path = Path(source)
        name = name or str(path)
        if not path.exists():
            raise PDFNotFoundError(str(path))
    else:
        name = name or "<upload>"
        if not source:
            raise PDFCorruptedError(name, ValueError("empty file"))

    with _open(source, name) as doc:
        try:
            pages = [clean_page_text(page.get_text("text")) for page in doc]
        except (RuntimeError, ValueError) as e:
            raise PDFCorruptedError(name, e) from e
        metadata = {
            key: value
            for key, value in (doc.metadata or {}).items()
            if value
        }

    if not any(pages):
        logger.warning(f"No extractable text in {name} ({len(pages)} pages)")
        pages = []
    else:
        logger.info(f"Extracted text from {len(pages)} pages of {name}")

    return PdfText(name=name, pages=pages, metadata=metadata)


def extract_pages(source: PdfSource) -> list[str]:
    """Ordered page texts of a PDF; empty when it has no selectable text."""
    return read_pdf(source).pages
