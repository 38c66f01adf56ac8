"""
Extraction service: document registry plus task execution.

The registry keeps uploaded documents' page texts in process memory only.
Documents are keyed by a hash of their bytes, so uploading the same PDF
twice returns the same id.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Union

from .backend import CompletionBackend, create_backend
from .config import ServiceConfig
from .exceptions import DocumentNotFoundError
from .models import PipelineConfig, PipelineResult
from .orchestrator import ExtractionPipeline
from .pdf_pages import PdfText, read_pdf
from .tasks import get_task

logger = logging.getLogger(__name__)


@dataclass
class StoredDocument:
    document_id: str
    filename: str
    pages: list[str]
    metadata: dict[str, Any] = field(default_factory=dict)
    size_bytes: int = 0
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def info(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "filename": self.filename,
            "pages": len(self.pages),
            "size_bytes": self.size_bytes,
            "metadata": self.metadata,
            "uploaded_at": self.uploaded_at.isoformat(),
        }


class DocumentRegistry:
    """Thread-safe in-memory map of document id to page texts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._documents: dict[str, StoredDocument] = {}

    @staticmethod
    def make_id(content: bytes) -> str:
        return hashlib.md5(content).hexdigest()[:16]

    def add(self, content: bytes, pdf: PdfText, filename: str) -> StoredDocument:
        document = StoredDocument(
            document_id=self.make_id(content),
            filename=filename,
            pages=list(pdf.pages),
            metadata=dict(pdf.metadata),
            size_bytes=len(content),
        )
        with self._lock:
            self._documents[document.document_id] = document
        return document

    def get(self, document_id: str) -> StoredDocument:
        with self._lock:
            document = self._documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def remove(self, document_id: str) -> StoredDocument:
        with self._lock:
            document = self._documents.pop(document_id, None)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def documents(self) -> list[StoredDocument]:
        with self._lock:
            return list(self._documents.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)


class ExtractionService:
    def __init__(
        self,
        config: ServiceConfig | None = None,
        backend: Optional[CompletionBackend] = None,
        registry: Optional[DocumentRegistry] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.config = config or ServiceConfig.from_env()
        self.backend = backend or create_backend(
            self.config.backend,
            api_key=self.config.openai_api_key,
            ollama_base_url=self.config.ollama_base_url,
        )
        self.registry = registry or DocumentRegistry()
        self._sleep = sleep

    @property
    def pipeline_config(self) -> PipelineConfig:
        return self.config.pipeline

    def pipeline(self, task_name: str) -> ExtractionPipeline[Any]:
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        return ExtractionPipeline(
            self.backend, get_task(task_name), self.pipeline_config, **kwargs
        )

    def register(self, content: bytes, filename: str) -> StoredDocument:
        pdf = read_pdf(content, name=filename)
        document = self.registry.add(content, pdf, filename)
        logger.info(
            f"Registered {filename} as {document.document_id} ({len(document.pages)} pages)"
        )
        return document

    def extract_pages(self, pages: list[str], task_name: str) -> PipelineResult:
        return self.pipeline(task_name).run(pages)

    def extract_document(self, document_id: str, task_name: str) -> PipelineResult:
        task = get_task(task_name)
        document = self.registry.get(document_id)
        logger.info(f"Running {task.name} on {document.filename} ({document_id})")
        return self.extract_pages(document.pages, task.name)

    def extract_bytes(self, content: bytes, filename: str, task_name: str) -> PipelineResult:
        get_task(task_name)
        pdf = read_pdf(content, name=filename)
        return self.extract_pages(pdf.pages, task_name)

    def extract_file(self, pdf_path: Union[str, Path], task_name: str) -> PipelineResult:
        get_task(task_name)
        pdf = read_pdf(pdf_path)
        return self.extract_pages(pdf.pages, task_name)
