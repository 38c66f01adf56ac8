"""
Tender Extraction - Structured data from tender PDFs.

Runs one of three extraction tasks (section-wise analysis, tender summary,
scope of work) over the page texts of a tender document. Every run falls
through a cascade of strategies until one yields a usable result:

    1. One call over the whole document with the primary model
    2. The same call with the secondary model
    3. Overlapping page chunks with retries and an early stop
    4. Model aggregation of the chunk results, or a deterministic merge

Quick Start:
    from tender_extraction import ExtractionService

    service = ExtractionService()
    result = service.extract_file("tender.pdf", "tender_summary")

    print(result.mode)     # e.g. PipelineMode.SINGLE_PRIMARY
    print(result.final)    # task-specific JSON data
    result.save("tender_summary.json")

With an explicit backend:
    from tender_extraction import ExtractionPipeline, OllamaBackend, get_task

    pipeline = ExtractionPipeline(OllamaBackend(), get_task("sections"))
    result = pipeline.run(pages)

Environment:
    OPENAI_API_KEY       - OpenAI credentials (openai backend)
    EXTRACTION_BACKEND   - "openai" (default) or "ollama"
    OLLAMA_BASE_URL      - Ollama server URL
    EXTRACTION_LOG_LEVEL - Logging level for the CLI and API
"""

from .backend import (
    CompletionBackend,
    CompletionOptions,
    CompletionResult,
    CompletionStatus,
    OllamaBackend,
    OpenAIBackend,
    create_backend,
)
from .config import ServiceConfig
from .exceptions import (
    BackendError,
    BackendNotConfiguredError,
    DocumentNotFoundError,
    ExtractionError,
    PDFCorruptedError,
    PDFError,
    PDFNotFoundError,
    UnknownTaskError,
    format_error_chain,
)
from .logging_config import get_logger, setup_logging
from .models import Chunk, PipelineConfig, PipelineMode, PipelineResult
from .orchestrator import ExtractionPipeline
from .pdf_pages import PdfText, extract_pages, read_pdf
from .sanitizer import SalvageResult, salvage_json, sanitize
from .schemas import ScopeOfWork, SectionAnalysis, TenderSummary
from .segmenter import make_chunks, render_pages
from .service import DocumentRegistry, ExtractionService
from .tasks import TASKS, ExtractionTask, get_task

__version__ = "1.0.0"

__all__ = [
    # Pipeline
    "ExtractionPipeline",
    "ExtractionService",
    "DocumentRegistry",
    "ServiceConfig",
    # Models
    "Chunk",
    "PipelineConfig",
    "PipelineMode",
    "PipelineResult",
    # Tasks and schemas
    "ExtractionTask",
    "TASKS",
    "get_task",
    "SectionAnalysis",
    "TenderSummary",
    "ScopeOfWork",
    # Backends
    "CompletionBackend",
    "CompletionOptions",
    "CompletionResult",
    "CompletionStatus",
    "OpenAIBackend",
    "OllamaBackend",
    "create_backend",
    # Text handling
    "PdfText",
    "read_pdf",
    "extract_pages",
    "make_chunks",
    "render_pages",
    "sanitize",
    "salvage_json",
    "SalvageResult",
    # Exceptions
    "ExtractionError",
    "BackendError",
    "BackendNotConfiguredError",
    "PDFError",
    "PDFNotFoundError",
    "PDFCorruptedError",
    "DocumentNotFoundError",
    "UnknownTaskError",
    "format_error_chain",
    # Logging
    "setup_logging",
    "get_logger",
]
