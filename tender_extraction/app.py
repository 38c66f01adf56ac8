from typing import Any

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from .config import ServiceConfig
from .exceptions import (
    BackendNotConfiguredError,
    DocumentNotFoundError,
    ExtractionError,
    PDFError,
    UnknownTaskError,
)
from .service import ExtractionService
from .tasks import TASKS


class ExtractRequest(BaseModel):
    document_id: str = Field(..., min_length=1)


def _http_error(exc: ExtractionError) -> HTTPException:
    if isinstance(exc, (DocumentNotFoundError, UnknownTaskError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PDFError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, BackendNotConfiguredError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def create_app(
    config: ServiceConfig | None = None,
    service: ExtractionService | None = None,
) -> FastAPI:
    service = service or ExtractionService(config=config)
    max_upload_bytes = service.config.max_upload_mb * 1024 * 1024
    app = FastAPI(
        title="Tender Extraction Service",
        version="1.0.0",
        description="Structured extraction from tender PDFs with a resilient LLM cascade.",
    )

    async def _read_pdf_upload(file: UploadFile) -> bytes:
        if not (file.filename or "").lower().endswith(".pdf"):
            raise HTTPException(status_code=400, detail="Only PDF files are supported")
        content = await file.read(max_upload_bytes + 1)
        if not content:
            raise HTTPException(status_code=400, detail="Uploaded file is empty")
        if len(content) > max_upload_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File exceeds {service.config.max_upload_mb} MB limit",
            )
        return content

    @app.get("/health")
    def health() -> dict:
        return {
            "status": "ok",
            "backend": getattr(service.backend, "name", "unknown"),
            "backend_configured": service.backend.is_configured,
            "documents": len(service.registry),
        }

    @app.get("/tasks")
    def list_tasks() -> dict:
        return {
            "tasks": [
                {"name": task.name, "description": task.description}
                for task in TASKS.values()
            ]
        }

    @app.post("/documents")
    async def upload_document(file: UploadFile = File(...)) -> dict:
        content = await _read_pdf_upload(file)
        try:
            document = await run_in_threadpool(
                service.register, content, file.filename or "upload.pdf"
            )
        except ExtractionError as exc:
            raise _http_error(exc) from exc
        info = document.info()
        info["message"] = "Document uploaded and processed successfully"
        return info

    @app.get("/documents")
    def list_documents() -> dict:
        return {"documents": [doc.info() for doc in service.registry.documents()]}

    @app.get("/documents/{document_id}")
    def get_document(document_id: str) -> dict:
        try:
            return service.registry.get(document_id).info()
        except ExtractionError as exc:
            raise _http_error(exc) from exc

    @app.delete("/documents/{document_id}")
    def delete_document(document_id: str) -> dict:
        try:
            service.registry.remove(document_id)
        except ExtractionError as exc:
            raise _http_error(exc) from exc
        return {"document_id": document_id, "deleted": True}

    @app.post("/extract/{task_name}")
    def extract(task_name: str, request: ExtractRequest) -> dict[str, Any]:
        try:
            result = service.extract_document(request.document_id, task_name)
        except ExtractionError as exc:
            raise _http_error(exc) from exc
        return result.to_dict()

    @app.post("/extract/{task_name}/upload")
    async def extract_upload(task_name: str, file: UploadFile = File(...)) -> dict[str, Any]:
        content = await _read_pdf_upload(file)
        try:
            result = await run_in_threadpool(
                service.extract_bytes, content, file.filename or "upload.pdf", task_name
            )
        except ExtractionError as exc:
            raise _http_error(exc) from exc
        return result.to_dict()

    return app
