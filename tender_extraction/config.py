from dataclasses import dataclass, field
import os
from typing import Optional

from .models import PipelineConfig


@dataclass
class ServiceConfig:
    backend: str = "openai"
    openai_api_key: Optional[str] = None
    ollama_base_url: str = "http://localhost:11434"
    log_level: str = "INFO"
    max_upload_mb: int = 50
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        def _int(name: str, default: int) -> int:
            value = os.environ.get(name)
            return int(value) if value else default

        def _float(name: str, default: float) -> float:
            value = os.environ.get(name)
            return float(value) if value else default

        def _bool(name: str, default: bool) -> bool:
            value = os.environ.get(name)
            if not value:
                return default
            return value.strip().lower() in ("1", "true", "yes", "on")

        backend = os.environ.get("EXTRACTION_BACKEND", cls.backend).lower()
        defaults = PipelineConfig()
        if backend == "ollama":
            ollama_model = os.environ.get("OLLAMA_MODEL", "llama3.1:latest")
            primary_default = secondary_default = ollama_model
        else:
            primary_default = defaults.primary_model
            secondary_default = defaults.secondary_model

        pipeline = PipelineConfig(
            primary_model=os.environ.get("EXTRACTION_PRIMARY_MODEL", primary_default),
            secondary_model=os.environ.get("EXTRACTION_SECONDARY_MODEL", secondary_default),
            chunk_model=os.environ.get("EXTRACTION_CHUNK_MODEL") or None,
            aggregate_model=os.environ.get("EXTRACTION_AGGREGATE_MODEL") or None,
            temperature=_float("EXTRACTION_TEMPERATURE", defaults.temperature),
            max_output_tokens=_int("EXTRACTION_MAX_OUTPUT_TOKENS", defaults.max_output_tokens),
            pages_per_chunk=_int("EXTRACTION_PAGES_PER_CHUNK", defaults.pages_per_chunk),
            overlap_pages=_int("EXTRACTION_OVERLAP_PAGES", defaults.overlap_pages),
            max_retries=_int("EXTRACTION_MAX_RETRIES", defaults.max_retries),
            backoff_base_seconds=_float("EXTRACTION_BACKOFF_SECONDS", defaults.backoff_base_seconds),
            chunk_timeout_seconds=_float("EXTRACTION_CHUNK_TIMEOUT", defaults.chunk_timeout_seconds),
            single_call_timeout_seconds=_float(
                "EXTRACTION_SINGLE_TIMEOUT", defaults.single_call_timeout_seconds
            ),
            max_consecutive_failures=_int(
                "EXTRACTION_MAX_CONSECUTIVE_FAILURES", defaults.max_consecutive_failures
            ),
            throttle_seconds=_float("EXTRACTION_THROTTLE_SECONDS", defaults.throttle_seconds),
            use_candidate_filter=_bool("EXTRACTION_CANDIDATE_FILTER", defaults.use_candidate_filter),
            use_model_aggregation=_bool(
                "EXTRACTION_MODEL_AGGREGATION", defaults.use_model_aggregation
            ),
        )

        return cls(
            backend=backend,
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            ollama_base_url=os.environ.get("OLLAMA_BASE_URL", cls.ollama_base_url),
            log_level=os.environ.get("EXTRACTION_LOG_LEVEL", cls.log_level),
            max_upload_mb=_int("EXTRACTION_MAX_UPLOAD_MB", cls.max_upload_mb),
            pipeline=pipeline,
        )
