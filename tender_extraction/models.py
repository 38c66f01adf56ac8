"""
Data Models for the Resilient Extraction Pipeline.

The pipeline turns an ordered list of page texts into one structured value
by cascading through progressively cheaper strategies:

Architecture:
    pages → [Primary single call]   → single_primary
          → [Secondary single call] → single_secondary
          → [Segment + Filter] → Chunk[]
                 ↓
            [Per-chunk calls] → partials
                 ↓
            [Model aggregation]        → chunk_model_aggregate
            [Programmatic aggregation] → chunk_programmatic_aggregate
          → nothing usable             → chunk_failed

Design Principles:
    - Pydantic v2 for validation and serialization
    - Chunks are immutable value objects (frozen=True)
    - The mode string is part of the output contract and never renamed
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


# =============================================================================
# ENUMS
# =============================================================================


class PipelineMode(str, Enum):
    """Which branch of the cascade produced the final value."""

    SINGLE_PRIMARY = "single_primary"
    SINGLE_SECONDARY = "single_secondary"
    CHUNK_MODEL_AGGREGATE = "chunk_model_aggregate"
    CHUNK_PROGRAMMATIC_AGGREGATE = "chunk_programmatic_aggregate"
    CHUNK_FAILED = "chunk_failed"

    @property
    def is_failed(self) -> bool:
        return self is PipelineMode.CHUNK_FAILED


# =============================================================================
# CHUNKS
# =============================================================================


class Chunk(BaseModel):
    """
    A contiguous run of pages sent to one completion call.

    Attributes:
        start_page: First page (1-indexed)
        end_page: Last page (1-indexed, inclusive)
        text: Page texts, each prefixed by its ``[PAGE:n]`` marker
    """

    model_config = ConfigDict(frozen=True)

    start_page: int = Field(..., ge=1, description="First page (1-indexed)")
    end_page: int = Field(..., ge=1, description="Last page (1-indexed, inclusive)")
    text: str = Field(..., description="Marked-up text of the pages in this chunk")

    @model_validator(mode="after")
    def validate_page_range(self) -> "Chunk":
        """Ensure end_page >= start_page."""
        if self.end_page < self.start_page:
            raise ValueError(
                f"end_page ({self.end_page}) must be >= start_page ({self.start_page})"
            )
        return self

    @computed_field
    @property
    def page_range(self) -> str:
        """Dedup key, e.g. ``"7-12"``."""
        return f"{self.start_page}-{self.end_page}"

    @property
    def page_count(self) -> int:
        return self.end_page - self.start_page + 1


# =============================================================================
# CONFIGURATION
# =============================================================================


class PipelineConfig(BaseModel):
    """
    Configuration for one extraction run.

    Two whole-document calls, then 6-page chunks with 1 page of overlap,
    3 attempts per chunk and an early stop after 6 failed chunks in a row.
    """

    # Models
    primary_model: str = Field(
        "gpt-4o",
        description="Model used for the first whole-document call"
    )
    secondary_model: str = Field(
        "gpt-4o-mini",
        description="Cheaper model used for the second whole-document call"
    )
    chunk_model: Optional[str] = Field(
        None,
        description="Model for per-chunk calls (defaults to secondary_model)"
    )
    aggregate_model: Optional[str] = Field(
        None,
        description="Model for merging partials (defaults to primary_model)"
    )

    # Completion options
    temperature: float = Field(
        0.1,
        ge=0.0,
        le=2.0,
        description="Sampling temperature"
    )
    max_output_tokens: int = Field(
        8192,
        ge=64,
        le=128000,
        description="Maximum tokens per completion"
    )

    # Segmentation
    pages_per_chunk: int = Field(
        6,
        ge=1,
        description="Pages per chunk"
    )
    overlap_pages: int = Field(
        1,
        ge=0,
        description="Trailing pages repeated at the start of the next chunk"
    )
    use_candidate_filter: bool = Field(
        True,
        description="Skip chunks without keywords or headings"
    )

    # Retry configuration
    max_retries: int = Field(
        2,
        ge=0,
        le=10,
        description="Retries per chunk after the first attempt"
    )
    backoff_base_seconds: float = Field(
        0.5,
        ge=0.0,
        le=30.0,
        description="Delay before retry n is n² times this value"
    )
    chunk_timeout_seconds: float = Field(
        45.0,
        gt=0.0,
        description="Deadline for each chunk attempt"
    )
    single_call_timeout_seconds: float = Field(
        180.0,
        gt=0.0,
        description="Deadline for each whole-document call and for model aggregation"
    )
    max_consecutive_failures: int = Field(
        6,
        ge=1,
        description="Abort the chunk list after this many failed chunks in a row"
    )
    throttle_seconds: float = Field(
        0.2,
        ge=0.0,
        description="Pause between chunks"
    )

    # Aggregation
    use_model_aggregation: bool = Field(
        True,
        description="Ask the model to merge partials before the deterministic merge"
    )
    include_partials: bool = Field(
        False,
        description="Return the per-chunk partial results alongside the final value"
    )

    @model_validator(mode="after")
    def validate_overlap(self) -> "PipelineConfig":
        """Overlap must leave room for forward progress."""
        if self.overlap_pages >= self.pages_per_chunk:
            raise ValueError(
                f"overlap_pages ({self.overlap_pages}) must be smaller than "
                f"pages_per_chunk ({self.pages_per_chunk})"
            )
        return self

    @property
    def resolved_chunk_model(self) -> str:
        return self.chunk_model or self.secondary_model

    @property
    def resolved_aggregate_model(self) -> str:
        return self.aggregate_model or self.primary_model

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1


# =============================================================================
# RESULT
# =============================================================================


class PipelineResult(BaseModel):
    """
    Outcome of one extraction run.

    ``final`` is always present. ``raw_single`` is only set by the
    single-call modes and the chunk counters only by the chunk modes.
    """

    task: str = Field(..., description="Name of the extraction task")
    mode: PipelineMode = Field(..., description="Cascade branch that produced final")
    final: Any = Field(..., description="Structured result (task-specific shape)")
    raw_single: Optional[str] = Field(
        None,
        description="Raw completion text of the successful single call"
    )
    processed_chunks: Optional[int] = Field(
        None,
        description="Distinct page ranges sent to the backend"
    )
    partials_count: Optional[int] = Field(
        None,
        description="Chunks that produced a partial result"
    )
    partials: Optional[list[Any]] = Field(
        None,
        description="Per-chunk partial results (only when requested)"
    )
    stopped_early: Optional[bool] = Field(
        None,
        description="Chunk list was abandoned after too many failures in a row"
    )
    backend_calls: int = Field(0, ge=0, description="Completion calls made")
    total_input_tokens: int = Field(0, ge=0, description="Prompt tokens reported")
    total_output_tokens: int = Field(0, ge=0, description="Completion tokens reported")
    errors: list[str] = Field(
        default_factory=list,
        description="Non-fatal problems encountered on the way"
    )
    processing_time_seconds: float = Field(
        0.0,
        ge=0.0,
        description="Wall-clock duration of the run"
    )

    def to_dict(self) -> dict[str, Any]:
        """Export as dictionary; absent optional fields are omitted."""
        return self.model_dump(mode="json", exclude_none=True)

    def to_json(self, indent: int = 2) -> str:
        """Export as formatted JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    def save(self, path: str | Path) -> None:
        """Save the result to a JSON file."""
        Path(path).write_text(self.to_json(), encoding="utf-8")
