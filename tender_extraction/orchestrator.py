"""
Resilient extraction pipeline.

Drives one extraction task over a document's pages:

    PrimarySingle → SecondarySingle → ChunkedExtraction → Aggregation → Done

1. PRIMARY:   one call over the whole document with the primary model
2. SECONDARY: the same call with the secondary model
3. CHUNKED:   overlapping page windows, filtered for relevance, each with
              retries, quadratic backoff, throttling and an early stop
              after too many failed chunks in a row
4. AGGREGATE: model aggregation, falling back to the task's
              deterministic merge

No call failure escapes ``run()``; the result's ``mode`` tells how far the
cascade had to fall. The only error raised is BackendNotConfiguredError,
before any call is made.

Usage:
    from tender_extraction import ExtractionPipeline, OpenAIBackend, get_task

    pipeline = ExtractionPipeline(OpenAIBackend(), get_task("sections"))
    result = pipeline.run(pages)
    print(result.mode, result.final)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

from .aggregator import aggregate_with_model
from .backend import (
    CompletionBackend,
    CompletionOptions,
    CompletionResult,
    CompletionStatus,
)
from .candidate_filter import filter_candidates
from .exceptions import BackendNotConfiguredError
from .models import Chunk, PipelineConfig, PipelineMode, PipelineResult
from .prompts import fill
from .sanitizer import salvage_json
from .segmenter import make_chunks, render_pages
from .tasks import ExtractionTask

logger = logging.getLogger(__name__)

T = TypeVar("T")

RAW_PREVIEW_CHARS = 2000


# =============================================================================
# RUN STATE
# =============================================================================


@dataclass
class ChunkRunState:
    """
    Mutable state of a single ``run()`` call.

    Created fresh for every run and never shared, so concurrent runs of the
    same pipeline do not interfere.
    """

    processed_ranges: set[str] = field(default_factory=set)
    consecutive_failures: int = 0
    partials: list[Any] = field(default_factory=list)
    stopped_early: bool = False
    backend_calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    errors: list[str] = field(default_factory=list)

    def record_call(self, result: CompletionResult) -> None:
        self.backend_calls += 1
        self.input_tokens += result.input_tokens
        self.output_tokens += result.output_tokens

    def record_success(self, partial: Any) -> None:
        self.partials.append(partial)
        self.consecutive_failures = 0

    def record_failure(self, message: str) -> None:
        self.consecutive_failures += 1
        self.errors.append(message)


# =============================================================================
# PIPELINE
# =============================================================================


class ExtractionPipeline(Generic[T]):
    """
    One extraction task bound to a completion backend.

    The pipeline holds no per-run state; a single instance may serve many
    documents.
    """

    def __init__(
        self,
        backend: CompletionBackend,
        task: ExtractionTask[T],
        config: Optional[PipelineConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            backend: Completion backend used for every call
            task: What to extract and how to parse and merge it
            config: Models, retry and segmentation settings
            sleep: Sleep function for backoff and throttling (injectable for tests)
        """
        self.backend = backend
        self.task = task
        self.config = config or PipelineConfig()
        self.sleep = sleep
        self.options = CompletionOptions(
            temperature=self.config.temperature,
            max_output_tokens=self.config.max_output_tokens,
        )

    def run(self, pages: Sequence[str]) -> PipelineResult:
        """
        Extract the task's schema from the given page texts.

        Args:
            pages: Page texts in document order (page 1 first)

        Returns:
            PipelineResult; ``final`` is always a well-formed value

        Raises:
            BackendNotConfiguredError: If the backend has no client/credentials
        """
        if not self.backend.is_configured:
            raise BackendNotConfiguredError(getattr(self.backend, "name", "completion"))

        started = time.monotonic()
        state = ChunkRunState()
        logger.info(f"[{self.task.name}] Starting extraction over {len(pages)} pages")

        if not pages:
            logger.warning(f"[{self.task.name}] No pages to extract from")
            return self._finish(
                state, started, PipelineMode.CHUNK_FAILED, self.task.empty(),
                processed_chunks=0,
            )

        full_text = render_pages(pages)
        for mode, model in (
            (PipelineMode.SINGLE_PRIMARY, self.config.primary_model),
            (PipelineMode.SINGLE_SECONDARY, self.config.secondary_model),
        ):
            single = self._single_call(full_text, model, mode, state)
            if single is not None:
                value, raw = single
                logger.info(f"[{self.task.name}] Finished with {mode.value}")
                return self._finish(state, started, mode, value, raw_single=raw)

        logger.info(f"[{self.task.name}] Single calls failed, falling back to chunked extraction")
        self._run_chunks(pages, state)
        return self._aggregate(state, started)

    # -------------------------------------------------------------------------
    # Backend calls
    # -------------------------------------------------------------------------

    def _call(
        self,
        prompt: str,
        model: str,
        timeout: float,
        state: ChunkRunState,
    ) -> CompletionResult:
        try:
            result = self.backend.complete(prompt, model, self.options, timeout)
        except BackendNotConfiguredError:
            raise
        except Exception as e:
            result = CompletionResult(
                CompletionStatus.TRANSPORT_ERROR,
                model=model,
                error=f"{type(e).__name__}: {e}",
            )
        state.record_call(result)
        if result.ok:
            logger.debug(f"RAW preview: {result.text[:RAW_PREVIEW_CHARS]}")
        return result

    def _parse(self, result: CompletionResult) -> Optional[T]:
        salvaged = salvage_json(result.text, self.task.parse)
        if not salvaged.ok:
            return None
        if salvaged.strategy != "direct":
            logger.debug(f"Parsed completion via {salvaged.strategy} strategy")
        if self.task.is_empty(salvaged.value):
            return None
        return salvaged.value

    def _single_call(
        self,
        full_text: str,
        model: str,
        mode: PipelineMode,
        state: ChunkRunState,
    ) -> Optional[tuple[T, str]]:
        logger.info(f"[{self.task.name}] Attempting {mode.value} with {model}")
        prompt = fill(self.task.single_prompt, document=full_text)
        result = self._call(prompt, model, self.config.single_call_timeout_seconds, state)

        if result.status is CompletionStatus.TRUNCATED:
            message = f"{mode.value}: output truncated at the token limit"
            logger.warning(f"[{self.task.name}] {message}")
            state.errors.append(message)
            return None
        if not result.ok:
            message = f"{mode.value}: {result.status.value} ({result.error})"
            logger.warning(f"[{self.task.name}] {message}")
            state.errors.append(message)
            return None

        value = self._parse(result)
        if value is None:
            message = f"{mode.value}: no usable result in response"
            logger.warning(f"[{self.task.name}] {message}")
            state.errors.append(message)
            return None
        return value, result.text

    # -------------------------------------------------------------------------
    # Chunked extraction
    # -------------------------------------------------------------------------

    def _run_chunks(self, pages: Sequence[str], state: ChunkRunState) -> None:
        cfg = self.config
        chunks = make_chunks(pages, cfg.pages_per_chunk, cfg.overlap_pages)
        if cfg.use_candidate_filter:
            chunks = filter_candidates(chunks, self.task.keywords)
        logger.info(f"[{self.task.name}] Processing {len(chunks)} chunks")

        for index, chunk in enumerate(chunks, start=1):
            if chunk.page_range in state.processed_ranges:
                logger.info(f"Skipping duplicate chunk pages {chunk.page_range}")
                continue
            if state.processed_ranges and cfg.throttle_seconds > 0:
                self.sleep(cfg.throttle_seconds)
            state.processed_ranges.add(chunk.page_range)

            logger.info(f"--- chunk {index}/{len(chunks)} pages {chunk.page_range} ---")
            partial = self._extract_chunk(chunk, state)
            if partial is not None:
                state.record_success(partial)
                continue

            state.record_failure(f"chunk {chunk.page_range}: no result after {cfg.total_attempts} attempts")
            if state.consecutive_failures >= cfg.max_consecutive_failures:
                state.stopped_early = True
                logger.warning(
                    f"[{self.task.name}] {state.consecutive_failures} chunks failed in a row, "
                    f"stopping after pages {chunk.page_range}"
                )
                break

    def _extract_chunk(self, chunk: Chunk, state: ChunkRunState) -> Optional[T]:
        cfg = self.config
        prompt = fill(self.task.chunk_prompt, document=chunk.text)
        model = cfg.resolved_chunk_model

        for attempt in range(1, cfg.total_attempts + 1):
            if attempt > 1:
                delay = (attempt - 1) ** 2 * cfg.backoff_base_seconds
                logger.info(f"Retrying pages {chunk.page_range} in {delay:.1f}s")
                self.sleep(delay)

            result = self._call(prompt, model, cfg.chunk_timeout_seconds, state)
            label = f"pages {chunk.page_range} attempt {attempt}/{cfg.total_attempts}"

            if result.status is CompletionStatus.TRUNCATED:
                logger.warning(f"{label}: output truncated at the token limit")
                continue
            if not result.ok:
                logger.warning(f"{label}: {result.status.value} ({result.error})")
                continue

            value = self._parse(result)
            if value is None:
                logger.warning(f"{label}: no usable result in response")
                continue

            if self.task.annotate is not None:
                value = self.task.annotate(value, chunk)
            return value

        return None

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------

    def _aggregate(self, state: ChunkRunState, started: float) -> PipelineResult:
        counts = dict(processed_chunks=len(state.processed_ranges))
        if not state.partials:
            logger.warning(f"[{self.task.name}] No chunk produced a result")
            return self._finish(
                state, started, PipelineMode.CHUNK_FAILED, self.task.empty(), **counts
            )

        if self.config.use_model_aggregation:
            merged = self._model_aggregate(state)
            if merged is not None:
                return self._finish(
                    state, started, PipelineMode.CHUNK_MODEL_AGGREGATE, merged, **counts
                )
            state.errors.append("model aggregation: no usable result")

        logger.info(f"[{self.task.name}] Using programmatic aggregation")
        merged = self.task.merge(state.partials)
        return self._finish(
            state, started, PipelineMode.CHUNK_PROGRAMMATIC_AGGREGATE, merged, **counts
        )

    def _model_aggregate(self, state: ChunkRunState) -> Optional[T]:
        logger.info(
            f"[{self.task.name}] Aggregating {len(state.partials)} partials "
            f"with {self.config.resolved_aggregate_model}"
        )
        return aggregate_with_model(
            _RunBackend(self, state),
            self.task,
            state.partials,
            self.config.resolved_aggregate_model,
            self.options,
            self.config.single_call_timeout_seconds,
        )

    # -------------------------------------------------------------------------
    # Result
    # -------------------------------------------------------------------------

    def _finish(
        self,
        state: ChunkRunState,
        started: float,
        mode: PipelineMode,
        value: T,
        raw_single: Optional[str] = None,
        processed_chunks: Optional[int] = None,
    ) -> PipelineResult:
        is_chunk_mode = processed_chunks is not None
        include_partials = self.config.include_partials and is_chunk_mode
        return PipelineResult(
            task=self.task.name,
            mode=mode,
            final=self.task.dump(value),
            raw_single=raw_single,
            processed_chunks=processed_chunks,
            partials_count=len(state.partials) if is_chunk_mode else None,
            partials=[self.task.dump(p) for p in state.partials] if include_partials else None,
            stopped_early=state.stopped_early if is_chunk_mode else None,
            errors=state.errors,
            backend_calls=state.backend_calls,
            total_input_tokens=state.input_tokens,
            total_output_tokens=state.output_tokens,
            processing_time_seconds=time.monotonic() - started,
        )


class _RunBackend:
    """Routes aggregation calls through the pipeline so they count towards the run."""

    def __init__(self, pipeline: ExtractionPipeline[Any], state: ChunkRunState):
        self._pipeline = pipeline
        self._state = state
        self.name = getattr(pipeline.backend, "name", "completion")

    @property
    def is_configured(self) -> bool:
        return self._pipeline.backend.is_configured

    def complete(
        self,
        prompt: str,
        model: str,
        options: CompletionOptions,
        timeout: float,
    ) -> CompletionResult:
        return self._pipeline._call(prompt, model, timeout, self._state)
