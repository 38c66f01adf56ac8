"""
Extraction tasks.

The pipeline is schema-agnostic. Everything that differs between the
sections, tender-summary and scope-of-work extractions lives in an
``ExtractionTask``: the prompts, how to parse a decoded JSON value into the
result type, how to merge partial results, and what "empty" means.

Usage:
    from tender_extraction.tasks import get_task

    task = get_task("tender_summary")
    value = task.parse({"project_overview": "Four-laning of NH-44"})
    task.is_empty(value)   # False
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

from .aggregator import merge_scopes, merge_sections, merge_tender_summaries
from .candidate_filter import DEFAULT_KEYWORDS
from .exceptions import UnknownTaskError
from .models import Chunk
from . import prompts
from .schemas import (
    SECTION_LIST_ADAPTER,
    ScopeOfWork,
    SectionAnalysis,
    TenderSummary,
)

T = TypeVar("T")


@dataclass(frozen=True)
class ExtractionTask(Generic[T]):
    """
    Parameters of one extraction task.

    Attributes:
        name: Registry key, also reported in results
        description: One-line description for the API and CLI
        single_prompt: Template for the whole-document calls
        chunk_prompt: Template for per-chunk calls
        aggregate_prompt: Template for model aggregation
        parse: Decoded JSON value -> T, raises ValueError/TypeError on mismatch
        merge: Deterministic merge of partial results
        empty: Factory for the "nothing found" value
        is_empty: True when a value carries no content
        dump: T -> JSON-compatible data
        annotate: Optional hook adding page provenance to a chunk result
        keywords: Candidate-filter phrases for this task
    """

    name: str
    description: str
    single_prompt: str
    chunk_prompt: str
    aggregate_prompt: str
    parse: Callable[[Any], T]
    merge: Callable[[Sequence[T]], T]
    empty: Callable[[], T]
    is_empty: Callable[[T], bool]
    dump: Callable[[T], Any]
    annotate: Optional[Callable[[T, Chunk], T]] = None
    keywords: tuple[str, ...] = DEFAULT_KEYWORDS


def _single_object(data: Any) -> Any:
    """Unwrap ``[{...}]`` answers for object-shaped schemas."""
    if isinstance(data, list):
        objects = [item for item in data if isinstance(item, dict)]
        if len(objects) != 1:
            raise ValueError(f"Expected one JSON object, got a list of {len(data)}")
        return objects[0]
    if not isinstance(data, dict):
        raise TypeError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def provenance_suffix(chunk: Chunk) -> str:
    if chunk.start_page == chunk.end_page:
        return f"(page {chunk.start_page})"
    return f"(pages {chunk.page_range})"


def with_provenance(value: str, chunk: Chunk) -> str:
    """Append the chunk's page range unless the value already cites a page."""
    if not value.strip() or "page" in value.lower():
        return value
    return f"{value.rstrip()} {provenance_suffix(chunk)}"


# =============================================================================
# SECTIONS
# =============================================================================


def parse_sections(data: Any) -> list[SectionAnalysis]:
    if isinstance(data, dict):
        if "section_name" in data or "section_summary" in data:
            data = [data]
        else:
            lists = [v for v in data.values() if isinstance(v, list)]
            if len(lists) != 1:
                raise ValueError("Expected a JSON array of sections")
            data = lists[0]
    sections = SECTION_LIST_ADAPTER.validate_python(data)
    return [s for s in sections if not s.is_empty()]


SECTIONS = ExtractionTask(
    name="sections",
    description="Section-wise analysis with key considerations",
    single_prompt=prompts.SECTIONS_SINGLE,
    chunk_prompt=prompts.SECTIONS_CHUNK,
    aggregate_prompt=prompts.SECTIONS_AGGREGATE,
    parse=parse_sections,
    merge=merge_sections,
    empty=list,
    is_empty=lambda sections: len(sections) == 0,
    dump=lambda sections: [s.model_dump(mode="json") for s in sections],
)


# =============================================================================
# TENDER SUMMARY
# =============================================================================


def parse_tender_summary(data: Any) -> TenderSummary:
    return TenderSummary.model_validate(_single_object(data))


def annotate_tender_summary(summary: TenderSummary, chunk: Chunk) -> TenderSummary:
    """Tag the overview and deadlines with the chunk's pages."""
    summary = summary.model_copy(deep=True)
    summary.project_overview = with_provenance(summary.project_overview, chunk)
    dates = summary.important_dates
    dates.pre_bid_queries = with_provenance(dates.pre_bid_queries, chunk)
    dates.bid_submission = with_provenance(dates.bid_submission, chunk)
    for entry in dates.other_dates:
        entry.date = with_provenance(entry.date, chunk)
    return summary


TENDER_SUMMARY = ExtractionTask(
    name="tender_summary",
    description="One-page tender summary: overview, eligibility, dates, money, risks",
    single_prompt=prompts.TENDER_SUMMARY_SINGLE,
    chunk_prompt=prompts.TENDER_SUMMARY_CHUNK,
    aggregate_prompt=prompts.TENDER_SUMMARY_AGGREGATE,
    parse=parse_tender_summary,
    merge=merge_tender_summaries,
    empty=TenderSummary,
    is_empty=lambda summary: summary.is_empty(),
    dump=lambda summary: summary.model_dump(mode="json"),
    annotate=annotate_tender_summary,
    keywords=DEFAULT_KEYWORDS + (
        "pre-bid",
        "document fee",
        "contract value",
        "estimated cost",
    ),
)


# =============================================================================
# SCOPE OF WORK
# =============================================================================


def parse_scope_of_work(data: Any) -> ScopeOfWork:
    return ScopeOfWork.model_validate(_single_object(data))


SCOPE_OF_WORK = ExtractionTask(
    name="scope_of_work",
    description="Scope of work: project overview, work components, technical standards",
    single_prompt=prompts.SCOPE_OF_WORK_SINGLE,
    chunk_prompt=prompts.SCOPE_OF_WORK_CHUNK,
    aggregate_prompt=prompts.SCOPE_OF_WORK_AGGREGATE,
    parse=parse_scope_of_work,
    merge=merge_scopes,
    empty=ScopeOfWork,
    is_empty=lambda scope: scope.is_empty(),
    dump=lambda scope: scope.model_dump(mode="json"),
    keywords=DEFAULT_KEYWORDS + (
        "bill of quantities",
        "boq",
        "quantity",
        "morth",
        "irc",
    ),
)


# =============================================================================
# REGISTRY
# =============================================================================


TASKS: dict[str, ExtractionTask[Any]] = {
    task.name: task for task in (SECTIONS, TENDER_SUMMARY, SCOPE_OF_WORK)
}


def get_task(name: str) -> ExtractionTask[Any]:
    """Look up a task by name."""
    try:
        return TASKS[name]
    except KeyError:
        raise UnknownTaskError(name, sorted(TASKS)) from None
