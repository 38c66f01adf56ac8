"""
Consolidation of per-chunk partial results.

Two strategies:
    - model aggregation: one more completion call that merges the partials
      semantically; returns None on any failure so the caller can fall back
    - programmatic merge: deterministic, never fails, reproducible

Programmatic merge rules:
    - identity keys are normalised (lower-case, single spaces, trimmed)
    - free-text fields keep the longest value, first-seen on ties
    - list fields are deduplicated on normalised composite keys in
      first-seen order, then capped where the schema has a maximum
    - remaining scalars take the first non-empty value
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Sequence, TypeVar

from .backend import CompletionBackend, CompletionOptions, CompletionStatus
from .prompts import fill
from .sanitizer import salvage_json
from .schemas import (
    MAX_ELIGIBILITY_HIGHLIGHTS,
    ScopeOfWork,
    SectionAnalysis,
    TenderSummary,
)

if TYPE_CHECKING:
    from .tasks import ExtractionTask

logger = logging.getLogger(__name__)

T = TypeVar("T")
Item = TypeVar("Item")

_WHITESPACE = re.compile(r"\s+")
SECTION_KEY_FALLBACK_CHARS = 50


# =============================================================================
# HELPERS
# =============================================================================


def normalize_key(value: Optional[str]) -> str:
    """Lower-case, collapse internal whitespace and trim."""
    if not value:
        return ""
    return _WHITESPACE.sub(" ", value).strip().lower()


def composite_key(*parts: Optional[str]) -> str:
    return "|".join(normalize_key(part) for part in parts)


def dedupe(items: Iterable[Item], key: Callable[[Item], str]) -> list[Item]:
    """Keep the first item for every key, in encounter order. Blank keys are dropped."""
    seen: set[str] = set()
    result: list[Item] = []
    for item in items:
        k = key(item)
        if not k.strip("|") or k in seen:
            continue
        seen.add(k)
        result.append(item)
    return result


def longest(values: Iterable[str]) -> str:
    """Longest non-blank value after trimming; the first one wins ties."""
    best = ""
    for value in values:
        candidate = (value or "").strip()
        if len(candidate) > len(best):
            best = candidate
    return best


def first_non_empty(values: Iterable[str]) -> str:
    for value in values:
        if value and value.strip():
            return value
    return ""


# =============================================================================
# PROGRAMMATIC MERGES
# =============================================================================


def _section_key(section: SectionAnalysis) -> str:
    key = normalize_key(section.section_name)
    if not key:
        key = normalize_key(section.section_summary[:SECTION_KEY_FALLBACK_CHARS])
    return key


def merge_sections(partials: Sequence[Sequence[SectionAnalysis]]) -> list[SectionAnalysis]:
    """
    Merge section lists from several chunks.

    Sections sharing a key collapse into the first-seen one: the longest
    summary is kept and key considerations are unioned, deduplicated by
    normalised text.
    """
    merged: dict[str, SectionAnalysis] = {}
    seen_considerations: dict[str, set[str]] = {}

    for sections in partials:
        for section in sections:
            key = _section_key(section)
            if not key:
                continue

            existing = merged.get(key)
            if existing is None:
                existing = section.model_copy(update={"key_considerations": []}, deep=True)
                merged[key] = existing
                seen_considerations[key] = set()
            elif len(section.section_summary.strip()) > len(existing.section_summary.strip()):
                existing.section_summary = section.section_summary

            seen = seen_considerations[key]
            for consideration in section.key_considerations:
                text_key = normalize_key(consideration.text)
                if not text_key or text_key in seen:
                    continue
                seen.add(text_key)
                existing.key_considerations.append(consideration.model_copy())

    return list(merged.values())


def merge_tender_summaries(partials: Sequence[TenderSummary]) -> TenderSummary:
    """Merge tender one-pagers from several chunks."""
    final = TenderSummary()
    if not partials:
        return final

    final.project_overview = longest(p.project_overview for p in partials)

    highlights = dedupe(
        (h.strip() for p in partials for h in p.eligibility_highlights),
        key=normalize_key,
    )
    final.eligibility_highlights = highlights[:MAX_ELIGIBILITY_HIGHLIGHTS]

    dates = final.important_dates
    dates.pre_bid_queries = first_non_empty(p.important_dates.pre_bid_queries for p in partials)
    dates.bid_submission = first_non_empty(p.important_dates.bid_submission for p in partials)
    dates.other_dates = [
        d.model_copy()
        for d in dedupe(
            (d for p in partials for d in p.important_dates.other_dates),
            key=lambda d: composite_key(d.name, d.date),
        )
    ]

    money = final.financial_requirements
    money.contract_value = first_non_empty(
        p.financial_requirements.contract_value for p in partials
    )
    money.document_fees = first_non_empty(
        p.financial_requirements.document_fees for p in partials
    )

    risks = final.risk_analysis
    risks.penalty_risk = first_non_empty(p.risk_analysis.penalty_risk for p in partials)
    risks.other_risks = [
        r.model_copy()
        for r in dedupe(
            (r for p in partials for r in p.risk_analysis.other_risks),
            key=lambda r: composite_key(r.name, r.detail),
        )
    ]
    return final


def merge_scopes(partials: Sequence[ScopeOfWork]) -> ScopeOfWork:
    """Merge scope-of-work breakdowns from several chunks."""
    final = ScopeOfWork()
    overview = final.project_overview
    for field_name in type(overview).model_fields:
        setattr(
            overview,
            field_name,
            first_non_empty(getattr(p.project_overview, field_name) for p in partials),
        )

    final.major_work_components = [
        c.model_copy()
        for c in dedupe(
            (c for p in partials for c in p.major_work_components),
            key=lambda c: composite_key(
                c.s_no, c.work_description, c.quantity_specification, c.unit
            ),
        )
    ]
    final.technical_standards = [
        s.model_copy()
        for s in dedupe(
            (s for p in partials for s in p.technical_standards),
            key=lambda s: composite_key(
                s.component, s.standard_specification, s.compliance_required
            ),
        )
    ]
    return final


# =============================================================================
# MODEL AGGREGATION
# =============================================================================


def serialize_partials(task: "ExtractionTask[Any]", partials: Sequence[Any]) -> str:
    """JSON array with one element per partial result."""
    return json.dumps([task.dump(p) for p in partials], ensure_ascii=False)


def aggregate_with_model(
    backend: CompletionBackend,
    task: "ExtractionTask[T]",
    partials: Sequence[T],
    model: str,
    options: CompletionOptions,
    timeout: float,
) -> Optional[T]:
    """
    Ask the backend to merge the partials.

    Returns:
        The merged value, or None when the call fails, the output cannot
        be salvaged or the merged value is empty
    """
    prompt = fill(task.aggregate_prompt, partials=serialize_partials(task, partials))
    try:
        result = backend.complete(prompt, model, options, timeout)
    except Exception as e:
        logger.warning(f"Model aggregation call raised {type(e).__name__}: {e}")
        return None

    if result.status is CompletionStatus.TRUNCATED:
        logger.warning("Model aggregation output was truncated at the token limit")
        return None
    if not result.ok:
        logger.warning(f"Model aggregation failed ({result.status.value}): {result.error}")
        return None

    salvaged = salvage_json(result.text, task.parse)
    if not salvaged.ok:
        logger.warning("Model aggregation returned unparseable output")
        return None
    if task.is_empty(salvaged.value):
        logger.warning("Model aggregation returned an empty result")
        return None

    logger.info(f"Model aggregation succeeded ({salvaged.strategy} parse)")
    return salvaged.value
