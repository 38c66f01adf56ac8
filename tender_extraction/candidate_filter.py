"""
Cheap relevance gate applied before any chunk is sent to the backend.

A chunk is worth a completion call when it mentions a tender keyword or
contains a line that looks like an all-caps heading. If nothing qualifies,
every chunk is kept.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence

from .models import Chunk

logger = logging.getLogger(__name__)

DEFAULT_KEYWORDS: tuple[str, ...] = (
    "scope of work",
    "eligibility",
    "section",
    "tender",
    "bid",
    "contract",
    "penalty",
    "liquidated damages",
    "qualification",
    "submission",
    "earnest money",
    "emd",
    "specification",
    "schedule",
)

HEADING_MIN_CHARS = 4
HEADING_MAX_CHARS = 120
HEADING_MAX_WORDS = 12

_MARKER_LINE = re.compile(r"^\[PAGE:\d+\]$")


def looks_like_heading(line: str) -> bool:
    """True for a trimmed line that is short, has letters and is entirely upper-case."""
    stripped = line.strip()
    if not HEADING_MIN_CHARS <= len(stripped) <= HEADING_MAX_CHARS:
        return False
    if len(stripped.split()) >= HEADING_MAX_WORDS:
        return False
    if not any(ch.isalpha() for ch in stripped):
        return False
    if _MARKER_LINE.match(stripped):
        return False
    return stripped == stripped.upper()


def is_candidate(text: str, keywords: Iterable[str] = DEFAULT_KEYWORDS) -> bool:
    folded = text.casefold()
    if any(keyword.casefold() in folded for keyword in keywords):
        return True
    return any(looks_like_heading(line) for line in text.splitlines())


def filter_candidates(
    chunks: Sequence[Chunk],
    keywords: Iterable[str] = DEFAULT_KEYWORDS,
) -> list[Chunk]:
    """
    Keep chunks likely to contain schema-relevant content.

    Args:
        chunks: Chunks in document order
        keywords: Phrases that mark a chunk as relevant

    Returns:
        The matching chunks in their original order, or all chunks when
        none match
    """
    keywords = tuple(keywords)
    selected = [chunk for chunk in chunks if is_candidate(chunk.text, keywords)]
    if not selected:
        if chunks:
            logger.info(f"No candidate chunks among {len(chunks)}; keeping all")
        return list(chunks)

    logger.info(f"Candidate filter kept {len(selected)}/{len(chunks)} chunks")
    return selected
