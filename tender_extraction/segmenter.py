"""
Page segmentation for chunked extraction.

Pages are grouped into overlapping windows of ``pages_per_chunk`` pages.
Every page in a chunk's text is preceded by a ``[PAGE:n]`` marker line so the
model can cite page numbers in its answer.
"""

from __future__ import annotations

import logging
from typing import Sequence

from .models import Chunk

logger = logging.getLogger(__name__)

PAGE_MARKER = "[PAGE:{number}]"
PAGE_SEPARATOR = "\n\n"


def page_marker(number: int) -> str:
    return PAGE_MARKER.format(number=number)


def render_pages(pages: Sequence[str], start: int = 1) -> str:
    """
    Join page texts with their page markers.

    Args:
        pages: Page texts in document order
        start: Page number of ``pages[0]`` (1-indexed)

    Returns:
        ``"[PAGE:1]\\n<text>\\n\\n[PAGE:2]\\n<text>"``
    """
    return PAGE_SEPARATOR.join(
        f"{page_marker(start + offset)}\n{text}" for offset, text in enumerate(pages)
    )


def make_chunks(
    pages: Sequence[str],
    pages_per_chunk: int = 6,
    overlap_pages: int = 1,
) -> list[Chunk]:
    """
    Split pages into overlapping chunks.

    Each chunk covers ``[i, min(n, i + pages_per_chunk))``; the next one starts
    ``overlap_pages`` before the previous end. Chunking stops once a chunk
    reaches the last page.

    Args:
        pages: Page texts in document order
        pages_per_chunk: Pages per chunk (>= 1)
        overlap_pages: Pages shared with the previous chunk (< pages_per_chunk)

    Returns:
        Chunks in ascending page order; empty when there are no pages

    Raises:
        ValueError: If the parameters would not make forward progress
    """
    if pages_per_chunk < 1:
        raise ValueError(f"pages_per_chunk must be >= 1, got {pages_per_chunk}")
    if overlap_pages < 0:
        raise ValueError(f"overlap_pages must be >= 0, got {overlap_pages}")
    if overlap_pages >= pages_per_chunk:
        raise ValueError(
            f"overlap_pages ({overlap_pages}) must be smaller than "
            f"pages_per_chunk ({pages_per_chunk})"
        )

    n = len(pages)
    chunks: list[Chunk] = []
    i = 0
    while i < n:
        end = min(n, i + pages_per_chunk)
        chunks.append(
            Chunk(
                start_page=i + 1,
                end_page=end,
                text=render_pages(pages[i:end], start=i + 1),
            )
        )
        if end == n:
            break
        i = end - overlap_pages

    logger.debug(
        f"Segmented {n} pages into {len(chunks)} chunks "
        f"({pages_per_chunk} pages, overlap {overlap_pages})"
    )
    return chunks
