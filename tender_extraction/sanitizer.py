"""
Recover structured values from noisy completion output.

Models wrap JSON in code fences, add explanations around it, or stop
mid-object when they hit the output limit. ``salvage_json`` tries three
strategies in order and stops at the first that yields a value:

1. direct:    parse the fence-stripped text as is
2. span:      parse each top-level ``{...}`` / ``[...]`` span, longest first
3. truncated: cut each span back one character at a time, closing any
              brackets (and string) still open at the cut, and parse

Nothing in this module raises on malformed input.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FENCE = re.compile(r"```[A-Za-z0-9_+-]*")
_OPENERS = {"{": "}", "[": "]"}
_CLOSERS = {"}", "]"}

STRATEGY_DIRECT = "direct"
STRATEGY_SPAN = "span"
STRATEGY_TRUNCATED = "truncated"
STRATEGY_NONE = "none"


@dataclass
class SalvageResult(Generic[T]):
    """
    Outcome of a salvage attempt.

    Attributes:
        value: Parsed value, or None when every strategy failed
        strategy: Which strategy succeeded ("direct", "span", "truncated", "none")
        text: The candidate text that was parsed
    """

    value: Optional[T] = None
    strategy: str = STRATEGY_NONE
    text: str = ""

    @property
    def ok(self) -> bool:
        return self.strategy != STRATEGY_NONE


def sanitize(raw: Optional[str]) -> str:
    """
    Strip code-fence markers and surrounding whitespace.

    Applied until nothing changes, so ``sanitize(sanitize(x)) == sanitize(x)``.
    """
    if not raw:
        return ""
    text = raw
    while True:
        cleaned = _FENCE.sub("", text).strip()
        if cleaned == text:
            return cleaned
        text = cleaned


# =============================================================================
# BRACKET SCANNER
# =============================================================================


@dataclass
class _ScanState:
    """Scanner state after consuming a prefix of the span."""

    closers: str
    in_string: bool
    escaped: bool
    string_id: int


def find_json_spans(text: str) -> list[str]:
    """
    Return every top-level JSON-looking span in ``text``, longest first.

    The scanner tracks bracket nesting and string/escape state, so brackets
    inside string values never pair up. A closing bracket of the wrong kind
    abandons the current span. If a span is still open at the end of the
    text (truncated output), its unterminated tail is also a candidate.
    Spans of equal length keep their order of appearance.
    """
    spans: list[str] = []
    stack: list[str] = []
    start = -1
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if not stack:
            if char in _OPENERS:
                stack.append(_OPENERS[char])
                start = index
            continue

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _OPENERS:
            stack.append(_OPENERS[char])
        elif char in _CLOSERS:
            if char != stack[-1]:
                stack.clear()
                start = -1
                continue
            stack.pop()
            if not stack:
                spans.append(text[start:index + 1])

    if stack:
        spans.append(text[start:])

    return sorted(spans, key=len, reverse=True)


def find_json_span(text: str) -> str:
    """
    Return the longest top-level JSON-looking span in ``text``.

    Returns:
        The longest candidate span, or "" when the text has no bracket
    """
    spans = find_json_spans(text)
    return spans[0] if spans else ""


def _scan_prefix_states(span: str) -> list[_ScanState]:
    """States after each prefix ``span[:i]`` for i in 0..len(span)."""
    states = [_ScanState("", False, False, 0)]
    closers = ""
    in_string = False
    escaped = False
    string_id = 0

    for char in span:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
            string_id += 1
        elif char in _OPENERS:
            closers = _OPENERS[char] + closers
        elif char in _CLOSERS and closers and char == closers[0]:
            closers = closers[1:]
        states.append(_ScanState(closers, in_string, escaped, string_id))

    return states


def _close_prefix(prefix: str, state: _ScanState) -> Optional[str]:
    """Turn a cut-off prefix into a candidate document, or None if hopeless."""
    candidate = prefix + '"' if state.in_string else prefix
    candidate = candidate.rstrip()
    while candidate.endswith(","):
        candidate = candidate[:-1].rstrip()
    if not candidate or candidate.endswith(":"):
        return None
    return candidate + state.closers


# =============================================================================
# SALVAGE
# =============================================================================


def _try_parse(text: str, parse: Callable[[Any], T]) -> tuple[bool, Optional[T]]:
    try:
        return True, parse(json.loads(text))
    except (ValueError, TypeError, RecursionError):
        return False, None


def salvage_json(raw: Optional[str], parse: Callable[[Any], T]) -> SalvageResult[T]:
    """
    Recover a value of type ``T`` from raw completion text.

    Args:
        raw: Raw completion text (may be None or empty)
        parse: Converts a decoded JSON value into ``T``; raises ValueError
            or TypeError (pydantic's ValidationError included) on mismatch

    Returns:
        SalvageResult; ``ok`` is False when no strategy produced a value
    """
    text = sanitize(raw)
    if not text:
        return SalvageResult()

    ok, value = _try_parse(text, parse)
    if ok:
        return SalvageResult(value, STRATEGY_DIRECT, text)

    spans = find_json_spans(text)
    if not spans:
        logger.debug("No JSON brackets found in completion")
        return SalvageResult()

    for span in spans:
        if span == text:
            continue
        ok, value = _try_parse(span, parse)
        if ok:
            return SalvageResult(value, STRATEGY_SPAN, span)

    for span in spans:
        salvaged = _salvage_truncated(span, parse)
        if salvaged.ok:
            return salvaged

    logger.debug("All salvage strategies failed")
    return SalvageResult()


def _salvage_truncated(span: str, parse: Callable[[Any], T]) -> SalvageResult[T]:
    """Cut ``span`` back from the end until a closed-off prefix parses."""
    states = _scan_prefix_states(span)
    tried_string_id = -1
    for cut in range(len(span), 0, -1):
        state = states[cut]
        if state.escaped:
            continue
        if state.in_string:
            # closing the same string at an earlier point gives the same structure
            if state.string_id == tried_string_id:
                continue
            tried_string_id = state.string_id
        candidate = _close_prefix(span[:cut], state)
        if candidate is None or candidate == span:
            continue
        ok, value = _try_parse(candidate, parse)
        if ok:
            logger.debug(f"Salvaged JSON by truncating {len(span) - cut} chars")
            return SalvageResult(value, STRATEGY_TRUNCATED, candidate)
    return SalvageResult()
