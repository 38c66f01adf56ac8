"""
Prompt templates for the tender extraction tasks.

Each task has three templates:
    single     - the whole document in one call
    chunk      - one page window
    aggregate  - merge the per-chunk JSON values into one

Templates contain literal JSON, so placeholders are substituted with
``fill`` rather than ``str.format``.
"""

from __future__ import annotations

import re

DOCUMENT = "<<DOCUMENT>>"
PARTIALS = "<<PARTIALS>>"

_PLACEHOLDER = re.compile(f"{re.escape(DOCUMENT)}|{re.escape(PARTIALS)}")


def fill(template: str, document: str = "", partials: str = "") -> str:
    """Substitute the placeholders in one pass; inserted text is never rescanned."""
    values = {DOCUMENT: document, PARTIALS: partials}
    return _PLACEHOLDER.sub(lambda match: values[match.group(0)], template)


# =============================================================================
# SECTION-WISE ANALYSIS
# =============================================================================

SECTIONS_SINGLE = """Read the tender DOCUMENT below and list every logical section it contains.

Answer with one JSON array. Each element has exactly these keys:
- "section_name": short section title
- "section_summary": 1-3 sentences summarising only what the section says
- "key_considerations": array of {"text": "...", "critical": true|false, "page": "page or page range"}

Rules:
- Output the JSON array and nothing else.
- Set "critical" to true for mandatory language, deadlines, penalties, limits or percentages ("must", "shall", "mandatory").
- Take page numbers from the [PAGE:n] markers.
- If there are no sections, answer [].

DOCUMENT:
<<DOCUMENT>>"""

SECTIONS_CHUNK = """The text below is a page range taken from a longer tender document.
List the sections that appear in it as one JSON array of objects with the keys
"section_name", "section_summary" and "key_considerations"
([{"text": "...", "critical": true|false, "page": "..."}]).

Rules:
- Output JSON only, no explanation.
- Take page numbers from the [PAGE:n] markers.

DOCUMENT CHUNK:
<<DOCUMENT>>"""

SECTIONS_AGGREGATE = """Below are JSON arrays of sections, one array per page range of the same document.
Combine them into a single JSON array of sections.

Rules:
- Sections with the same or nearly the same name become one section.
- Keep the longest summary and join the key_considerations, dropping exact duplicates (ignoring case).
- Keep the page of every key consideration.
- Do not add facts that are not in the input.
- Output one JSON array with the keys section_name, section_summary, key_considerations.

PARTIAL RESULTS:
<<PARTIALS>>"""


# =============================================================================
# TENDER SUMMARY
# =============================================================================

_TENDER_SCHEMA = """{
  "project_overview": "short paragraph describing the project",
  "eligibility_highlights": ["at most 4 eligibility criteria"],
  "important_dates": {
    "pre_bid_queries": "deadline or date range",
    "bid_submission": "date and time",
    "other_dates": [{"name": "...", "date": "..."}]
  },
  "financial_requirements": {
    "contract_value": "short value, e.g. INR 10,00,00,000",
    "document_fees": "short value"
  },
  "risk_analysis": {
    "penalty_risk": "one sentence on penalties or liquidated damages",
    "other_risks": [{"name": "...", "detail": "..."}]
  }
}"""

TENDER_SUMMARY_SINGLE = (
    "Prepare a one-page summary of the tender DOCUMENT below as one JSON object with these keys:\n\n"
    + _TENDER_SCHEMA
    + """

Rules:
- Output the JSON object and nothing else.
- Leave a field as "" or [] when the document does not state it. Never guess.
- Append the source page to every value, e.g. " (page 4)" or " (pages 4-5)".
- Pick the 4 most representative eligibility criteria, preferring explicit bullet items.
- Prefer the value labelled "Contract Value" or the published tender value when several amounts appear.

DOCUMENT:
<<DOCUMENT>>"""
)

TENDER_SUMMARY_CHUNK = (
    "The text below is a page range taken from a longer tender document. "
    "Fill in whatever parts of this JSON object it supports:\n\n"
    + _TENDER_SCHEMA
    + """

Rules:
- Output JSON only.
- Append page numbers in parentheses to the values you extract.

DOCUMENT CHUNK:
<<DOCUMENT>>"""
)

TENDER_SUMMARY_AGGREGATE = (
    "Below is a JSON array of partial tender summaries taken from different page ranges "
    "of one document. Merge them into a single object with this shape:\n\n"
    + _TENDER_SCHEMA
    + """

Rules:
- Keep the most complete project overview.
- Keep at most 4 distinct eligibility highlights.
- Drop duplicate dates and risks. Keep page references.
- Do not add facts that are not in the input. Output JSON only.

PARTIAL RESULTS:
<<PARTIALS>>"""
)


# =============================================================================
# SCOPE OF WORK
# =============================================================================

_SCOPE_SCHEMA = """{
  "project_overview": {
    "project_name": "...",
    "location": "...",
    "total_length": "...",
    "project_duration": "...",
    "contract_value": "..."
  },
  "major_work_components": [
    {"s_no": "...", "work_description": "...", "quantity_specification": "...", "unit": "..."}
  ],
  "technical_standards": [
    {"component": "...", "standard_specification": "...", "compliance_required": "..."}
  ]
}"""

SCOPE_OF_WORK_SINGLE = (
    "Extract the scope of work from the tender DOCUMENT below as one JSON object:\n\n"
    + _SCOPE_SCHEMA
    + """

Rules:
- Output the JSON object and nothing else.
- List every work item of the bill of quantities or work schedule with its quantity and unit.
- List the codes and standards (IRC, IS, MoRTH and similar) each component must comply with.
- Leave a field as "" or [] when the document does not state it. Never guess.

DOCUMENT:
<<DOCUMENT>>"""
)

SCOPE_OF_WORK_CHUNK = (
    "The text below is a page range taken from a longer tender document. "
    "Fill in whatever parts of this scope-of-work object it supports:\n\n"
    + _SCOPE_SCHEMA
    + """

Rules:
- Output JSON only.
- Copy quantities and units exactly as printed.

DOCUMENT CHUNK:
<<DOCUMENT>>"""
)

SCOPE_OF_WORK_AGGREGATE = (
    "Below is a JSON array of partial scope-of-work objects taken from different page "
    "ranges of one document. Merge them into a single object with this shape:\n\n"
    + _SCOPE_SCHEMA
    + """

Rules:
- Fill each project_overview field from the first partial that has it.
- Drop duplicate work components and technical standards.
- Do not add facts that are not in the input. Output JSON only.

PARTIAL RESULTS:
<<PARTIALS>>"""
)
