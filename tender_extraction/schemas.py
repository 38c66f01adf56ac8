"""
Result schemas for the three tender extraction tasks.

Model output is loose: numbers where strings are expected, ``null`` for
missing values, extra keys. Every field therefore coerces leniently and
defaults to an empty value, so a half-filled object still validates and the
empty instance of each schema is its "nothing found" value.

Shapes:
    sections        → list[SectionAnalysis]
    tender_summary  → TenderSummary
    scope_of_work   → ScopeOfWork
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    model_validator,
)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return ", ".join(_to_text(item) for item in value if item is not None)
    if isinstance(value, dict):
        return " - ".join(_to_text(v) for v in value.values() if v not in (None, ""))
    return value


def _to_list(value: Any) -> Any:
    if value is None or value == "":
        return []
    if isinstance(value, dict):
        return [value]
    return value


def _to_flag(value: Any) -> Any:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "critical", "y")
    return value


Text = Annotated[str, BeforeValidator(_to_text)]
Flag = Annotated[bool, BeforeValidator(_to_flag)]


class SchemaModel(BaseModel):
    """Base for all result records: extra keys are ignored, missing keys default."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        """``null`` means "not found": let the field default apply."""
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    def is_empty(self) -> bool:
        """True when no field carries any content."""
        return _is_blank(self.model_dump())


def _is_blank(value: Any) -> bool:
    if isinstance(value, dict):
        return all(_is_blank(v) for v in value.values())
    if isinstance(value, list):
        return all(_is_blank(v) for v in value)
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, bool):
        return not value
    return value is None


# =============================================================================
# SECTION-WISE ANALYSIS
# =============================================================================


class KeyConsideration(SchemaModel):
    """A single actionable point inside a section."""

    text: Text = Field("", description="The consideration itself")
    critical: Flag = Field(
        False,
        description="Mandatory, penalty, deadline or limit language"
    )
    page: Text = Field("", description="Page or page range, e.g. '12' or '12-13'")

    def is_empty(self) -> bool:
        return not self.text.strip()


class SectionAnalysis(SchemaModel):
    """One logical section of the document."""

    section_name: Text = Field("", description="Short section title")
    section_summary: Text = Field("", description="One to three sentence summary")
    key_considerations: Annotated[list[KeyConsideration], BeforeValidator(_to_list)] = Field(
        default_factory=list,
        description="Actionable points with page provenance"
    )


SECTION_LIST_ADAPTER = TypeAdapter(list[SectionAnalysis])


# =============================================================================
# TENDER SUMMARY (ONE PAGER)
# =============================================================================


class DateEntry(SchemaModel):
    name: Text = ""
    date: Text = ""


class ImportantDates(SchemaModel):
    pre_bid_queries: Text = Field("", description="Pre-bid query deadline")
    bid_submission: Text = Field("", description="Bid submission deadline")
    other_dates: Annotated[list[DateEntry], BeforeValidator(_to_list)] = Field(
        default_factory=list
    )


class FinancialRequirements(SchemaModel):
    contract_value: Text = Field("", description="Published contract value")
    document_fees: Text = Field("", description="Tender document fee")


class RiskEntry(SchemaModel):
    name: Text = ""
    detail: Text = ""


class RiskAnalysis(SchemaModel):
    penalty_risk: Text = Field("", description="Penalty or liquidated damages clause")
    other_risks: Annotated[list[RiskEntry], BeforeValidator(_to_list)] = Field(
        default_factory=list
    )


MAX_ELIGIBILITY_HIGHLIGHTS = 4


class TenderSummary(SchemaModel):
    """
    One-pager summary of a tender.

    Attributes:
        project_overview: Short paragraph describing the project
        eligibility_highlights: Up to four key eligibility criteria
        important_dates: Deadlines
        financial_requirements: Contract value and fees
        risk_analysis: Penalties and other risks
    """

    project_overview: Text = Field("", description="Short project paragraph")
    eligibility_highlights: Annotated[list[Text], BeforeValidator(_to_list)] = Field(
        default_factory=list,
        description="Most relevant eligibility criteria (at most four)"
    )
    important_dates: ImportantDates = Field(default_factory=ImportantDates)
    financial_requirements: FinancialRequirements = Field(
        default_factory=FinancialRequirements
    )
    risk_analysis: RiskAnalysis = Field(default_factory=RiskAnalysis)


# =============================================================================
# SCOPE OF WORK
# =============================================================================


class ProjectOverview(SchemaModel):
    project_name: Text = ""
    location: Text = ""
    total_length: Text = ""
    project_duration: Text = ""
    contract_value: Text = ""


class MajorWorkComponent(SchemaModel):
    s_no: Text = Field("", description="Serial number as printed")
    work_description: Text = ""
    quantity_specification: Text = ""
    unit: Text = ""


class TechnicalStandard(SchemaModel):
    component: Text = ""
    standard_specification: Text = ""
    compliance_required: Text = ""


class ScopeOfWork(SchemaModel):
    """Scope-of-work breakdown: overview, work items and applicable standards."""

    project_overview: ProjectOverview = Field(default_factory=ProjectOverview)
    major_work_components: Annotated[
        list[MajorWorkComponent], BeforeValidator(_to_list)
    ] = Field(default_factory=list)
    technical_standards: Annotated[
        list[TechnicalStandard], BeforeValidator(_to_list)
    ] = Field(default_factory=list)
