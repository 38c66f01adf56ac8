"""
Pytest fixtures for tender extraction tests.
"""

import pytest

from tender_extraction import PipelineConfig

from .fakes import SleepRecorder


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def fast_config():
    """Pipeline config with one page per chunk and no candidate filtering."""
    return PipelineConfig(
        primary_model="primary",
        secondary_model="secondary",
        pages_per_chunk=1,
        overlap_pages=0,
        use_candidate_filter=False,
    )


@pytest.fixture
def tender_pages():
    """A small tender document, one string per page."""
    return [
        "NOTICE INVITING TENDER\nFour-laning of NH-44 from km 10 to km 42.",
        "ELIGIBILITY CRITERIA\nBidder must have completed similar works of Rs. 50 Cr.",
        "IMPORTANT DATES\nPre-bid meeting: 05.03.2024\nBid submission: 20.03.2024",
        "FINANCIAL DETAILS\nEstimated cost Rs. 412 Cr. Document fee Rs. 25,000.",
        "PENALTY\nLiquidated damages at 0.05% per day of delay.",
    ]


@pytest.fixture
def summary_payload():
    """Tender summary as a model would return it."""
    return {
        "project_overview": "Four-laning of NH-44 from km 10 to km 42.",
        "eligibility_highlights": ["Similar works of Rs. 50 Cr"],
        "important_dates": {
            "pre_bid_queries": "05.03.2024",
            "bid_submission": "20.03.2024",
            "other_dates": [],
        },
        "financial_requirements": {
            "contract_value": "Rs. 412 Cr",
            "document_fees": "Rs. 25,000",
        },
        "risk_analysis": {
            "penalty_risk": "0.05% per day",
            "other_risks": [],
        },
    }
