"""
Inclusion rules shared by the aggregation pipeline and the risk engine.
"""

from typing import Optional

from app.exposure import COVERAGE_BI, FINANCIAL_COVERAGES
from app.exposure.normalizer import ExposureRecord
from app.exposure.policies import ExposurePolicies

_DEFAULT_POLICIES = ExposurePolicies()


def is_workable(record: ExposureRecord, policies: Optional[ExposurePolicies] = None) -> bool:
    """
    Decide whether an exposure still needs adjuster work.

    An exposure is excluded when:
    - its category marks it settled pending documentation
    - its claim status is closed
    - its Status or BI Status contains a non-workable denylist entry or a
      settled marker (case-insensitive substring match)
    - its evaluation phase is a non-workable phase (limits tendered CP1)
    """
    policies = policies or _DEFAULT_POLICIES

    category = record.exposure_category.strip().lower()
    if category and category in policies.settled_exposure_categories:
        return False

    status = record.status.strip().lower()
    if status and status in policies.closed_statuses:
        return False

    denied = policies.non_workable_bi_statuses + policies.non_workable_status_markers
    for value in (status, record.bi_status.strip().lower()):
        if value and any(entry in value for entry in denied):
            return False

    phase = record.evaluation_phase.strip().lower()
    if phase and any(entry in phase for entry in policies.non_workable_evaluation_phases):
        return False

    return True


def is_financial_coverage(coverage: str, policies: Optional[ExposurePolicies] = None) -> bool:
    """True only for coverages that carry reserves in the financial rollups (BI, UM, UI)."""
    coverages = policies.financial_coverages if policies else FINANCIAL_COVERAGES
    return (coverage or "").strip().upper() in coverages


def is_risk_candidate(record: ExposureRecord, policies: Optional[ExposurePolicies] = None) -> bool:
    """Workable BI exposures are the only input to risk classification."""
    return record.coverage == COVERAGE_BI and is_workable(record, policies)
