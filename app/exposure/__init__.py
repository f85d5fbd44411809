"""
Claims Exposure Aggregation & Risk Classification Package

This package turns the open-exposure export (one row per coverage line) into
executive aggregates and a weighted per-claim risk classification.

Modules:
- fields: Typed accessors over raw export rows
- normalizer: Parses raw rows into ExposureRecord values
- policies: Injectable policy tables (limits, weights, denylists, baseline)
- filters: Workable / financial-coverage inclusion rules
- aggregator: Single-pass aggregation into ExposureAggregate
- multipack: Incident grouping by claim-number structure
- snapshots: Dated snapshot storage and period-over-period deltas
- risk: Weighted multi-pattern risk scoring and tiering
- service: Orchestrates a full run over one export
"""

# Age bucket labels
AGE_365_PLUS = "365+ Days"
AGE_181_TO_365 = "181-365 Days"
AGE_61_TO_180 = "61-180 Days"
AGE_UNDER_60 = "Under 60 Days"
AGE_BUCKETS = (AGE_365_PLUS, AGE_181_TO_365, AGE_61_TO_180, AGE_UNDER_60)

# Coverage codes
COVERAGE_BI = "BI"
COVERAGE_UM = "UM"
COVERAGE_UI = "UI"
FINANCIAL_COVERAGES = frozenset({COVERAGE_BI, COVERAGE_UM, COVERAGE_UI})

# Type group carrying the phase-of-negotiation rollup
TYPE_GROUP_LIT = "LIT"

# Negotiation recency buckets
NEGOTIATION_0_30 = "0-30"
NEGOTIATION_31_60 = "31-60"
NEGOTIATION_61_90 = "61-90"
NEGOTIATION_90_PLUS = "90+"
NEGOTIATION_NONE = "no-negotiation"
NEGOTIATION_BUCKETS = (
    NEGOTIATION_0_30,
    NEGOTIATION_31_60,
    NEGOTIATION_61_90,
    NEGOTIATION_90_PLUS,
    NEGOTIATION_NONE,
)

# BI status buckets
STATUS_IN_PROGRESS = "in-progress"
STATUS_SETTLED = "settled"
STATUS_OTHER = "other"

# Risk tiers
TIER_CRITICAL = "CRITICAL"
TIER_HIGH = "HIGH"
TIER_MODERATE = "MODERATE"
RISK_TIERS = (TIER_CRITICAL, TIER_HIGH, TIER_MODERATE)

from app.exposure.fields import RawRecord
from app.exposure.normalizer import (
    ExposureRecord,
    normalize_record,
    parse_age_bucket,
    parse_boolean,
    parse_currency,
)
from app.exposure.policies import ExposurePolicies, ExposurePolicyLoader
from app.exposure.filters import is_financial_coverage, is_risk_candidate, is_workable
from app.exposure.aggregator import (
    ExposureAccumulator,
    ExposureAggregate,
    RowContribution,
    aggregate_rows,
    classify_row,
)
from app.exposure.multipack import MultiPackGroup, base_claim_number, group_multi_packs
from app.exposure.snapshots import (
    Snapshot,
    SnapshotDelta,
    SnapshotDeltaService,
    SnapshotStorage,
    compute_delta,
)
from app.exposure.risk import RiskClaim, RiskClassificationEngine, RiskSummary
from app.exposure.service import ExposureAnalyticsService, ExposureRunResult, ExposureSourceError


# API router is imported lazily to avoid importing FastAPI for library use
# Use: from app.exposure.api import router as exposure_api_router
def get_exposure_api_router():
    """Get exposure API router (lazy import)."""
    from app.exposure.api import router
    return router


__all__ = [
    # Constants
    "AGE_365_PLUS",
    "AGE_181_TO_365",
    "AGE_61_TO_180",
    "AGE_UNDER_60",
    "AGE_BUCKETS",
    "COVERAGE_BI",
    "COVERAGE_UM",
    "COVERAGE_UI",
    "FINANCIAL_COVERAGES",
    "TYPE_GROUP_LIT",
    "NEGOTIATION_BUCKETS",
    "TIER_CRITICAL",
    "TIER_HIGH",
    "TIER_MODERATE",
    "RISK_TIERS",
    # Normalizer
    "RawRecord",
    "ExposureRecord",
    "normalize_record",
    "parse_age_bucket",
    "parse_boolean",
    "parse_currency",
    # Policies and filters
    "ExposurePolicies",
    "ExposurePolicyLoader",
    "is_financial_coverage",
    "is_risk_candidate",
    "is_workable",
    # Aggregation
    "ExposureAccumulator",
    "ExposureAggregate",
    "RowContribution",
    "aggregate_rows",
    "classify_row",
    "MultiPackGroup",
    "base_claim_number",
    "group_multi_packs",
    # Snapshots
    "Snapshot",
    "SnapshotDelta",
    "SnapshotDeltaService",
    "SnapshotStorage",
    "compute_delta",
    # Risk
    "RiskClaim",
    "RiskClassificationEngine",
    "RiskSummary",
    # Service
    "ExposureAnalyticsService",
    "ExposureRunResult",
    "ExposureSourceError",
    # API Router (lazy loading)
    "get_exposure_api_router",
]
