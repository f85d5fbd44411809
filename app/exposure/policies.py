"""
Exposure Policy Loader

Policy tables used by the inclusion filter, the risk classification engine
and the snapshot delta fallback. These are business policy, not mutable
state: an ExposurePolicies value is built once (from built-in defaults or a
JSON policy document) and passed into each engine, so tests can substitute
their own tables.

Usage:
    loader = ExposurePolicyLoader()
    policies = loader.load_policies("prompts/claims-exposure-policies.json")

    engine = RiskClassificationEngine(policies)
"""

import json
from dataclasses import dataclass, field, replace
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Tuple

from app.exposure import FINANCIAL_COVERAGES

# Status values that mean the exposure is no longer workable. Matched
# case-insensitively as substrings of both Status and BI Status.
NON_WORKABLE_BI_STATUSES: Tuple[str, ...] = (
    "settled pending docs",
    "conditional",
    "court approval pending",
    "settled pending drafting instructions",
    "pending friendly suits",
    "pending payment",
    "future medical release",
    "past medical release",
    "spd-lit",
    "passed/future medical release",
    "limits tendered cp1",
)

# Broader markers for settled variants ("Settled", "Settled - awaiting release").
# Any Status or BI Status containing one of these is not workable.
NON_WORKABLE_STATUS_MARKERS: Tuple[str, ...] = ("settled", "spd")

# Evaluation Phase values that take an exposure out of the workable inventory
NON_WORKABLE_EVALUATION_PHASES: Tuple[str, ...] = ("limits tendered cp1",)

# Exposure Category markers for settled / pending-documentation exposures
SETTLED_EXPOSURE_CATEGORIES: Tuple[str, ...] = ("spd", "settled pending docs")

# Claim Status values for closed exposures
CLOSED_STATUSES: Tuple[str, ...] = ("closed",)

# State BI policy limits
STATE_BI_LIMITS: Dict[str, int] = {
    "TEXAS": 30000,
    "CALIFORNIA": 15000,
    "NEVADA": 25000,
    "GEORGIA": 25000,
    "NEW MEXICO": 25000,
    "COLORADO": 25000,
    "ALABAMA": 25000,
    "OKLAHOMA": 25000,
    "ARIZONA": 25000,
    "NEW JERSEY": 15000,
    "FLORIDA": 10000,
}
DEFAULT_POLICY_LIMIT = 25000

# High-risk states by historical over-limit frequency (weight x 10 points)
HIGH_RISK_STATE_WEIGHTS: Dict[str, int] = {
    "TEXAS": 3,
    "NEVADA": 3,
    "CALIFORNIA": 3,
    "GEORGIA": 2,
    "NEW MEXICO": 2,
    "COLORADO": 1,
    "ALABAMA": 1,
    "OKLAHOMA": 2,
    "ARIZONA": 2,
}
STATE_WEIGHT_MULTIPLIER = 10

# Pattern weights. HIGH_RISK_STATE is scored from the state weight table.
PATTERN_WEIGHTS: Dict[str, int] = {
    "RESERVES_EXCEED_80_PCT": 25,
    "RESERVES_EXCEED_LIMIT": 35,
    "IN_LITIGATION": 20,
    "CP1_FLAG": 15,
    "AGE_365_PLUS": 15,
    "SURGERY_INDICATOR": 20,
    "FATALITY": 40,
    "HOSPITALIZATION": 15,
    "HIGH_TRIGGER_COUNT": 15,
    "HIGH_EVAL_EXCEEDS_LIMIT": 20,
}


@dataclass(frozen=True)
class DeltaBaseline:
    """Known inventory totals used when no prior snapshot exists."""

    snapshot_date: str = "2026-01-02"
    total_claims: int = 10109
    total_exposures: int = 19501
    total_reserves: Decimal = Decimal("127450000")
    cp1_rate: float = 0.0


@dataclass(frozen=True)
class RiskThresholds:
    """Thresholds for the risk patterns, gate and tiers."""

    reserve_ratio: float = 0.8
    high_eval_limit_multiple: float = 1.5
    trigger_count: int = 3
    aged_days: int = 365
    gate_min_patterns: int = 2
    gate_min_score: int = 40
    critical_score: int = 80
    high_score: int = 50


_LOWERED_TABLES = (
    "non_workable_bi_statuses",
    "non_workable_status_markers",
    "non_workable_evaluation_phases",
    "settled_exposure_categories",
    "closed_statuses",
)


def _lowered(values: Any) -> Tuple[str, ...]:
    if isinstance(values, str) or not hasattr(values, "__iter__"):
        raise ValueError("Expected a list of strings")
    return tuple(str(v).strip().lower() for v in values)


@dataclass(frozen=True)
class ExposurePolicies:
    """Complete, injectable set of policy tables."""

    version: str = "1.0"
    effective_date: str = ""
    non_workable_bi_statuses: Tuple[str, ...] = NON_WORKABLE_BI_STATUSES
    non_workable_status_markers: Tuple[str, ...] = NON_WORKABLE_STATUS_MARKERS
    non_workable_evaluation_phases: Tuple[str, ...] = NON_WORKABLE_EVALUATION_PHASES
    settled_exposure_categories: Tuple[str, ...] = SETTLED_EXPOSURE_CATEGORIES
    closed_statuses: Tuple[str, ...] = CLOSED_STATUSES
    financial_coverages: FrozenSet[str] = FINANCIAL_COVERAGES
    state_limits: Dict[str, int] = field(default_factory=lambda: dict(STATE_BI_LIMITS))
    default_policy_limit: int = DEFAULT_POLICY_LIMIT
    high_risk_state_weights: Dict[str, int] = field(
        default_factory=lambda: dict(HIGH_RISK_STATE_WEIGHTS)
    )
    state_weight_multiplier: int = STATE_WEIGHT_MULTIPLIER
    pattern_weights: Dict[str, int] = field(default_factory=lambda: dict(PATTERN_WEIGHTS))
    thresholds: RiskThresholds = field(default_factory=RiskThresholds)
    baseline: DeltaBaseline = field(default_factory=DeltaBaseline)

    def __post_init__(self) -> None:
        # Inclusion tables are matched against lower-cased column values
        for name in _LOWERED_TABLES:
            object.__setattr__(self, name, _lowered(getattr(self, name)))

    def policy_limit_for(self, state: str) -> int:
        """Policy limit for a state, falling back to the default limit."""
        return self.state_limits.get((state or "").upper().strip(), self.default_policy_limit)

    def pattern_weight(self, pattern: str) -> int:
        return self.pattern_weights.get(pattern, 0)

    def with_overrides(self, **changes: Any) -> "ExposurePolicies":
        """Copy with selected tables replaced (handy for tests and what-ifs)."""
        return replace(self, **changes)


class ExposurePolicyLoader:
    """
    Loads exposure policy tables from a JSON document.

    Keys missing from the document keep their built-in defaults, so a
    document only needs to carry the tables it changes.

    Example:
        loader = ExposurePolicyLoader()
        policies = loader.load_policies("prompts/claims-exposure-policies.json")
        policies.policy_limit_for("TEXAS")  # 30000
    """

    def __init__(self) -> None:
        self._policies: Optional[ExposurePolicies] = None
        self._source: Optional[Path] = None

    @property
    def is_loaded(self) -> bool:
        """Check if a policy document has been loaded."""
        return self._policies is not None

    @property
    def policies(self) -> ExposurePolicies:
        """Loaded policies, or the built-in defaults when nothing was loaded."""
        return self._policies if self._policies is not None else ExposurePolicies()

    @property
    def source(self) -> Optional[Path]:
        return self._source

    def load_policies(self, path: str | Path) -> ExposurePolicies:
        """
        Load policies from a JSON file.

        Args:
            path: Path to the exposure policy JSON file.

        Returns:
            The parsed ExposurePolicies.

        Raises:
            FileNotFoundError: If the policy file doesn't exist.
            json.JSONDecodeError: If the file contains invalid JSON.
            ValueError: If the file structure is invalid.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Policy file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        self._policies = self.parse_document(data)
        self._source = path
        return self._policies

    def parse_document(self, data: Dict[str, Any]) -> ExposurePolicies:
        """Parse raw JSON data into ExposurePolicies."""
        if not isinstance(data, dict):
            raise ValueError("Policy document must be a JSON object")

        defaults = ExposurePolicies()
        inclusion = self._section(data, "inclusion")
        risk = self._section(data, "risk")
        baseline_data = self._section(data, "baseline")

        return ExposurePolicies(
            version=str(data.get("version", defaults.version)),
            effective_date=str(data.get("effective_date", defaults.effective_date)),
            non_workable_bi_statuses=_lowered(
                inclusion.get("non_workable_bi_statuses", defaults.non_workable_bi_statuses)
            ),
            non_workable_status_markers=_lowered(
                inclusion.get("non_workable_status_markers", defaults.non_workable_status_markers)
            ),
            non_workable_evaluation_phases=_lowered(
                inclusion.get(
                    "non_workable_evaluation_phases", defaults.non_workable_evaluation_phases
                )
            ),
            settled_exposure_categories=_lowered(
                inclusion.get("settled_exposure_categories", defaults.settled_exposure_categories)
            ),
            closed_statuses=_lowered(
                inclusion.get("closed_statuses", defaults.closed_statuses)
            ),
            financial_coverages=frozenset(
                str(c).upper() for c in inclusion.get("financial_coverages", defaults.financial_coverages)
            ),
            state_limits=self._int_table(risk.get("state_limits", defaults.state_limits)),
            default_policy_limit=int(risk.get("default_policy_limit", defaults.default_policy_limit)),
            high_risk_state_weights=self._int_table(
                risk.get("high_risk_state_weights", defaults.high_risk_state_weights)
            ),
            state_weight_multiplier=int(
                risk.get("state_weight_multiplier", defaults.state_weight_multiplier)
            ),
            pattern_weights={
                **defaults.pattern_weights,
                **{str(k): int(v) for k, v in risk.get("pattern_weights", {}).items()},
            },
            thresholds=self._parse_thresholds(risk.get("thresholds", {}), defaults.thresholds),
            baseline=self._parse_baseline(baseline_data, defaults.baseline),
        )

    @staticmethod
    def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
        section = data.get(key, {})
        if not isinstance(section, dict):
            raise ValueError(f"Policy section '{key}' must be an object")
        return section

    @staticmethod
    def _int_table(table: Any) -> Dict[str, int]:
        if not isinstance(table, dict):
            raise ValueError("Expected an object mapping state to number")
        return {str(k).upper().strip(): int(v) for k, v in table.items()}

    @staticmethod
    def _parse_thresholds(data: Dict[str, Any], defaults: RiskThresholds) -> RiskThresholds:
        return RiskThresholds(
            reserve_ratio=float(data.get("reserve_ratio", defaults.reserve_ratio)),
            high_eval_limit_multiple=float(
                data.get("high_eval_limit_multiple", defaults.high_eval_limit_multiple)
            ),
            trigger_count=int(data.get("trigger_count", defaults.trigger_count)),
            aged_days=int(data.get("aged_days", defaults.aged_days)),
            gate_min_patterns=int(data.get("gate_min_patterns", defaults.gate_min_patterns)),
            gate_min_score=int(data.get("gate_min_score", defaults.gate_min_score)),
            critical_score=int(data.get("critical_score", defaults.critical_score)),
            high_score=int(data.get("high_score", defaults.high_score)),
        )

    @staticmethod
    def _parse_baseline(data: Dict[str, Any], defaults: DeltaBaseline) -> DeltaBaseline:
        return DeltaBaseline(
            snapshot_date=str(data.get("snapshot_date", defaults.snapshot_date)),
            total_claims=int(data.get("total_claims", defaults.total_claims)),
            total_exposures=int(data.get("total_exposures", defaults.total_exposures)),
            total_reserves=Decimal(str(data.get("total_reserves", defaults.total_reserves))),
            cp1_rate=float(data.get("cp1_rate", defaults.cp1_rate)),
        )
