"""
Record Normalizer

Parses raw export rows into typed ExposureRecord values. Every parser is
total: malformed input degrades to a safe default (0, False, None) instead of
raising, so a single bad row cannot abort a pass over thousands of rows.

Usage:
    from app.exposure.normalizer import normalize_record

    record = normalize_record({"Claim#": "65-158035-1", "Open Reserves": "$50,000"})
    record.open_reserves  # Decimal("50000")
"""

import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Union

from app.exposure import (
    AGE_181_TO_365,
    AGE_365_PLUS,
    AGE_61_TO_180,
    AGE_UNDER_60,
)
from app.exposure.fields import SEVERITY_FLAG_COLUMNS, SEVERITY_FLAGS, RawRecord

ZERO = Decimal("0")

_CURRENCY_STRIP = re.compile(r"[$,\s]")
_BLANK_MARKERS = {"(blank)", "blank"}
_TRUTHY = {"yes", "y", "true", "1"}

# Derived flag thresholds
PAIN_LEVEL_THRESHOLD = 5
EGGSHELL_AGE_THRESHOLD = 69


def parse_currency(raw: Any) -> Decimal:
    """
    Parse a currency string into a Decimal.

    Strips "$", commas and whitespace. A fully parenthesized value is
    negative. Blank, "(blank)" and unparseable input return 0.

    Args:
        raw: Raw cell value (usually a string)

    Returns:
        Parsed amount, never raising
    """
    if raw is None:
        return ZERO
    cleaned = _CURRENCY_STRIP.sub("", str(raw))
    if not cleaned or cleaned.lower() in _BLANK_MARKERS:
        return ZERO

    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1]

    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return ZERO
    if not value.is_finite():
        return ZERO
    return -value if negative else value


def parse_boolean(raw: Any) -> bool:
    """Case-insensitive yes/y/true/1 check; everything else is False."""
    if raw is None:
        return False
    return str(raw).strip().lower() in _TRUTHY


def parse_optional_int(raw: Any) -> Optional[int]:
    """Parse an integer, returning None for blank or unparseable input."""
    if raw is None:
        return None
    cleaned = str(raw).replace(",", "").strip()
    if not cleaned:
        return None
    try:
        return int(cleaned)
    except ValueError:
        pass
    try:
        as_float = float(cleaned)
    except ValueError:
        return None
    if math.isnan(as_float) or math.isinf(as_float):
        return None
    return int(as_float)


def parse_int(raw: Any, default: int = 0) -> int:
    """Parse an integer, returning the default for blank or unparseable input."""
    value = parse_optional_int(raw)
    return default if value is None else value


def parse_optional_float(raw: Any) -> Optional[float]:
    """Parse a float, returning None for blank or unparseable input."""
    if raw is None:
        return None
    cleaned = str(raw).replace(",", "").strip()
    if not cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def parse_age_bucket(label: Optional[str], days: int) -> str:
    """
    Resolve the age bucket for an exposure.

    A recognized bucket label is authoritative and always wins over the value
    computed from elapsed days; the computed value is only a fallback.

    Args:
        label: Pre-bucketed label from the export (may be blank)
        days: Elapsed days open

    Returns:
        One of the AGE_* labels
    """
    normalized = (label or "").strip().lower().replace("–", "-").replace("—", "-")
    normalized = re.sub(r"\s*-\s*", "-", normalized)

    if "365+" in normalized:
        return AGE_365_PLUS
    if "181-365" in normalized:
        return AGE_181_TO_365
    if "61-180" in normalized:
        return AGE_61_TO_180
    if "under 60" in normalized or "<60" in normalized.replace(" ", ""):
        return AGE_UNDER_60

    if days >= 365:
        return AGE_365_PLUS
    if days >= 181:
        return AGE_181_TO_365
    if days >= 61:
        return AGE_61_TO_180
    return AGE_UNDER_60


def derive_cp1_flag(overall: str, exposure_flag: str, claim_flag: str) -> bool:
    """
    Derive the CP1 flag.

    A non-blank overall flag is authoritative. Only when it is blank do the
    exposure and claim component flags apply (OR'd).
    """
    if overall and overall.strip():
        return parse_boolean(overall)
    return parse_boolean(exposure_flag) or parse_boolean(claim_flag)


def parse_litigation(raw: str) -> bool:
    """True for yes-ish values or an indicator reading like "In Litigation"."""
    if parse_boolean(raw):
        return True
    normalized = (raw or "").strip().lower()
    if "litigation" not in normalized:
        return False
    return not normalized.startswith(("not", "non", "no "))


@dataclass(frozen=True)
class ExposureRecord:
    """
    Normalized view of one exposure row.

    Created once per pass and never mutated.
    """

    claim_number: str
    claimant: str
    coverage: str
    type_group: str
    status: str
    exposure_category: str
    age_days: int
    age_bucket: str
    open_reserves: Decimal
    low_eval: Decimal
    high_eval: Decimal
    total_paid: Decimal
    cp1_flag: bool
    evaluation_phase: str
    demand_type: str
    team_group: str
    adjuster: str
    area: str
    bi_status: str
    days_since_negotiation: Optional[int]
    state: str
    in_litigation: bool
    injury_severity: str
    accident_description: str
    trigger_total: int
    claimant_age: int
    end_pain_level: Optional[float]

    # Severity / injury flags
    fatality: bool = False
    surgery: bool = False
    meds_vs_limits: bool = False
    hospitalization: bool = False
    loss_of_consciousness: bool = False
    aggravating_factors: bool = False
    objective_injuries: bool = False
    pedestrian_pregnancy: bool = False
    life_care_planner: bool = False
    injections: bool = False
    ems_heavy_impact: bool = False
    confirmed_fractures: bool = False
    lacerations: bool = False
    prior_surgery: bool = False
    pregnancy: bool = False
    pain_level_5_plus: bool = False
    eggshell_69_plus: bool = False

    @property
    def has_no_evaluation(self) -> bool:
        """Both low and high evaluation are exactly zero."""
        return self.low_eval == ZERO and self.high_eval == ZERO

    @property
    def severity_flags(self) -> Dict[str, bool]:
        return {name: getattr(self, name) for name in SEVERITY_FLAGS}

    @property
    def flag_count(self) -> int:
        return sum(1 for name in SEVERITY_FLAGS if getattr(self, name))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for drilldown/export consumers."""
        return {
            "claim_number": self.claim_number,
            "claimant": self.claimant,
            "coverage": self.coverage,
            "type_group": self.type_group,
            "age_days": self.age_days,
            "age_bucket": self.age_bucket,
            "open_reserves": float(self.open_reserves),
            "low_eval": float(self.low_eval),
            "high_eval": float(self.high_eval),
            "total_paid": float(self.total_paid),
            "cp1_flag": self.cp1_flag,
            "evaluation_phase": self.evaluation_phase,
            "demand_type": self.demand_type,
            "team_group": self.team_group,
            "adjuster": self.adjuster,
            "bi_status": self.bi_status,
            "days_since_negotiation": self.days_since_negotiation,
            "state": self.state,
            "in_litigation": self.in_litigation,
            "flag_count": self.flag_count,
        }


def normalize_record(row: Union[Mapping[str, Any], RawRecord]) -> ExposureRecord:
    """
    Parse one raw export row into an ExposureRecord.

    Args:
        row: Raw field map or an existing RawRecord

    Returns:
        Normalized, immutable ExposureRecord
    """
    raw = row if isinstance(row, RawRecord) else RawRecord(row)

    days = parse_int(raw.days_open)
    claimant_age = parse_int(raw.claimant_age)
    end_pain_level = parse_optional_float(raw.end_pain_level)

    flags = {name: parse_boolean(raw.severity_flag(name)) for name in SEVERITY_FLAG_COLUMNS}
    flags["pain_level_5_plus"] = end_pain_level is not None and end_pain_level >= PAIN_LEVEL_THRESHOLD
    flags["eggshell_69_plus"] = claimant_age >= EGGSHELL_AGE_THRESHOLD

    return ExposureRecord(
        claim_number=raw.claim_number,
        claimant=raw.claimant,
        coverage=raw.coverage.upper(),
        type_group=raw.type_group,
        status=raw.status,
        exposure_category=raw.exposure_category,
        age_days=days,
        age_bucket=parse_age_bucket(raw.age_label, days),
        open_reserves=parse_currency(raw.open_reserves),
        low_eval=parse_currency(raw.low_eval),
        high_eval=parse_currency(raw.high_eval),
        total_paid=parse_currency(raw.total_paid),
        cp1_flag=derive_cp1_flag(raw.overall_cp1, raw.cp1_exposure_flag, raw.cp1_claim_flag),
        evaluation_phase=raw.evaluation_phase,
        demand_type=raw.demand_type,
        team_group=raw.team_group,
        adjuster=raw.adjuster,
        area=raw.area,
        bi_status=raw.bi_status,
        days_since_negotiation=parse_optional_int(raw.days_since_negotiation),
        state=raw.state.upper(),
        in_litigation=parse_litigation(raw.litigation_indicator),
        injury_severity=raw.injury_severity,
        accident_description=raw.accident_description,
        trigger_total=parse_int(raw.trigger_total),
        claimant_age=claimant_age,
        end_pain_level=end_pain_level,
        **flags,
    )
