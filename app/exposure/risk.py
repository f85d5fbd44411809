"""
Risk Classification Engine for open BI exposures.

Scores each workable BI exposure against a set of weighted patterns drawn
from historical over-limit payments, then keeps the claims with meaningful
risk (at least two patterns, or a score of at least 40) and tiers them.

Patterns:
- HIGH_RISK_STATE: state weight x 10
- RESERVES_EXCEED_80_PCT / RESERVES_EXCEED_LIMIT: reserve-to-limit ratio
- IN_LITIGATION, CP1_FLAG, AGE_365_PLUS
- SURGERY_INDICATOR, FATALITY, HOSPITALIZATION
- HIGH_TRIGGER_COUNT: 3+ aggravating factors
- HIGH_EVAL_EXCEEDS_LIMIT: high evaluation above 1.5x the policy limit
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from app.exposure import AGE_365_PLUS, RISK_TIERS, TIER_CRITICAL, TIER_HIGH, TIER_MODERATE
from app.exposure.filters import is_risk_candidate
from app.exposure.normalizer import ZERO, ExposureRecord
from app.exposure.policies import ExposurePolicies
from app.utils import setup_logging

logger = setup_logging()

HIGH_RISK_STATE = "HIGH_RISK_STATE"
RESERVES_EXCEED_80_PCT = "RESERVES_EXCEED_80_PCT"
RESERVES_EXCEED_LIMIT = "RESERVES_EXCEED_LIMIT"
IN_LITIGATION = "IN_LITIGATION"
CP1_FLAG = "CP1_FLAG"
AGED_365_PLUS = "AGE_365_PLUS"
SURGERY_INDICATOR = "SURGERY_INDICATOR"
FATALITY = "FATALITY"
HOSPITALIZATION = "HOSPITALIZATION"
HIGH_TRIGGER_COUNT = "HIGH_TRIGGER_COUNT"
HIGH_EVAL_EXCEEDS_LIMIT = "HIGH_EVAL_EXCEEDS_LIMIT"

PATTERN_DESCRIPTIONS: Dict[str, str] = {
    HIGH_RISK_STATE: "Claim in state with high historical over-limit frequency (TX, NV, CA, GA, NM, CO, AL)",
    RESERVES_EXCEED_80_PCT: "BI reserves exceed 80% of policy limit - approaching threshold",
    RESERVES_EXCEED_LIMIT: "Current reserves already exceed policy limit",
    IN_LITIGATION: "Claim is in litigation with unpredictable outcomes",
    CP1_FLAG: "CP1 flagged for complex/high-value exposure",
    AGED_365_PLUS: "Claim aged 365+ days with unresolved BI exposure",
    SURGERY_INDICATOR: "Surgery indicator - high medical severity",
    FATALITY: "Fatality claim - maximum exposure risk",
    HOSPITALIZATION: "Hospitalization indicator - elevated medical costs",
    HIGH_TRIGGER_COUNT: "3+ aggravating factors identified",
    HIGH_EVAL_EXCEEDS_LIMIT: "High evaluation more than 1.5x the policy limit",
}


def _format_amount(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return f"{int(amount):,}"
    return f"{amount:,.2f}"


@dataclass(frozen=True)
class RiskPattern:
    """Catalog entry for one risk pattern."""

    pattern: str
    weight: int
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {"pattern": self.pattern, "weight": self.weight, "description": self.description}


@dataclass
class RiskClaim:
    """One BI exposure with its score, tier and matched patterns."""

    claim_number: str
    claimant: str
    state: str
    coverage: str
    reserves: Decimal
    policy_limit: int
    reserve_to_limit_ratio: float
    age_bucket: str
    age_days: int
    risk_score: int
    risk_tier: str
    pattern_matches: List[str] = field(default_factory=list)
    trigger_factors: List[str] = field(default_factory=list)
    in_litigation: bool = False
    cp1_flag: bool = False
    injury_severity: str = ""
    type_group: str = ""
    team_group: str = ""
    evaluation_phase: str = ""
    demand_type: str = ""
    bi_status: str = ""
    adjuster: str = ""
    area: str = ""
    accident_description: str = ""
    trigger_total: int = 0
    low_eval: Decimal = ZERO
    high_eval: Decimal = ZERO
    total_paid: Decimal = ZERO

    @property
    def over_limit_amount(self) -> Decimal:
        """Reserves above the policy limit (0 when within limit)."""
        excess = self.reserves - Decimal(self.policy_limit)
        return excess if excess > 0 else ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claim_number": self.claim_number,
            "claimant": self.claimant,
            "state": self.state,
            "coverage": self.coverage,
            "reserves": float(self.reserves),
            "policy_limit": self.policy_limit,
            "reserve_to_limit_ratio": round(self.reserve_to_limit_ratio, 4),
            "age_bucket": self.age_bucket,
            "age_days": self.age_days,
            "risk_score": self.risk_score,
            "risk_tier": self.risk_tier,
            "pattern_matches": list(self.pattern_matches),
            "trigger_factors": list(self.trigger_factors),
            "in_litigation": self.in_litigation,
            "cp1_flag": self.cp1_flag,
            "injury_severity": self.injury_severity,
            "type_group": self.type_group,
            "team_group": self.team_group,
            "evaluation_phase": self.evaluation_phase,
            "demand_type": self.demand_type,
            "bi_status": self.bi_status,
            "adjuster": self.adjuster,
            "area": self.area,
            "accident_description": self.accident_description,
            "trigger_total": self.trigger_total,
            "low_eval": float(self.low_eval),
            "high_eval": float(self.high_eval),
            "total_paid": float(self.total_paid),
        }


@dataclass
class RiskSummary:
    """Portfolio view over the at-risk claims."""

    total_at_risk: int = 0
    tier_counts: Dict[str, int] = field(default_factory=lambda: {t: 0 for t in RISK_TIERS})
    tier_reserves: Dict[str, Decimal] = field(default_factory=lambda: {t: ZERO for t in RISK_TIERS})
    total_exposure: Decimal = ZERO
    potential_over_limit: Decimal = ZERO
    avg_risk_score: float = 0.0
    by_state: List[Dict[str, Any]] = field(default_factory=list)
    by_pattern: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_at_risk": self.total_at_risk,
            "critical_count": self.tier_counts[TIER_CRITICAL],
            "high_count": self.tier_counts[TIER_HIGH],
            "moderate_count": self.tier_counts[TIER_MODERATE],
            "tier_reserves": {tier: float(v) for tier, v in self.tier_reserves.items()},
            "total_exposure": float(self.total_exposure),
            "potential_over_limit": float(self.potential_over_limit),
            "avg_risk_score": round(self.avg_risk_score, 2),
            "by_state": [
                {**row, "total_reserves": float(row["total_reserves"])} for row in self.by_state
            ],
            "by_pattern": list(self.by_pattern),
        }


class RiskClassificationEngine:
    """
    Weighted multi-pattern risk scoring for BI exposures.

    Example:
        engine = RiskClassificationEngine(policies)
        claims = engine.classify(records)
        summary = engine.summarize(claims)
    """

    def __init__(self, policies: Optional[ExposurePolicies] = None):
        self.policies = policies or ExposurePolicies()

    def pattern_catalog(self) -> List[RiskPattern]:
        """Pattern ids, weights and descriptions, in scoring order."""
        weights = {HIGH_RISK_STATE: self.policies.state_weight_multiplier}
        weights.update(self.policies.pattern_weights)
        return [
            RiskPattern(pattern=pattern, weight=weights.get(pattern, 0), description=description)
            for pattern, description in PATTERN_DESCRIPTIONS.items()
        ]

    def score_record(self, record: ExposureRecord) -> RiskClaim:
        """
        Score one exposure against every pattern.

        Does not apply the inclusion gate; see classify().
        """
        policies = self.policies
        thresholds = policies.thresholds
        state = record.state
        reserves = record.open_reserves
        policy_limit = policies.policy_limit_for(state)
        ratio = float(reserves) / policy_limit if policy_limit > 0 else 0.0

        score = 0
        patterns: List[str] = []
        reasons: List[str] = []

        def match(pattern: str, reason: str, weight: Optional[int] = None) -> None:
            nonlocal score
            score += policies.pattern_weight(pattern) if weight is None else weight
            patterns.append(pattern)
            reasons.append(reason)

        state_weight = policies.high_risk_state_weights.get(state)
        if state_weight is not None:
            match(HIGH_RISK_STATE, f"High-risk state: {state}", state_weight * policies.state_weight_multiplier)

        if ratio >= thresholds.reserve_ratio and reserves > 0:
            match(RESERVES_EXCEED_80_PCT, f"Reserves at {ratio * 100:.0f}% of limit")

        if reserves > policy_limit and reserves > 0:
            match(RESERVES_EXCEED_LIMIT, "Reserves exceed policy limit")

        if record.in_litigation:
            match(IN_LITIGATION, "Active litigation")

        if record.cp1_flag:
            match(CP1_FLAG, "CP1 flagged")

        if record.age_days >= thresholds.aged_days or record.age_bucket == AGE_365_PLUS:
            reason = f"{record.age_days} days old" if record.age_days > 0 else record.age_bucket
            match(AGED_365_PLUS, reason)

        if record.surgery:
            match(SURGERY_INDICATOR, "Surgery indicated")

        if record.fatality:
            match(FATALITY, "FATALITY")

        if record.hospitalization:
            match(HOSPITALIZATION, "Hospitalization")

        if record.trigger_total >= thresholds.trigger_count:
            match(HIGH_TRIGGER_COUNT, f"{record.trigger_total} aggravating factors")

        if record.high_eval > Decimal(policy_limit) * Decimal(str(thresholds.high_eval_limit_multiple)):
            match(HIGH_EVAL_EXCEEDS_LIMIT, f"High eval ${_format_amount(record.high_eval)} exceeds limit")

        return RiskClaim(
            claim_number=record.claim_number,
            claimant=record.claimant,
            state=state,
            coverage=record.coverage,
            reserves=reserves,
            policy_limit=policy_limit,
            reserve_to_limit_ratio=ratio,
            age_bucket=record.age_bucket,
            age_days=record.age_days,
            risk_score=score,
            risk_tier=self.tier_for(score),
            pattern_matches=patterns,
            trigger_factors=reasons,
            in_litigation=record.in_litigation,
            cp1_flag=record.cp1_flag,
            injury_severity=record.injury_severity,
            type_group=record.type_group,
            team_group=record.team_group,
            evaluation_phase=record.evaluation_phase,
            demand_type=record.demand_type,
            bi_status=record.bi_status,
            adjuster=record.adjuster,
            area=record.area,
            accident_description=record.accident_description,
            trigger_total=record.trigger_total,
            low_eval=record.low_eval,
            high_eval=record.high_eval,
            total_paid=record.total_paid,
        )

    def tier_for(self, score: int) -> str:
        thresholds = self.policies.thresholds
        if score >= thresholds.critical_score:
            return TIER_CRITICAL
        if score >= thresholds.high_score:
            return TIER_HIGH
        return TIER_MODERATE

    def passes_gate(self, claim: RiskClaim) -> bool:
        thresholds = self.policies.thresholds
        return (
            len(claim.pattern_matches) >= thresholds.gate_min_patterns
            or claim.risk_score >= thresholds.gate_min_score
        )

    def classify(self, records: Iterable[ExposureRecord]) -> List[RiskClaim]:
        """
        Score workable BI records and keep those with meaningful risk.

        Returns:
            Claims sorted by score desc, then reserves desc, then claim number
        """
        claims = []
        for record in records:
            if not is_risk_candidate(record, self.policies):
                continue
            claim = self.score_record(record)
            if self.passes_gate(claim):
                claims.append(claim)

        claims.sort(key=lambda c: (-c.risk_score, -c.reserves, c.claim_number))
        logger.info(
            "Risk classification flagged %s claims (%s critical)",
            len(claims),
            sum(1 for c in claims if c.risk_tier == TIER_CRITICAL),
        )
        return claims

    def summarize(self, claims: List[RiskClaim]) -> RiskSummary:
        summary = RiskSummary(total_at_risk=len(claims))
        if not claims:
            return summary

        by_state: Dict[str, Dict[str, Any]] = {}
        by_pattern: Dict[str, int] = {}
        score_total = 0

        for claim in claims:
            summary.tier_counts[claim.risk_tier] += 1
            summary.tier_reserves[claim.risk_tier] += claim.reserves
            summary.total_exposure += claim.reserves
            summary.potential_over_limit += claim.over_limit_amount
            score_total += claim.risk_score

            if claim.state:
                entry = by_state.setdefault(
                    claim.state, {"count": 0, "total_reserves": ZERO, "score_total": 0}
                )
                entry["count"] += 1
                entry["total_reserves"] += claim.reserves
                entry["score_total"] += claim.risk_score

            for pattern in claim.pattern_matches:
                by_pattern[pattern] = by_pattern.get(pattern, 0) + 1

        summary.avg_risk_score = score_total / len(claims)
        summary.by_state = sorted(
            (
                {
                    "state": state,
                    "count": entry["count"],
                    "total_reserves": entry["total_reserves"],
                    "avg_risk_score": round(entry["score_total"] / entry["count"], 2),
                }
                for state, entry in by_state.items()
            ),
            key=lambda row: (-row["count"], row["state"]),
        )
        summary.by_pattern = sorted(
            ({"pattern": pattern, "count": count} for pattern, count in by_pattern.items()),
            key=lambda row: (-row["count"], row["pattern"]),
        )
        return summary

    @staticmethod
    def claims_by_tier(claims: Iterable[RiskClaim], tier: str) -> List[RiskClaim]:
        tier = (tier or "").upper()
        return [c for c in claims if c.risk_tier == tier]

    @staticmethod
    def claims_by_state(claims: Iterable[RiskClaim], state: str) -> List[RiskClaim]:
        state = (state or "").upper().strip()
        return [c for c in claims if c.state.upper() == state]
