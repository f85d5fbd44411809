"""
Tests for Phase 7: Risk Classification Engine
Feature: 009-claims-exposure-reporting

Tests cover:
- Individual pattern scoring and reason strings
- Inclusion gate (2+ patterns or score >= 40)
- Tier thresholds
- Candidate selection (workable BI only)
- Ordering and portfolio summary
- Pattern catalog
"""
import pytest
from decimal import Decimal

from app.exposure import TIER_CRITICAL, TIER_HIGH, TIER_MODERATE
from app.exposure.normalizer import normalize_record
from app.exposure.policies import ExposurePolicies
from app.exposure.risk import PATTERN_DESCRIPTIONS, RiskClassificationEngine


def bi_record(claim="65-1-1", **columns):
    row = {
        "Claim#": claim,
        "Coverage": "BI",
        "Status": "Open",
        "BI Status": "In Progress",
        "Accident Location State": "OHIO",
        "Open Reserves": "$1,000",
        "Age": "Under 60 Days",
    }
    row.update(columns)
    return normalize_record(row)


@pytest.fixture
def engine():
    return RiskClassificationEngine()


class TestPatternScoring:
    """Each pattern contributes its weight, id and reason."""

    def test_fatality_alone_passes_gate(self, engine):
        claims = engine.classify([bi_record(FATALITY="Yes")])

        assert len(claims) == 1
        assert claims[0].pattern_matches == ["FATALITY"]
        assert claims[0].risk_score >= 40
        assert claims[0].trigger_factors == ["FATALITY"]

    def test_high_risk_state_weight(self, engine):
        claim = engine.score_record(bi_record(**{"Accident Location State": "Texas"}))

        assert claim.pattern_matches == ["HIGH_RISK_STATE"]
        assert claim.risk_score == 30
        assert claim.trigger_factors == ["High-risk state: TEXAS"]

    def test_reserves_over_limit(self, engine):
        claim = engine.score_record(bi_record(**{"Open Reserves": "$30,000"}))

        assert claim.policy_limit == 25000
        assert claim.reserve_to_limit_ratio == pytest.approx(1.2)
        assert claim.pattern_matches == ["RESERVES_EXCEED_80_PCT", "RESERVES_EXCEED_LIMIT"]
        assert claim.risk_score == 60
        assert claim.trigger_factors[0] == "Reserves at 120% of limit"

    def test_reserves_at_80_pct_only(self, engine):
        claim = engine.score_record(bi_record(**{"Open Reserves": "$20,000"}))

        assert claim.pattern_matches == ["RESERVES_EXCEED_80_PCT"]
        assert claim.trigger_factors == ["Reserves at 80% of limit"]

    def test_zero_reserves_never_match_ratio(self, engine):
        claim = engine.score_record(bi_record(**{"Open Reserves": "$0"}))

        assert claim.pattern_matches == []
        assert claim.risk_score == 0

    def test_age_reason_uses_days_when_known(self, engine):
        by_days = engine.score_record(bi_record(**{"Open/Closed Days": "400", "Age": ""}))
        by_label = engine.score_record(bi_record(Age="365+ Days"))

        assert by_days.trigger_factors == ["400 days old"]
        assert by_label.trigger_factors == ["365+ Days"]

    def test_high_eval_exceeds_limit(self, engine):
        claim = engine.score_record(bi_record(High="$40,000"))

        assert "HIGH_EVAL_EXCEEDS_LIMIT" in claim.pattern_matches
        assert "High eval $40,000 exceeds limit" in claim.trigger_factors

    def test_high_eval_at_multiple_does_not_match(self, engine):
        claim = engine.score_record(bi_record(High="$37,500"))

        assert "HIGH_EVAL_EXCEEDS_LIMIT" not in claim.pattern_matches

    def test_all_flag_patterns(self, engine):
        claim = engine.score_record(bi_record(**{
            "In Litigation Indicator": "In Litigation",
            "Overall CP1 Flag": "Yes",
            "SURGERY": "Yes",
            "HOSPITALIZATION": "Yes",
            "TRIGGER TOTAL": "3",
        }))

        assert claim.pattern_matches == [
            "IN_LITIGATION", "CP1_FLAG", "SURGERY_INDICATOR", "HOSPITALIZATION", "HIGH_TRIGGER_COUNT",
        ]
        assert claim.risk_score == 20 + 15 + 20 + 15 + 15
        assert "3 aggravating factors" in claim.trigger_factors

    def test_injected_weights(self):
        policies = ExposurePolicies().with_overrides(
            pattern_weights={**ExposurePolicies().pattern_weights, "CP1_FLAG": 50}
        )
        claim = RiskClassificationEngine(policies).score_record(bi_record(**{"Overall CP1 Flag": "Yes"}))

        assert claim.risk_score == 50


class TestGateAndTiers:

    def test_single_weak_pattern_filtered(self, engine):
        assert engine.classify([bi_record(**{"Overall CP1 Flag": "Yes"})]) == []

    def test_two_weak_patterns_pass(self, engine):
        claims = engine.classify([bi_record(**{"Overall CP1 Flag": "Yes", "HOSPITALIZATION": "Yes"})])

        assert len(claims) == 1
        assert claims[0].risk_score == 30
        assert claims[0].risk_tier == TIER_MODERATE

    @pytest.mark.parametrize("score,tier", [
        (0, TIER_MODERATE),
        (49, TIER_MODERATE),
        (50, TIER_HIGH),
        (79, TIER_HIGH),
        (80, TIER_CRITICAL),
        (200, TIER_CRITICAL),
    ])
    def test_tier_thresholds(self, engine, score, tier):
        assert engine.tier_for(score) == tier

    def test_every_emitted_claim_passes_gate(self, engine):
        records = [
            bi_record("65-1-1", **{"Overall CP1 Flag": "Yes"}),
            bi_record("65-2-1", FATALITY="Yes"),
            bi_record("65-3-1", **{"Accident Location State": "COLORADO"}),
            bi_record("65-4-1", **{"Accident Location State": "COLORADO", "SURGERY": "Yes"}),
            bi_record("65-5-1", **{"Open Reserves": "$100,000", "Accident Location State": "NEVADA"}),
        ]

        claims = engine.classify(records)

        assert {c.claim_number for c in claims} == {"65-2-1", "65-4-1", "65-5-1"}
        assert all(len(c.pattern_matches) >= 2 or c.risk_score >= 40 for c in claims)


class TestCandidates:

    def test_only_workable_bi(self, engine):
        records = [
            bi_record("65-1-1", FATALITY="Yes", Coverage="UM"),
            bi_record("65-2-1", FATALITY="Yes", **{"BI Status": "Pending Payment"}),
            bi_record("65-3-1", FATALITY="Yes"),
        ]

        assert [c.claim_number for c in engine.classify(records)] == ["65-3-1"]


class TestOrderingAndSummary:
    """Tests for sorting and summarize()."""

    @pytest.fixture
    def claims(self, engine):
        return engine.classify([
            bi_record("65-1-1", FATALITY="Yes", **{"Open Reserves": "$5,000"}),
            bi_record("65-2-1", FATALITY="Yes", **{"Open Reserves": "$9,000"}),
            bi_record("65-3-1", **{"Accident Location State": "TEXAS", "Open Reserves": "$45,000",
                                    "In Litigation Indicator": "Yes"}),
            bi_record("65-4-1", **{"Accident Location State": "TEXAS", "Overall CP1 Flag": "Yes"}),
        ])

    def test_sorted_by_score_then_reserves(self, claims):
        assert [c.claim_number for c in claims] == ["65-3-1", "65-4-1", "65-2-1", "65-1-1"]

    def test_summary(self, engine, claims):
        summary = engine.summarize(claims)

        # 65-3-1: 30 + 25 + 35 + 20 = 110; 65-4-1: 30 + 15 = 45; fatalities: 40 each
        assert summary.total_at_risk == 4
        assert summary.tier_counts == {TIER_CRITICAL: 1, TIER_HIGH: 0, TIER_MODERATE: 3}
        assert summary.tier_reserves[TIER_CRITICAL] == Decimal("45000")
        assert summary.total_exposure == Decimal("60000")
        assert summary.potential_over_limit == Decimal("15000")
        assert summary.avg_risk_score == pytest.approx((110 + 45 + 40 + 40) / 4)
        assert summary.by_state[0]["state"] == "OHIO"
        assert summary.by_state[0]["count"] == 2
        assert summary.by_state[1] == {
            "state": "TEXAS", "count": 2, "total_reserves": Decimal("46000"), "avg_risk_score": 77.5,
        }
        assert summary.by_pattern[0] == {"pattern": "FATALITY", "count": 2}

    def test_empty_summary(self, engine):
        data = engine.summarize([]).to_dict()

        assert data["total_at_risk"] == 0
        assert data["avg_risk_score"] == 0.0
        assert data["by_state"] == []

    def test_helpers(self, engine, claims):
        assert [c.claim_number for c in engine.claims_by_tier(claims, "critical")] == ["65-3-1"]
        assert len(engine.claims_by_state(claims, "texas")) == 2


class TestPatternCatalog:

    def test_catalog_covers_every_pattern(self, engine):
        catalog = engine.pattern_catalog()

        assert [p.pattern for p in catalog] == list(PATTERN_DESCRIPTIONS)
        weights = {p.pattern: p.weight for p in catalog}
        assert weights["HIGH_RISK_STATE"] == 10
        assert weights["FATALITY"] == 40
        assert weights["RESERVES_EXCEED_LIMIT"] == 35
