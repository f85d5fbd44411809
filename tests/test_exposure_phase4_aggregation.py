"""
Tests for Phase 4: Aggregation Pipeline
Feature: 009-claims-exposure-reporting

Tests cover:
- Row classification (classify_row) and the accumulator fold
- Unique-claim counting per type group
- Exclusion of non-workable rows from every total
- Financial, CP1, negotiation, BI status and severity rollups
- LIT phase-of-negotiation rollup
- Multi-pack incident scenario
- Deterministic output
"""
import json
import pytest
from decimal import Decimal
from unittest.mock import patch

from app.exposure import (
    AGE_181_TO_365,
    AGE_365_PLUS,
    AGE_UNDER_60,
    NEGOTIATION_0_30,
    NEGOTIATION_31_60,
    NEGOTIATION_90_PLUS,
    NEGOTIATION_NONE,
    STATUS_IN_PROGRESS,
    STATUS_OTHER,
    STATUS_SETTLED,
)
from app.exposure.aggregator import (
    ExposureAccumulator,
    ExposureAggregate,
    aggregate_rows,
    bi_status_bucket,
    classify_row,
    format_rate,
    negotiation_bucket,
)
from app.exposure.normalizer import normalize_record


def row(claim, **columns):
    data = {
        "Claim#": claim,
        "Coverage": "BI",
        "Status": "Open",
        "Type Group": "ATR",
        "BI Status": "In Progress",
        "Open Reserves": "$10,000",
        "Low": "$5,000",
        "High": "$8,000",
        "Overall CP1 Flag": "No",
        "Age": "Under 60 Days",
    }
    data.update(columns)
    return data


@pytest.fixture
def incident_rows():
    """Two BI exposures from the same incident."""
    common = {
        "Coverage": "BI",
        "BI Status": "In Progress",
        "Open Reserves": "$50,000",
        "Low": "$0",
        "High": "$0",
        "Overall CP1 Flag": "Yes",
        "Age": "365+ Days",
        "Type Group": "LIT",
    }
    return [
        {"Claim#": "65-158035-1", **common},
        {"Claim#": "65-158035-2", **common},
    ]


@pytest.fixture
def mixed_rows():
    return [
        row("65-200-1", **{"Days Since Negotiation Date": "10", "Demand Type": "Policy Limits"}),
        row("65-200-2", Coverage="UM", **{"Days Since Negotiation Date": "45"}),
        row("65-200-3", Coverage="PD", **{"Open Reserves": "$3,000"}),
        row("65-300-1", **{"Type Group": "LIT", "Overall CP1 Flag": "Yes", "Age": "181-365 Days",
                           "Evaluation Phase": "Pending Demand", "Demand Type": "Policy Limits",
                           "BI Status": "Demand Received", "Days Since Negotiation Date": "120",
                           "FATALITY": "Yes", "SURGERY": "Yes", "HOSPITALIZATION": "Yes"}),
        row("65-400-1", **{"BI Status": "Settled Pending Docs", "Open Reserves": "$999,999"}),
        row("65-500-1", Status="Closed"),
    ]


class TestHelpers:

    def test_format_rate(self):
        assert format_rate(1, 3) == "33.3"
        assert format_rate(0, 0) == "0.0"
        assert format_rate(5, 5) == "100.0"

    @pytest.mark.parametrize("days,expected", [
        (None, NEGOTIATION_NONE),
        (0, NEGOTIATION_0_30),
        (30, NEGOTIATION_0_30),
        (31, NEGOTIATION_31_60),
        (91, NEGOTIATION_90_PLUS),
    ])
    def test_negotiation_bucket(self, days, expected):
        assert negotiation_bucket(days) == expected

    def test_bi_status_bucket(self):
        assert bi_status_bucket("In Progress") == STATUS_IN_PROGRESS
        assert bi_status_bucket("Settled") == STATUS_SETTLED
        assert bi_status_bucket("Limits Tendered") == STATUS_OTHER
        assert bi_status_bucket("") == STATUS_OTHER


class TestClassifyRow:

    def test_non_workable_row_contributes_nothing(self):
        record = normalize_record(row("65-1-1", **{"BI Status": "Pending Payment"}))

        assert classify_row(record) is None

    def test_non_financial_row_has_no_financial_classification(self):
        contribution = classify_row(normalize_record(row("65-1-1", Coverage="PD")))

        assert contribution.is_financial is False
        assert contribution.negotiation_bucket is None

    def test_lit_row_carries_phase_and_blank_demand_label(self):
        record = normalize_record(row("65-1-1", **{"Type Group": "LIT", "Evaluation Phase": "Negotiation"}))
        contribution = classify_row(record)

        assert contribution.lit_phase == "Negotiation"
        assert contribution.lit_demand_type == "(blank)"
        assert contribution.demand_type is None


class TestIncidentScenario:
    """Two sibling BI exposures under base claim 65-158035."""

    def test_single_multi_pack_group(self, incident_rows):
        aggregate = aggregate_rows(incident_rows, report_date="2026-01-09")

        assert len(aggregate.multi_packs) == 1
        group = aggregate.multi_packs[0]
        assert group.base_claim_number == "65-158035"
        assert group.pack_size == 2
        assert aggregate.multi_pack_summary == {
            "2": {"group_count": 1, "claim_count": 2, "reserves": Decimal("100000")}
        }

    def test_multi_pack_dict_skips_full_serialization(self, incident_rows):
        aggregate = aggregate_rows(incident_rows, report_date="2026-01-09")

        with patch.object(ExposureAggregate, "to_dict", side_effect=AssertionError("full dump")):
            data = aggregate.multi_pack_dict()

        assert data["summary"] == {"2": {"group_count": 1, "claim_count": 2, "reserves": 100000.0}}
        assert data["groups"][0]["base_claim_number"] == "65-158035"
        assert json.dumps(data)

    def test_age_no_eval_and_bi_cp1(self, incident_rows):
        aggregate = aggregate_rows(incident_rows, report_date="2026-01-09")

        assert aggregate.age_totals[AGE_365_PLUS] == 2
        assert aggregate.no_eval_count == 2
        assert aggregate.no_eval_reserves == Decimal("100000")
        bi_365 = next(r for r in aggregate.bi_cp1_by_age if r["age"] == AGE_365_PLUS)
        assert bi_365["yes"] == 2
        assert bi_365["no"] == 0

    def test_lit_phase_rollup_blank_labels(self, incident_rows):
        aggregate = aggregate_rows(incident_rows, report_date="2026-01-09")

        assert aggregate.lit_phases == [{
            "phase": "(blank)",
            "total": 2,
            "demand_types": [{
                "demand_type": "(blank)",
                "total": 2,
                "by_age": {"365+ Days": 2, "181-365 Days": 0, "61-180 Days": 0, "Under 60 Days": 0},
            }],
        }]


class TestExclusion:

    def test_settled_pending_docs_excluded_everywhere(self):
        rows = [
            row("65-1-1"),
            row("65-2-1", **{"BI Status": "Settled Pending Docs", "Open Reserves": "$75,000",
                             "Overall CP1 Flag": "Yes", "Age": "365+ Days"}),
        ]

        aggregate = aggregate_rows(rows, report_date="2026-01-09")

        assert aggregate.total_claims == 1
        assert aggregate.total_exposures == 1
        assert aggregate.excluded_exposures == 1
        assert aggregate.total_reserves == Decimal("10000")
        assert aggregate.age_totals[AGE_365_PLUS] == 0
        assert aggregate.cp1["yes"] == 0
        assert aggregate.bi_exposures == 1

    def test_settled_and_limits_tendered_rows_excluded(self):
        rows = [
            row("65-1-1"),
            row("65-2-1", **{"BI Status": "Settled", "Open Reserves": "$60,000"}),
            row("65-3-1", **{"BI Status": "Limits Tendered CP1", "Open Reserves": "$60,000"}),
            row("65-4-1", **{"Evaluation Phase": "Limits Tendered CP1", "Open Reserves": "$60,000"}),
        ]

        aggregate = aggregate_rows(rows, report_date="2026-01-09")

        assert aggregate.total_exposures == 1
        assert aggregate.excluded_exposures == 3
        assert aggregate.total_reserves == Decimal("10000")
        assert aggregate.bi_status[STATUS_SETTLED]["count"] == 0


class TestTotals:
    """Tests over a mixed export."""

    def test_claim_and_exposure_counts(self, mixed_rows):
        aggregate = aggregate_rows(mixed_rows, report_date="2026-01-09")

        # 4 workable rows; 65-400-1 and 65-500-1 excluded
        assert aggregate.total_exposures == 4
        assert aggregate.total_claims == 4
        assert aggregate.excluded_exposures == 2
        assert aggregate.age_totals[AGE_UNDER_60] == 3
        assert aggregate.age_totals[AGE_181_TO_365] == 1

    def test_financials_exclude_non_financial_coverage(self, mixed_rows):
        aggregate = aggregate_rows(mixed_rows, report_date="2026-01-09")

        assert aggregate.financial_exposures == 3
        assert aggregate.total_reserves == Decimal("30000")
        assert aggregate.total_low_eval == Decimal("15000")
        assert aggregate.total_high_eval == Decimal("24000")
        assert aggregate.bi_exposures == 2
        assert aggregate.financials_by_age[AGE_UNDER_60]["exposures"] == 2
        assert aggregate.financials_by_type_group["LIT"]["reserves"] == Decimal("10000")

    def test_cp1_rates(self, mixed_rows):
        aggregate = aggregate_rows(mixed_rows, report_date="2026-01-09")

        assert aggregate.cp1 == {"yes": 1, "no": 3, "total": 4, "rate": "25.0"}
        assert aggregate.cp1_claims == 1
        by_coverage = {r["coverage"]: r for r in aggregate.cp1_by_coverage}
        assert by_coverage["BI"]["rate"] == "50.0"
        assert by_coverage["UM"]["rate"] == "0.0"
        assert "PD" not in by_coverage

    def test_cp1_rate_zero_when_nothing_evaluated(self):
        aggregate = aggregate_rows([], report_date="2026-01-09")

        assert aggregate.cp1_rate == "0.0"
        assert aggregate.total_claims == 0

    def test_negotiation_and_status_rollups(self, mixed_rows):
        aggregate = aggregate_rows(mixed_rows, report_date="2026-01-09")

        assert aggregate.negotiation[NEGOTIATION_0_30]["count"] == 1
        assert aggregate.negotiation[NEGOTIATION_31_60]["count"] == 1
        assert aggregate.negotiation[NEGOTIATION_90_PLUS]["count"] == 1
        assert aggregate.negotiation[NEGOTIATION_NONE]["count"] == 0
        assert aggregate.bi_status[STATUS_IN_PROGRESS]["count"] == 2
        assert aggregate.bi_status[STATUS_OTHER]["count"] == 1
        assert aggregate.bi_status[STATUS_OTHER]["cp1_yes"] == 1
        assert aggregate.bi_status[STATUS_OTHER]["pct"] == "33.3"
        assert aggregate.bi_status[STATUS_SETTLED]["count"] == 0

    def test_demand_types_skip_blank(self, mixed_rows):
        aggregate = aggregate_rows(mixed_rows, report_date="2026-01-09")

        assert aggregate.demand_types == [
            {"demand_type": "Policy Limits", "count": 2, "reserves": Decimal("20000")}
        ]

    def test_severity_counters(self, mixed_rows):
        aggregate = aggregate_rows(mixed_rows, report_date="2026-01-09")
        severity = aggregate.severity

        assert severity["counts"]["fatality"] == 1
        assert severity["counts"]["surgery"] == 1
        assert severity["fatality_reserves"] == Decimal("10000")
        assert severity["total_flag_instances"] == 3
        assert severity["high_flag_exposures"] == 1
        assert severity["flag_distribution"] == {3: 1, 0: 2}


class TestTypeGroups:

    def test_claim_with_two_exposures_counted_once_in_group(self):
        rows = [
            row("65-700-1", Coverage="BI"),
            row("65-700-1", Coverage="PD"),
            row("65-800-1", **{"Type Group": "LIT"}),
        ]

        aggregate = aggregate_rows(rows, report_date="2026-01-09")
        groups = {g.type_group: g for g in aggregate.type_groups}

        assert groups["ATR"].unique_claims == 1
        assert groups["ATR"].exposures == 2
        assert groups["LIT"].unique_claims == 1
        assert aggregate.total_claims == 2

    def test_sorted_by_unique_claims_then_name(self):
        rows = [
            row("1-1-1", **{"Type Group": "BI3"}),
            row("1-2-1", **{"Type Group": "ATR"}),
            row("1-3-1", **{"Type Group": "LIT"}),
            row("1-4-1", **{"Type Group": "LIT"}),
        ]

        aggregate = aggregate_rows(rows, report_date="2026-01-09")

        assert [g.type_group for g in aggregate.type_groups] == ["LIT", "ATR", "BI3"]


class TestAccumulator:

    def test_sample_is_bounded(self):
        rows = [row(f"65-{i}-1") for i in range(10)]

        aggregate = aggregate_rows(rows, report_date="2026-01-09", sample_size=3)

        assert len(aggregate.sample) == 3
        assert len(aggregate.financial_records) == 10

    def test_manual_fold_matches_aggregate_rows(self, mixed_rows):
        accumulator = ExposureAccumulator()
        for raw in mixed_rows:
            accumulator.apply(classify_row(normalize_record(raw)))

        assert accumulator.result("2026-01-09").to_dict() == aggregate_rows(
            mixed_rows, report_date="2026-01-09"
        ).to_dict()

    def test_output_is_deterministic(self, mixed_rows, incident_rows):
        rows = mixed_rows + incident_rows

        first = json.dumps(aggregate_rows(rows, report_date="2026-01-09").to_dict(), sort_keys=True)
        second = json.dumps(aggregate_rows(rows, report_date="2026-01-09").to_dict(), sort_keys=True)

        assert first == second

    def test_to_dict_is_json_serializable(self, mixed_rows):
        data = aggregate_rows(mixed_rows, report_date="2026-01-09").to_dict()

        assert data["financials"]["total_reserves"] == 30000.0
        assert isinstance(json.dumps(data), str)
        assert "financial_records" not in data
