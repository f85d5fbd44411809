"""
Aggregation Pipeline for open-exposure reporting.

A single pass over the export, written as a pure reducer:

    classify_row(record, policies)      -> RowContribution | None
    ExposureAccumulator.apply(contrib)  -> folds into running totals
    ExposureAccumulator.result(date)    -> immutable ExposureAggregate

Counts of claims are always taken from sets of claim numbers; counts of
exposures are row counts. Currency is summed as Decimal and only converted
to float when serialized.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from app.exposure import (
    AGE_BUCKETS,
    COVERAGE_BI,
    NEGOTIATION_0_30,
    NEGOTIATION_31_60,
    NEGOTIATION_61_90,
    NEGOTIATION_90_PLUS,
    NEGOTIATION_BUCKETS,
    NEGOTIATION_NONE,
    STATUS_IN_PROGRESS,
    STATUS_OTHER,
    STATUS_SETTLED,
    TYPE_GROUP_LIT,
)
from app.exposure.fields import SEVERITY_FLAGS, RawRecord
from app.exposure.filters import is_financial_coverage, is_workable
from app.exposure.multipack import MultiPackGroup, group_multi_packs, summarize_multi_packs
from app.exposure.normalizer import ZERO, ExposureRecord, normalize_record
from app.exposure.policies import ExposurePolicies
from app.utils import setup_logging

logger = setup_logging()

BLANK_LABEL = "(blank)"
DEFAULT_SAMPLE_SIZE = 500
HIGH_FLAG_COUNT = 3

RowInput = Union[Mapping[str, Any], RawRecord, ExposureRecord]


def format_rate(part: int, whole: int) -> str:
    """Percentage to one decimal place as a string; "0.0" when whole is 0."""
    if whole <= 0:
        return "0.0"
    return f"{part / whole * 100:.1f}"


def negotiation_bucket(days: Optional[int]) -> str:
    """Bucket days since the last negotiation; missing values get their own bucket."""
    if days is None:
        return NEGOTIATION_NONE
    if days <= 30:
        return NEGOTIATION_0_30
    if days <= 60:
        return NEGOTIATION_31_60
    if days <= 90:
        return NEGOTIATION_61_90
    return NEGOTIATION_90_PLUS


def bi_status_bucket(bi_status: str) -> str:
    normalized = (bi_status or "").strip().lower()
    if normalized == "in progress":
        return STATUS_IN_PROGRESS
    if "settled" in normalized:
        return STATUS_SETTLED
    return STATUS_OTHER


def _label(value: str) -> str:
    return value.strip() if value and value.strip() else BLANK_LABEL


def _jsonable(value: Any) -> Any:
    """Convert Decimals (recursively) to floats for JSON output."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class RowContribution:
    """Every classification one workable row contributes to the aggregate."""

    record: ExposureRecord
    type_group: str
    is_financial: bool
    is_bi: bool
    no_evaluation: bool = False
    negotiation_bucket: Optional[str] = None
    bi_status_bucket: Optional[str] = None
    lit_phase: Optional[str] = None
    lit_demand_type: Optional[str] = None
    demand_type: Optional[str] = None


def classify_row(
    record: ExposureRecord,
    policies: Optional[ExposurePolicies] = None,
) -> Optional[RowContribution]:
    """
    Compute every classification for one normalized row.

    Returns None for non-workable rows, which contribute to nothing.
    """
    if not is_workable(record, policies):
        return None

    type_group = _label(record.type_group)
    if not is_financial_coverage(record.coverage, policies):
        return RowContribution(
            record=record,
            type_group=type_group,
            is_financial=False,
            is_bi=False,
        )

    is_lit = type_group.upper() == TYPE_GROUP_LIT
    return RowContribution(
        record=record,
        type_group=type_group,
        is_financial=True,
        is_bi=record.coverage == COVERAGE_BI,
        no_evaluation=record.has_no_evaluation,
        negotiation_bucket=negotiation_bucket(record.days_since_negotiation),
        bi_status_bucket=bi_status_bucket(record.bi_status),
        lit_phase=_label(record.evaluation_phase) if is_lit else None,
        lit_demand_type=_label(record.demand_type) if is_lit else None,
        demand_type=record.demand_type.strip() or None,
    )


@dataclass
class FinancialTotals:
    """Running exposure/reserve/evaluation totals for one slice."""

    exposures: int = 0
    reserves: Decimal = ZERO
    low_eval: Decimal = ZERO
    high_eval: Decimal = ZERO
    no_eval_count: int = 0
    no_eval_reserves: Decimal = ZERO

    def add(self, record: ExposureRecord) -> None:
        self.exposures += 1
        self.reserves += record.open_reserves
        self.low_eval += record.low_eval
        self.high_eval += record.high_eval
        if record.has_no_evaluation:
            self.no_eval_count += 1
            self.no_eval_reserves += record.open_reserves

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exposures": self.exposures,
            "reserves": self.reserves,
            "low_eval": self.low_eval,
            "high_eval": self.high_eval,
            "no_eval_count": self.no_eval_count,
            "no_eval_reserves": self.no_eval_reserves,
        }


@dataclass
class Cp1Tally:
    yes: int = 0
    no: int = 0
    reserves: Decimal = ZERO

    def add(self, flagged: bool, reserves: Decimal = ZERO) -> None:
        if flagged:
            self.yes += 1
        else:
            self.no += 1
        self.reserves += reserves

    @property
    def total(self) -> int:
        return self.yes + self.no

    @property
    def rate(self) -> str:
        return format_rate(self.yes, self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "yes": self.yes,
            "no": self.no,
            "total": self.total,
            "rate": self.rate,
            "reserves": self.reserves,
        }


@dataclass(frozen=True)
class TypeGroupSummary:
    """Per-type-group counts across all coverages."""

    type_group: str
    unique_claims: int
    exposures: int
    cp1_yes: int
    by_age: Dict[str, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type_group": self.type_group,
            "unique_claims": self.unique_claims,
            "exposures": self.exposures,
            "cp1_yes": self.cp1_yes,
            "by_age": dict(self.by_age),
        }


@dataclass(frozen=True)
class ExposureAggregate:
    """
    Immutable result of one aggregation pass.

    Headline totals are plain attributes; the detailed rollups are dicts and
    lists ready for to_dict().
    """

    report_date: str
    total_claims: int
    total_exposures: int
    excluded_exposures: int
    age_totals: Dict[str, int]
    type_groups: Tuple[TypeGroupSummary, ...]
    cp1: Dict[str, Any]
    cp1_claims: int
    total_reserves: Decimal
    total_low_eval: Decimal
    total_high_eval: Decimal
    no_eval_count: int
    no_eval_reserves: Decimal
    financial_exposures: int
    bi_exposures: int
    financials_by_age: Dict[str, Dict[str, Any]]
    financials_by_type_group: Dict[str, Dict[str, Any]]
    cp1_by_coverage: List[Dict[str, Any]]
    bi_cp1_by_age: List[Dict[str, Any]]
    lit_phases: List[Dict[str, Any]]
    negotiation: Dict[str, Dict[str, Any]]
    bi_status: Dict[str, Dict[str, Any]]
    demand_types: List[Dict[str, Any]]
    severity: Dict[str, Any]
    multi_packs: Tuple[MultiPackGroup, ...] = ()
    multi_pack_summary: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    sample: Tuple[ExposureRecord, ...] = ()
    financial_records: Tuple[ExposureRecord, ...] = field(default=(), repr=False)

    @property
    def cp1_rate(self) -> str:
        return self.cp1["rate"]

    def type_group_breakdown(self) -> Dict[str, Dict[str, Any]]:
        """Per-type-group claims, exposures and reserves (snapshot shape)."""
        breakdown = {}
        for summary in self.type_groups:
            financial = self.financials_by_type_group.get(summary.type_group, {})
            breakdown[summary.type_group] = {
                "claims": summary.unique_claims,
                "exposures": summary.exposures,
                "reserves": financial.get("reserves", ZERO),
            }
        return breakdown

    def multi_pack_dict(self) -> Dict[str, Any]:
        """Multi-pack groups and the by-size summary, without the rest of the aggregate."""
        return {
            "groups": [g.to_dict() for g in self.multi_packs],
            "summary": _jsonable(self.multi_pack_summary),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the API and CLI. Drops the retained record list."""
        return _jsonable({
            "report_date": self.report_date,
            "total_claims": self.total_claims,
            "total_exposures": self.total_exposures,
            "excluded_exposures": self.excluded_exposures,
            "age_totals": dict(self.age_totals),
            "type_groups": [s.to_dict() for s in self.type_groups],
            "cp1": dict(self.cp1, claims=self.cp1_claims),
            "financials": {
                "total_reserves": self.total_reserves,
                "total_low_eval": self.total_low_eval,
                "total_high_eval": self.total_high_eval,
                "no_eval_count": self.no_eval_count,
                "no_eval_reserves": self.no_eval_reserves,
                "exposures": self.financial_exposures,
                "by_age": self.financials_by_age,
                "by_type_group": self.financials_by_type_group,
            },
            "bi_exposures": self.bi_exposures,
            "cp1_by_coverage": self.cp1_by_coverage,
            "bi_cp1_by_age": self.bi_cp1_by_age,
            "lit_phases": self.lit_phases,
            "negotiation": self.negotiation,
            "bi_status": self.bi_status,
            "demand_types": self.demand_types,
            "severity": self.severity,
            "multi_packs": [g.to_dict() for g in self.multi_packs],
            "multi_pack_summary": self.multi_pack_summary,
            "sample": [r.to_dict() for r in self.sample],
        })


class ExposureAccumulator:
    """
    Running totals for one aggregation pass.

    Feed it RowContributions (or None for excluded rows) in any order; the
    result depends only on the multiset of rows and the report date.
    """

    def __init__(self, sample_size: int = DEFAULT_SAMPLE_SIZE):
        self.sample_size = max(0, sample_size)

        self._claims: Set[str] = set()
        self._cp1_claims: Set[str] = set()
        self._exposures = 0
        self._excluded = 0
        self._age_totals: Dict[str, int] = {age: 0 for age in AGE_BUCKETS}

        self._type_group_claims: Dict[str, Set[str]] = {}
        self._type_group_exposures: Dict[str, int] = {}
        self._type_group_cp1: Dict[str, int] = {}
        self._type_group_ages: Dict[str, Dict[str, int]] = {}
        self._cp1 = Cp1Tally()

        self._financial = FinancialTotals()
        self._financial_by_age: Dict[str, FinancialTotals] = {age: FinancialTotals() for age in AGE_BUCKETS}
        self._financial_by_type_group: Dict[str, FinancialTotals] = {}
        self._cp1_by_coverage: Dict[str, Cp1Tally] = {}
        self._bi_cp1_by_age: Dict[str, Cp1Tally] = {age: Cp1Tally() for age in AGE_BUCKETS}
        self._lit_phases: Dict[str, Dict[str, Dict[str, int]]] = {}
        self._negotiation = {bucket: {"count": 0, "reserves": ZERO} for bucket in NEGOTIATION_BUCKETS}
        self._bi_status = {
            bucket: {"count": 0, "cp1_yes": 0, "reserves": ZERO}
            for bucket in (STATUS_IN_PROGRESS, STATUS_SETTLED, STATUS_OTHER)
        }
        self._demand_types: Dict[str, Dict[str, Any]] = {}
        self._flag_counts: Dict[str, int] = {name: 0 for name in SEVERITY_FLAGS}
        self._flag_distribution: Dict[int, int] = {}
        self._fatality_reserves = ZERO
        self._flag_instances = 0
        self._high_flag_exposures = 0
        self._bi_exposures = 0

        self._financial_records: List[ExposureRecord] = []

    def apply(self, contribution: Optional[RowContribution]) -> None:
        """Fold one row's contribution into the running totals."""
        if contribution is None:
            self._excluded += 1
            return

        record = contribution.record
        type_group = contribution.type_group

        # All coverages
        self._claims.add(record.claim_number)
        self._exposures += 1
        self._age_totals[record.age_bucket] += 1
        self._type_group_claims.setdefault(type_group, set()).add(record.claim_number)
        self._type_group_exposures[type_group] = self._type_group_exposures.get(type_group, 0) + 1
        ages = self._type_group_ages.setdefault(type_group, {age: 0 for age in AGE_BUCKETS})
        ages[record.age_bucket] += 1
        self._cp1.add(record.cp1_flag)
        if record.cp1_flag:
            self._cp1_claims.add(record.claim_number)
            self._type_group_cp1[type_group] = self._type_group_cp1.get(type_group, 0) + 1

        if not contribution.is_financial:
            return

        reserves = record.open_reserves
        self._financial.add(record)
        self._financial_by_age[record.age_bucket].add(record)
        self._financial_by_type_group.setdefault(type_group, FinancialTotals()).add(record)
        self._cp1_by_coverage.setdefault(record.coverage, Cp1Tally()).add(record.cp1_flag, reserves)

        if contribution.is_bi:
            self._bi_exposures += 1
            self._bi_cp1_by_age[record.age_bucket].add(record.cp1_flag, reserves)

        if contribution.lit_phase is not None:
            demand_types = self._lit_phases.setdefault(contribution.lit_phase, {})
            by_age = demand_types.setdefault(contribution.lit_demand_type, {age: 0 for age in AGE_BUCKETS})
            by_age[record.age_bucket] += 1

        negotiation = self._negotiation[contribution.negotiation_bucket]
        negotiation["count"] += 1
        negotiation["reserves"] += reserves

        status = self._bi_status[contribution.bi_status_bucket]
        status["count"] += 1
        status["reserves"] += reserves
        if record.cp1_flag:
            status["cp1_yes"] += 1

        if contribution.demand_type:
            demand = self._demand_types.setdefault(
                contribution.demand_type, {"count": 0, "reserves": ZERO}
            )
            demand["count"] += 1
            demand["reserves"] += reserves

        self._apply_severity(record)
        self._financial_records.append(record)

    def _apply_severity(self, record: ExposureRecord) -> None:
        flag_count = 0
        for name in SEVERITY_FLAGS:
            if getattr(record, name):
                self._flag_counts[name] += 1
                flag_count += 1
        if record.fatality:
            self._fatality_reserves += record.open_reserves
        self._flag_instances += flag_count
        self._flag_distribution[flag_count] = self._flag_distribution.get(flag_count, 0) + 1
        if flag_count >= HIGH_FLAG_COUNT:
            self._high_flag_exposures += 1

    def result(self, report_date: Optional[str] = None) -> ExposureAggregate:
        """Build the immutable aggregate, including post-pass multi-pack grouping."""
        report_date = report_date or date.today().isoformat()
        records = tuple(self._financial_records)
        groups = group_multi_packs(records)

        type_groups = sorted(
            (
                TypeGroupSummary(
                    type_group=name,
                    unique_claims=len(claims),
                    exposures=self._type_group_exposures.get(name, 0),
                    cp1_yes=self._type_group_cp1.get(name, 0),
                    by_age=dict(self._type_group_ages.get(name, {})),
                )
                for name, claims in self._type_group_claims.items()
            ),
            key=lambda s: (-s.unique_claims, s.type_group),
        )

        return ExposureAggregate(
            report_date=report_date,
            total_claims=len(self._claims),
            total_exposures=self._exposures,
            excluded_exposures=self._excluded,
            age_totals=dict(self._age_totals),
            type_groups=tuple(type_groups),
            cp1={
                "yes": self._cp1.yes,
                "no": self._cp1.no,
                "total": self._cp1.total,
                "rate": self._cp1.rate,
            },
            cp1_claims=len(self._cp1_claims),
            total_reserves=self._financial.reserves,
            total_low_eval=self._financial.low_eval,
            total_high_eval=self._financial.high_eval,
            no_eval_count=self._financial.no_eval_count,
            no_eval_reserves=self._financial.no_eval_reserves,
            financial_exposures=self._financial.exposures,
            bi_exposures=self._bi_exposures,
            financials_by_age={age: t.to_dict() for age, t in self._financial_by_age.items()},
            financials_by_type_group={
                name: self._financial_by_type_group[name].to_dict()
                for name in sorted(self._financial_by_type_group)
            },
            cp1_by_coverage=[
                {"coverage": coverage, **tally.to_dict()}
                for coverage, tally in sorted(
                    self._cp1_by_coverage.items(), key=lambda item: (-item[1].total, item[0])
                )
            ],
            bi_cp1_by_age=[
                {"age": age, **tally.to_dict()} for age, tally in self._bi_cp1_by_age.items()
            ],
            lit_phases=self._lit_phase_rows(),
            negotiation={
                bucket: {**values, "pct": format_rate(values["count"], self._financial.exposures)}
                for bucket, values in self._negotiation.items()
            },
            bi_status=self._bi_status_rows(),
            demand_types=[
                {"demand_type": name, **values}
                for name, values in sorted(
                    self._demand_types.items(), key=lambda item: (-item[1]["count"], item[0])
                )
            ],
            severity={
                "counts": dict(self._flag_counts),
                "fatality_reserves": self._fatality_reserves,
                "total_flag_instances": self._flag_instances,
                "high_flag_exposures": self._high_flag_exposures,
                "flag_distribution": {
                    count: self._flag_distribution[count]
                    for count in sorted(self._flag_distribution, reverse=True)
                },
            },
            multi_packs=tuple(groups),
            multi_pack_summary=summarize_multi_packs(groups),
            sample=records[: self.sample_size],
            financial_records=records,
        )

    def _lit_phase_rows(self) -> List[Dict[str, Any]]:
        rows = []
        for phase, demand_types in self._lit_phases.items():
            demand_rows = [
                {"demand_type": name, "total": sum(by_age.values()), "by_age": dict(by_age)}
                for name, by_age in demand_types.items()
            ]
            demand_rows.sort(key=lambda row: (-row["total"], row["demand_type"]))
            rows.append({
                "phase": phase,
                "total": sum(row["total"] for row in demand_rows),
                "demand_types": demand_rows,
            })
        rows.sort(key=lambda row: (-row["total"], row["phase"]))
        return rows

    def _bi_status_rows(self) -> Dict[str, Dict[str, Any]]:
        total = sum(values["count"] for values in self._bi_status.values())
        return {
            bucket: {**values, "pct": format_rate(values["count"], total)}
            for bucket, values in self._bi_status.items()
        }


def aggregate_rows(
    rows: Iterable[RowInput],
    policies: Optional[ExposurePolicies] = None,
    report_date: Optional[str] = None,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
) -> ExposureAggregate:
    """
    Aggregate raw or normalized rows in a single pass.

    Args:
        rows: Raw field maps, RawRecords or already-normalized ExposureRecords
        policies: Policy tables (built-in defaults when None)
        report_date: ISO reporting date (today when None)
        sample_size: Maximum financial records kept for drilldown

    Returns:
        ExposureAggregate for the pass
    """
    accumulator = ExposureAccumulator(sample_size=sample_size)
    for row in rows:
        record = row if isinstance(row, ExposureRecord) else normalize_record(row)
        accumulator.apply(classify_row(record, policies))

    aggregate = accumulator.result(report_date)
    logger.info(
        "Aggregated %s exposures across %s claims (%s excluded) for %s",
        aggregate.total_exposures,
        aggregate.total_claims,
        aggregate.excluded_exposures,
        aggregate.report_date,
    )
    return aggregate
