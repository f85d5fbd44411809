"""
Snapshot storage and period-over-period deltas.

One JSON file per reporting date:

    data/snapshots/
        2026-01-02.json
        2026-01-09.json

Saving the same date twice overwrites the earlier file, so re-running a
report for a date is idempotent.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.exposure import AGE_181_TO_365, AGE_365_PLUS, AGE_61_TO_180, AGE_UNDER_60
from app.exposure.aggregator import ExposureAggregate
from app.exposure.normalizer import ZERO
from app.exposure.policies import DeltaBaseline, ExposurePolicies
from app.utils import setup_logging

logger = setup_logging()

# Default snapshot path - can be overridden in tests
SNAPSHOT_PATH = Path(__file__).parent.parent.parent / "data" / "snapshots"


@dataclass
class Snapshot:
    """Persisted headline totals for one reporting date."""

    snapshot_date: str
    total_claims: int = 0
    total_exposures: int = 0
    total_reserves: Decimal = ZERO
    total_low_eval: Decimal = ZERO
    total_high_eval: Decimal = ZERO
    cp1_claims: int = 0
    cp1_rate: float = 0.0
    no_eval_count: int = 0
    no_eval_reserves: Decimal = ZERO
    age_365_plus: int = 0
    age_181_365: int = 0
    age_61_180: int = 0
    age_under_60: int = 0
    type_group_breakdown: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_aggregate(cls, aggregate: ExposureAggregate, snapshot_date: Optional[str] = None) -> "Snapshot":
        ages = aggregate.age_totals
        return cls(
            snapshot_date=snapshot_date or aggregate.report_date,
            total_claims=aggregate.total_claims,
            total_exposures=aggregate.total_exposures,
            total_reserves=aggregate.total_reserves,
            total_low_eval=aggregate.total_low_eval,
            total_high_eval=aggregate.total_high_eval,
            cp1_claims=aggregate.cp1_claims,
            cp1_rate=float(aggregate.cp1_rate),
            no_eval_count=aggregate.no_eval_count,
            no_eval_reserves=aggregate.no_eval_reserves,
            age_365_plus=ages.get(AGE_365_PLUS, 0),
            age_181_365=ages.get(AGE_181_TO_365, 0),
            age_61_180=ages.get(AGE_61_TO_180, 0),
            age_under_60=ages.get(AGE_UNDER_60, 0),
            type_group_breakdown={
                name: {**values, "reserves": float(values["reserves"])}
                for name, values in aggregate.type_group_breakdown().items()
            },
        )

    @classmethod
    def from_baseline(cls, baseline: DeltaBaseline) -> "Snapshot":
        return cls(
            snapshot_date=baseline.snapshot_date,
            total_claims=baseline.total_claims,
            total_exposures=baseline.total_exposures,
            total_reserves=baseline.total_reserves,
            cp1_rate=baseline.cp1_rate,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        return cls(
            snapshot_date=str(data["snapshot_date"]),
            total_claims=int(data.get("total_claims", 0)),
            total_exposures=int(data.get("total_exposures", 0)),
            total_reserves=Decimal(str(data.get("total_reserves", 0))),
            total_low_eval=Decimal(str(data.get("total_low_eval", 0))),
            total_high_eval=Decimal(str(data.get("total_high_eval", 0))),
            cp1_claims=int(data.get("cp1_claims", 0)),
            cp1_rate=float(data.get("cp1_rate", 0.0)),
            no_eval_count=int(data.get("no_eval_count", 0)),
            no_eval_reserves=Decimal(str(data.get("no_eval_reserves", 0))),
            age_365_plus=int(data.get("age_365_plus", 0)),
            age_181_365=int(data.get("age_181_365", 0)),
            age_61_180=int(data.get("age_61_180", 0)),
            age_under_60=int(data.get("age_under_60", 0)),
            type_group_breakdown=dict(data.get("type_group_breakdown", {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("total_reserves", "total_low_eval", "total_high_eval", "no_eval_reserves"):
            data[key] = float(data[key])
        return data


def _pct_change(current: float, prior: float) -> float:
    if prior == 0:
        return 0.0
    return round((current - prior) / prior * 100, 2)


@dataclass(frozen=True)
class SnapshotDelta:
    """Change between the current run and the prior snapshot (or baseline)."""

    current_date: str
    prior_date: str
    baseline_used: bool
    claims_change: int
    claims_change_pct: float
    exposures_change: int
    exposures_change_pct: float
    reserves_change: Decimal
    reserves_change_pct: float
    cp1_rate_change: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["reserves_change"] = float(self.reserves_change)
        return data


def compute_delta(current: Snapshot, prior: Snapshot, baseline_used: bool = False) -> SnapshotDelta:
    """
    Compare two snapshots.

    Percentage changes are 0 when the prior value is 0.
    """
    return SnapshotDelta(
        current_date=current.snapshot_date,
        prior_date=prior.snapshot_date,
        baseline_used=baseline_used,
        claims_change=current.total_claims - prior.total_claims,
        claims_change_pct=_pct_change(current.total_claims, prior.total_claims),
        exposures_change=current.total_exposures - prior.total_exposures,
        exposures_change_pct=_pct_change(current.total_exposures, prior.total_exposures),
        reserves_change=current.total_reserves - prior.total_reserves,
        reserves_change_pct=_pct_change(float(current.total_reserves), float(prior.total_reserves)),
        cp1_rate_change=round(current.cp1_rate - prior.cp1_rate, 1),
    )


def _is_iso_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


class SnapshotStorage:
    """
    JSON file storage for dated snapshots.

    File structure:
        {base_path}/{YYYY-MM-DD}.json
    """

    def __init__(self, base_path: Optional[Path] = None):
        """
        Initialize storage.

        Args:
            base_path: Snapshot directory (defaults to SNAPSHOT_PATH)
        """
        self._explicit_base_path = Path(base_path) if base_path is not None else None

    @property
    def base_path(self) -> Path:
        """Get base path, using module-level SNAPSHOT_PATH if not explicitly set."""
        return self._explicit_base_path if self._explicit_base_path is not None else SNAPSHOT_PATH

    def _snapshot_file(self, snapshot_date: str) -> Path:
        return self.base_path / f"{snapshot_date}.json"

    def save_snapshot(self, snapshot: Snapshot) -> Path:
        """
        Save (upsert) a snapshot keyed by its date.

        Returns:
            Path of the written file
        """
        self.base_path.mkdir(parents=True, exist_ok=True)
        path = self._snapshot_file(snapshot.snapshot_date)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f, indent=2, default=str)
        return path

    def get_snapshot(self, snapshot_date: str) -> Optional[Snapshot]:
        """Load the snapshot for a date, or None if none was saved."""
        path = self._snapshot_file(snapshot_date)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return Snapshot.from_dict(json.load(f))

    def list_snapshot_dates(self) -> List[str]:
        """Stored snapshot dates, oldest first."""
        if not self.base_path.exists():
            return []
        return sorted(p.stem for p in self.base_path.glob("*.json") if _is_iso_date(p.stem))

    def get_previous_snapshot(self, before_date: str) -> Optional[Snapshot]:
        """Most recent snapshot strictly earlier than before_date."""
        earlier = [d for d in self.list_snapshot_dates() if d < before_date]
        if not earlier:
            return None
        return self.get_snapshot(earlier[-1])

    def delete_snapshot(self, snapshot_date: str) -> bool:
        """Delete a snapshot. Returns True if a file was removed."""
        path = self._snapshot_file(snapshot_date)
        if not path.exists():
            return False
        path.unlink()
        return True


class SnapshotDeltaService:
    """
    Records the current run and compares it with the prior period.

    Storage problems never fail a run: a failed write is logged, and a failed
    read falls back to the configured baseline.
    """

    def __init__(
        self,
        storage: Optional[SnapshotStorage] = None,
        policies: Optional[ExposurePolicies] = None,
    ):
        self.storage = storage or SnapshotStorage()
        self.policies = policies or ExposurePolicies()

    def record_and_compare(
        self,
        aggregate: ExposureAggregate,
        report_date: Optional[str] = None,
        save: bool = True,
    ) -> SnapshotDelta:
        report_date = report_date or aggregate.report_date
        current = Snapshot.from_aggregate(aggregate, report_date)

        if save:
            try:
                self.storage.save_snapshot(current)
                logger.info("Saved exposure snapshot for %s", report_date)
            except (OSError, TypeError, ValueError) as e:
                logger.error("Failed to save exposure snapshot for %s: %s", report_date, e)

        prior = None
        try:
            prior = self.storage.get_previous_snapshot(report_date)
        except (OSError, KeyError, TypeError, ValueError, ArithmeticError) as e:
            logger.warning("Failed to read prior snapshot before %s, using baseline: %s", report_date, e)

        if prior is None:
            logger.info("No prior snapshot before %s, comparing against baseline", report_date)
            return compute_delta(current, Snapshot.from_baseline(self.policies.baseline), baseline_used=True)
        return compute_delta(current, prior)
