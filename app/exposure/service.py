"""
Exposure analytics service.

Runs one full pass over the open-exposure export: read rows, aggregate,
classify risk, record a snapshot and compute the period delta.

Usage:
    service = ExposureAnalyticsService.from_settings(load_settings().exposure)
    result = service.run(report_date="2026-01-09")
    result.aggregate.total_claims
"""

import csv
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.config import ExposureSettings
from app.exposure.aggregator import DEFAULT_SAMPLE_SIZE, ExposureAggregate, aggregate_rows
from app.exposure.policies import ExposurePolicies, ExposurePolicyLoader
from app.exposure.risk import RiskClaim, RiskClassificationEngine, RiskSummary
from app.exposure.snapshots import SnapshotDelta, SnapshotDeltaService, SnapshotStorage
from app.utils import setup_logging

logger = setup_logging()


class ExposureSourceError(Exception):
    """The exposure export could not be read. No partial aggregate is produced."""


@dataclass(frozen=True)
class ExposureRunResult:
    """Everything one run produces."""

    aggregate: ExposureAggregate
    risk_claims: List[RiskClaim]
    risk_summary: RiskSummary
    delta: Optional[SnapshotDelta]

    @property
    def report_date(self) -> str:
        return self.aggregate.report_date

    def to_dict(self, risk_limit: Optional[int] = None) -> Dict[str, Any]:
        claims = self.risk_claims if risk_limit is None else self.risk_claims[:risk_limit]
        return {
            "report_date": self.report_date,
            "aggregate": self.aggregate.to_dict(),
            "risk": {
                "summary": self.risk_summary.to_dict(),
                "claims": [c.to_dict() for c in claims],
            },
            "delta": self.delta.to_dict() if self.delta else None,
        }


def load_policies(policies_path: Optional[str]) -> ExposurePolicies:
    """Load the policy document, falling back to built-in defaults when it is missing."""
    if not policies_path:
        return ExposurePolicies()
    loader = ExposurePolicyLoader()
    try:
        return loader.load_policies(policies_path)
    except FileNotFoundError:
        logger.warning("Exposure policy file not found at %s, using built-in defaults", policies_path)
        return ExposurePolicies()


def read_export_rows(source_path: str | Path) -> List[Dict[str, str]]:
    """
    Read all rows of a CSV export.

    Raises:
        ExposureSourceError: If the file is missing or unreadable
    """
    path = Path(source_path)
    if not path.exists():
        raise ExposureSourceError(f"Exposure export not found: {path}")
    try:
        # utf-8-sig drops the BOM spreadsheet exports often carry
        with open(path, newline="", encoding="utf-8-sig") as f:
            return list(csv.DictReader(f))
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise ExposureSourceError(f"Failed to read exposure export {path}: {e}") from e


class ExposureAnalyticsService:
    """Orchestrates aggregation, risk classification and snapshot deltas."""

    def __init__(
        self,
        source_path: str | Path,
        policies: Optional[ExposurePolicies] = None,
        snapshot_storage: Optional[SnapshotStorage] = None,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        save_snapshots: bool = True,
    ):
        self.source_path = Path(source_path)
        self.policies = policies or ExposurePolicies()
        self.sample_size = sample_size
        self.save_snapshots = save_snapshots
        self.risk_engine = RiskClassificationEngine(self.policies)
        self.delta_service = SnapshotDeltaService(snapshot_storage, self.policies)
        self._last_result: Optional[ExposureRunResult] = None

    @classmethod
    def from_settings(cls, settings: ExposureSettings) -> "ExposureAnalyticsService":
        return cls(
            source_path=settings.source_path,
            policies=load_policies(settings.policies_path),
            snapshot_storage=SnapshotStorage(Path(settings.snapshot_root)),
            sample_size=settings.sample_size,
            save_snapshots=settings.save_snapshots,
        )

    @property
    def snapshot_storage(self) -> SnapshotStorage:
        return self.delta_service.storage

    @property
    def last_result(self) -> Optional[ExposureRunResult]:
        return self._last_result

    def run(
        self,
        report_date: Optional[str] = None,
        save_snapshot: Optional[bool] = None,
        rows: Optional[List[Dict[str, Any]]] = None,
    ) -> ExposureRunResult:
        """
        Run a full pass.

        Args:
            report_date: ISO reporting date (today when None)
            save_snapshot: Override the configured snapshot-saving behavior
            rows: Pre-loaded rows; the configured export is read when None

        Raises:
            ExposureSourceError: If the export cannot be read or has no rows
        """
        report_date = report_date or date.today().isoformat()
        save = self.save_snapshots if save_snapshot is None else save_snapshot

        if rows is None:
            logger.info("Reading exposure export from %s", self.source_path)
            try:
                rows = read_export_rows(self.source_path)
            except ExposureSourceError as e:
                logger.error("Exposure run for %s aborted: %s", report_date, e)
                raise

        if not rows:
            # A 0-byte or header-only export produces no aggregate and no snapshot
            logger.error("Exposure run for %s aborted: export has no rows", report_date)
            raise ExposureSourceError(f"Exposure export is empty: {self.source_path}")

        aggregate = aggregate_rows(rows, self.policies, report_date, self.sample_size)
        risk_claims = self.risk_engine.classify(aggregate.financial_records)
        risk_summary = self.risk_engine.summarize(risk_claims)
        delta = self.delta_service.record_and_compare(aggregate, report_date, save=save)

        result = ExposureRunResult(
            aggregate=aggregate,
            risk_claims=risk_claims,
            risk_summary=risk_summary,
            delta=delta,
        )
        self._last_result = result
        logger.info(
            "Exposure run complete for %s: %s claims, %s at risk",
            report_date,
            aggregate.total_claims,
            risk_summary.total_at_risk,
        )
        return result
