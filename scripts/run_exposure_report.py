#!/usr/bin/env python3
"""
Run the Open-Exposure Report

Aggregates an open-exposure CSV export, classifies BI risk, records a dated
snapshot and prints the headline numbers with the period-over-period delta.

Usage:
    python scripts/run_exposure_report.py --help
    python scripts/run_exposure_report.py --source data/open-exposure.csv
    python scripts/run_exposure_report.py --report-date 2026-01-09 --top 25
    python scripts/run_exposure_report.py --no-snapshot --output report.json
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from pathlib import Path

# Allow running from a checkout without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.config import load_settings
from app.exposure.service import (
    ExposureAnalyticsService,
    ExposureRunResult,
    ExposureSourceError,
    load_policies,
)
from app.exposure.snapshots import SnapshotStorage
from app.utils import setup_logging

logger = setup_logging()


def iso_date(value: str) -> str:
    """argparse type for YYYY-MM-DD dates."""
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date (expected YYYY-MM-DD): {value}")


def print_report(result: ExposureRunResult, top: int) -> None:
    """Print headline totals, delta and the top-N risk claims."""
    aggregate = result.aggregate
    summary = result.risk_summary

    print(f"Open exposure report - {result.report_date}")
    print(f"  Claims:     {aggregate.total_claims:,}")
    print(f"  Exposures:  {aggregate.total_exposures:,} ({aggregate.excluded_exposures:,} excluded)")
    print(f"  Reserves:   ${aggregate.total_reserves:,.2f}")
    print(f"  No eval:    {aggregate.no_eval_count:,} (${aggregate.no_eval_reserves:,.2f})")
    print(f"  CP1 rate:   {aggregate.cp1_rate}%")

    if result.delta:
        delta = result.delta
        source = "baseline" if delta.baseline_used else "snapshot"
        print(f"  Delta vs {source} {delta.prior_date}:")
        print(f"    Claims    {delta.claims_change:+,} ({delta.claims_change_pct:+.2f}%)")
        print(f"    Exposures {delta.exposures_change:+,} ({delta.exposures_change_pct:+.2f}%)")
        print(f"    Reserves  ${delta.reserves_change:+,.2f} ({delta.reserves_change_pct:+.2f}%)")

    counts = summary.to_dict()
    print(
        f"  At risk:    {summary.total_at_risk:,} "
        f"(critical {counts['critical_count']}, high {counts['high_count']}, "
        f"moderate {counts['moderate_count']})"
    )

    for claim in result.risk_claims[:top]:
        print(
            f"    {claim.risk_score:>4} {claim.risk_tier:<9} {claim.claim_number:<16} "
            f"{claim.state:<12} ${claim.reserves:>12,.2f}  {', '.join(claim.trigger_factors)}"
        )


def main():
    settings = load_settings().exposure

    parser = argparse.ArgumentParser(
        description="Aggregate an open-exposure export and classify BI risk",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_exposure_report.py
  python scripts/run_exposure_report.py --report-date 2026-01-09 --top 25
  python scripts/run_exposure_report.py --no-snapshot --output report.json
        """,
    )
    parser.add_argument(
        "--source",
        default=settings.source_path,
        help=f"Open-exposure CSV export (default: {settings.source_path})",
    )
    parser.add_argument(
        "--report-date",
        type=iso_date,
        default=None,
        help="Reporting date YYYY-MM-DD (default: today)",
    )
    parser.add_argument(
        "--snapshot-root",
        default=settings.snapshot_root,
        help=f"Snapshot directory (default: {settings.snapshot_root})",
    )
    parser.add_argument(
        "--policies",
        default=settings.policies_path,
        help=f"Policy JSON document (default: {settings.policies_path})",
    )
    parser.add_argument(
        "--no-snapshot",
        action="store_true",
        help="Compare against the prior snapshot without saving this run",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write the full result as JSON to this file",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=10,
        help="Number of top risk claims to print (default: 10)",
    )

    args = parser.parse_args()

    service = ExposureAnalyticsService(
        source_path=args.source,
        policies=load_policies(args.policies),
        snapshot_storage=SnapshotStorage(Path(args.snapshot_root)),
        sample_size=settings.sample_size,
        save_snapshots=not args.no_snapshot,
    )

    try:
        result = service.run(report_date=args.report_date)
    except ExposureSourceError as e:
        logger.error("%s", e)
        return 1

    print_report(result, max(0, args.top))

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2, default=str)
        logger.info("Wrote exposure report to %s", output_path)

    return 0


if __name__ == "__main__":
    sys.exit(main())
