"""
Multi-pack grouping.

Several financial-coverage exposures from the same incident share a base
claim number: the claim number with its last "-" suffix removed. For example
"65-158035-1" and "65-158035-2" both belong to incident "65-158035".
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.exposure.normalizer import ZERO, ExposureRecord


def base_claim_number(claim_number: str) -> Optional[str]:
    """
    Base claim number, or None when the number cannot be grouped.

    Claim numbers with fewer than two "-" separators are ungroupable.
    """
    claim_number = (claim_number or "").strip()
    if claim_number.count("-") < 2:
        return None
    return claim_number.rsplit("-", 1)[0]


@dataclass(frozen=True)
class MultiPackGroup:
    """Two or more exposures sharing a base claim number."""

    base_claim_number: str
    records: Tuple[ExposureRecord, ...]

    @property
    def pack_size(self) -> int:
        return len(self.records)

    @property
    def total_reserves(self) -> Decimal:
        return sum((r.open_reserves for r in self.records), ZERO)

    @property
    def claim_numbers(self) -> List[str]:
        return [r.claim_number for r in self.records]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_claim_number": self.base_claim_number,
            "pack_size": self.pack_size,
            "total_reserves": float(self.total_reserves),
            "claims": [
                {
                    "claim_number": r.claim_number,
                    "claimant": r.claimant,
                    "coverage": r.coverage,
                    "open_reserves": float(r.open_reserves),
                    "age_bucket": r.age_bucket,
                }
                for r in self.records
            ],
        }


def group_multi_packs(records: Iterable[ExposureRecord]) -> List[MultiPackGroup]:
    """
    Group records by base claim number, keeping groups of two or more.

    Sorted by pack size desc, then summed reserves desc, then base claim
    number asc.
    """
    buckets: Dict[str, List[ExposureRecord]] = {}
    for record in records:
        base = base_claim_number(record.claim_number)
        if base is None:
            continue
        buckets.setdefault(base, []).append(record)

    groups = [
        MultiPackGroup(base_claim_number=base, records=tuple(members))
        for base, members in buckets.items()
        if len(members) >= 2
    ]
    groups.sort(key=lambda g: (-g.pack_size, -g.total_reserves, g.base_claim_number))
    return groups


def summarize_multi_packs(groups: Iterable[MultiPackGroup]) -> Dict[str, Dict[str, Any]]:
    """Summary keyed by pack size: group count, claim count and reserves."""
    summary: Dict[int, Dict[str, Any]] = {}
    for group in groups:
        entry = summary.setdefault(
            group.pack_size, {"group_count": 0, "claim_count": 0, "reserves": ZERO}
        )
        entry["group_count"] += 1
        entry["claim_count"] += group.pack_size
        entry["reserves"] += group.total_reserves
    return {str(size): summary[size] for size in sorted(summary, reverse=True)}
