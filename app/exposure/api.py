"""Exposure reporting API endpoints."""

import asyncio
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from app.config import load_settings
from app.exposure import RISK_TIERS
from app.exposure.risk import RiskClassificationEngine
from app.exposure.service import ExposureAnalyticsService, ExposureRunResult, ExposureSourceError
from app.utils import setup_logging

logger = setup_logging()

router = APIRouter(prefix="/api/exposure", tags=["exposure"])

_service: Optional[ExposureAnalyticsService] = None


def get_exposure_service() -> ExposureAnalyticsService:
    """Get the shared service, building it from settings on first use."""
    global _service
    if _service is None:
        _service = ExposureAnalyticsService.from_settings(load_settings().exposure)
    return _service


class RunRequest(BaseModel):
    """Request model for an exposure run."""
    report_date: Optional[date] = None  # defaults to today
    save_snapshot: Optional[bool] = None


def _require_result() -> ExposureRunResult:
    result = get_exposure_service().last_result
    if result is None:
        raise HTTPException(status_code=404, detail="No exposure run has completed yet")
    return result


@router.post("/run")
async def run_exposure_report(request: RunRequest):
    """Run aggregation and risk classification over the configured export."""
    service = get_exposure_service()
    try:
        result = await asyncio.to_thread(
            service.run,
            report_date=request.report_date.isoformat() if request.report_date else None,
            save_snapshot=request.save_snapshot,
        )
    except ExposureSourceError as e:
        logger.error("Exposure run failed: %s", e)
        raise HTTPException(status_code=503, detail="Exposure data unavailable")

    return {
        "report_date": result.report_date,
        "total_claims": result.aggregate.total_claims,
        "total_exposures": result.aggregate.total_exposures,
        "total_reserves": float(result.aggregate.total_reserves),
        "at_risk": result.risk_summary.total_at_risk,
        "delta": result.delta.to_dict() if result.delta else None,
    }


@router.get("/summary")
async def get_summary():
    """Full aggregate from the last completed run."""
    return _require_result().aggregate.to_dict()


@router.get("/delta")
async def get_delta():
    """Period-over-period delta from the last completed run."""
    result = _require_result()
    return result.delta.to_dict() if result.delta else {}


@router.get("/multipacks")
async def get_multipacks():
    """Multi-pack incident groups from the last completed run."""
    return _require_result().aggregate.multi_pack_dict()


@router.get("/risk")
async def get_risk_claims(
    tier: Optional[str] = None,
    state: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=5000),
):
    """At-risk claims, optionally filtered by tier and state."""
    result = _require_result()
    claims = result.risk_claims
    if tier:
        if tier.upper() not in RISK_TIERS:
            raise HTTPException(status_code=400, detail=f"Unknown risk tier: {tier}")
        claims = RiskClassificationEngine.claims_by_tier(claims, tier)
    if state:
        claims = RiskClassificationEngine.claims_by_state(claims, state)

    return {
        "summary": result.risk_summary.to_dict(),
        "total": len(claims),
        "claims": [c.to_dict() for c in claims[:limit]],
    }


@router.get("/patterns")
async def get_patterns():
    """Risk pattern catalog (ids, weights, descriptions)."""
    engine = get_exposure_service().risk_engine
    return {"patterns": [p.to_dict() for p in engine.pattern_catalog()]}


@router.get("/snapshots")
async def list_snapshots():
    """Stored snapshot dates, oldest first."""
    try:
        dates = await asyncio.to_thread(get_exposure_service().snapshot_storage.list_snapshot_dates)
    except OSError as e:
        logger.error("Failed to list snapshots: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    return {"dates": dates}
