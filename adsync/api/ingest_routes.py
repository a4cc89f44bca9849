"""ADSYNC - Ingestion & Discovery API Routes."""

from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlmodel import Session, col, select

from adsync.api.deps import get_settings, get_transport
from adsync.config import Settings
from adsync.core.errors import MissingTargetAccountError
from adsync.core.logging import get_logger
from adsync.database import get_session
from adsync.ingestion.discovery import AccountDiscovery
from adsync.ingestion.pipeline import IngestionOrchestrator
from adsync.models.run_models import DiscoveryResult, IngestionResult, IngestionRun

logger = get_logger("api.ingest")

router = APIRouter(tags=["Ingestion"])


# ── Request Models ──


class IngestRequest(BaseModel):
    """Request body for POST /ingest."""

    user_id: str
    target_account_id: Optional[str] = None
    """Google Ads customer id; defaults to the account linked to the credential."""
    start_date: Optional[str] = None
    """Inclusive start, YYYY-MM-DD. Defaults to end_date minus the lookback window."""
    end_date: Optional[str] = None
    """Inclusive end, YYYY-MM-DD. Defaults to today (UTC)."""
    allow_fallback: Optional[bool] = None
    """Query the account directly when the manager check is denied."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "u1",
                    "target_account_id": "4445556666",
                    "start_date": "2024-01-01",
                    "end_date": "2024-01-07",
                }
            ]
        }
    }


class DiscoverRequest(BaseModel):
    user_id: str


# ── Endpoints ──


@router.post("/ingest", response_model=IngestionResult)
async def trigger_ingestion(
    request: IngestRequest,
    session: Session = Depends(get_session),
    config: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
):
    """Run one tracked ingestion of Google Ads metrics for a user."""
    orchestrator = IngestionOrchestrator(session, config, transport)
    try:
        result = await orchestrator.run(
            user_id=request.user_id,
            target_account_id=request.target_account_id,
            start_date=request.start_date,
            end_date=request.end_date,
            allow_fallback=request.allow_fallback,
        )
    except MissingTargetAccountError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if not result.ok:
        return JSONResponse(status_code=400, content=result.model_dump(mode="json"))
    return result


@router.post("/accounts/discover", response_model=DiscoveryResult)
async def discover_accounts(
    request: DiscoverRequest,
    session: Session = Depends(get_session),
    config: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
):
    """List, describe and persist every account the user's credential can see."""
    result = await AccountDiscovery(session, config, transport).discover_accounts(
        request.user_id
    )
    if not result.ok:
        return JSONResponse(status_code=400, content=result.model_dump(mode="json"))
    return result


@router.get("/runs/{run_id}")
async def get_run(run_id: int, session: Session = Depends(get_session)):
    """Get a single ingestion run."""
    run = session.get(IngestionRun, run_id)
    if not run:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    return {"status": "success", "run": run.model_dump(mode="json")}


@router.get("/runs")
async def list_runs(
    user_id: Optional[str] = Query(None, description="Filter by owning user"),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
):
    """Get recent ingestion runs, newest first."""
    query = select(IngestionRun).order_by(col(IngestionRun.id).desc()).limit(limit)
    if user_id:
        query = query.where(IngestionRun.user_id == user_id)

    runs = session.exec(query).all()
    return {
        "status": "success",
        "count": len(runs),
        "runs": [r.model_dump(mode="json") for r in runs],
    }
