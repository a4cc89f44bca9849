"""ADSYNC - Sink API Routes.

Accept batches of canonical records from external producers. Each request
is validated and written as one batch; the response reports the batch, not
individual rows.
"""

from typing import List, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from adsync.api.deps import require_api_key
from adsync.core.logging import get_logger
from adsync.database import get_session
from adsync.models.account_models import AccountRecord
from adsync.models.metric_models import CampaignRecord, MetricRecord
from adsync.storage.upsert_sink import IdempotentUpsertSink, UpsertSummary

logger = get_logger("api.sink")

router = APIRouter(
    prefix="/sink", tags=["Sink"], dependencies=[Depends(require_api_key)]
)


class SinkResponse(BaseModel):
    status: str = "success"
    received: int
    inserted: int
    updated: int


def _as_list(payload):
    return payload if isinstance(payload, list) else [payload]


def _respond(label: str, received: int, write) -> SinkResponse:
    try:
        summary: UpsertSummary = write()
    except SQLAlchemyError as e:
        logger.error(f"Sink write of {label} failed: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to store {label}: {e}")
    return SinkResponse(
        received=received, inserted=summary.inserted, updated=summary.updated
    )


@router.post("/metrics", response_model=SinkResponse)
async def sink_metrics(
    payload: Union[List[MetricRecord], MetricRecord],
    session: Session = Depends(get_session),
):
    """Upsert daily metric rows. Missing or zero rates are recomputed."""
    records = _as_list(payload)
    sink = IdempotentUpsertSink(session)
    return _respond("metrics", len(records), lambda: sink.upsert_metrics(records))


@router.post("/campaigns", response_model=SinkResponse)
async def sink_campaigns(
    payload: Union[List[CampaignRecord], CampaignRecord],
    session: Session = Depends(get_session),
):
    """Upsert campaign records keyed on <platform>_<customer>_<campaign>."""
    records = _as_list(payload)
    sink = IdempotentUpsertSink(session)
    return _respond("campaigns", len(records), lambda: sink.upsert_campaigns(records))


@router.post("/accounts", response_model=SinkResponse)
async def sink_accounts(
    payload: Union[List[AccountRecord], AccountRecord],
    session: Session = Depends(get_session),
):
    """Upsert account records keyed on customer id."""
    records = _as_list(payload)
    sink = IdempotentUpsertSink(session)
    return _respond("accounts", len(records), lambda: sink.upsert_accounts(records))
