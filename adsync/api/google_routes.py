"""ADSYNC - Google Ads Diagnostic Routes."""

from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from adsync.api.deps import get_settings, get_transport
from adsync.config import Settings
from adsync.connectors.google.client import GoogleAdsClient
from adsync.connectors.google.endpoints import GoogleAdsEndpoints
from adsync.core.errors import AdsyncError
from adsync.core.logging import get_logger
from adsync.database import get_session
from adsync.ingestion.hierarchy import HierarchyValidator
from adsync.ingestion.manager_resolver import ManagerResolver
from adsync.ingestion.token_manager import TokenManager
from adsync.models.account_models import sanitize_customer_id
from adsync.storage.credential_store import CredentialStore

logger = get_logger("api.google")

router = APIRouter(prefix="/google", tags=["Google Ads"])


@router.get("/hierarchy")
async def check_hierarchy(
    user_id: str = Query(..., description="Owner of the credential to use"),
    customer_id: Optional[str] = Query(None, description="Target account; defaults to the linked one"),
    login_customer_id: Optional[str] = Query(None, description="Manager; defaults to the credential's"),
    session: Session = Depends(get_session),
    config: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
):
    """Check whether a manager account manages a target account.

    Read-only: stores a refreshed token if one was needed, nothing else.
    """
    tokens = TokenManager(CredentialStore(session), config, transport)
    try:
        ctx = await tokens.ensure_access_token(user_id)
    except AdsyncError as e:
        raise HTTPException(status_code=400, detail=str(e))

    manager_id = sanitize_customer_id(login_customer_id) or ctx.login_customer_id
    target = sanitize_customer_id(customer_id or ctx.credential.customer_id)
    if not manager_id or not target:
        raise HTTPException(
            status_code=400, detail="Both a manager id and a target account id are required"
        )

    async with GoogleAdsClient(ctx.access_token, config, transport) as client:
        try:
            verdict = await HierarchyValidator(GoogleAdsEndpoints(client)).validate(
                manager_id, target
            )
        except AdsyncError as e:
            raise HTTPException(status_code=502, detail=str(e))

    return {
        "status": "success",
        "login_customer_id": manager_id,
        "customer_id": target,
        "managed": verdict.ok,
        "reason": verdict.reason,
    }


@router.get("/manager")
async def resolve_manager(
    user_id: str = Query(..., description="Owner of the credentials to try"),
    customer_id: Optional[str] = Query(None, description="Target account; defaults to the linked one"),
    session: Session = Depends(get_session),
    config: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
):
    """Find which of the user's manager accounts manages the target account.

    The answer is cached per user and account, so repeated calls are cheap.
    """
    tokens = TokenManager(CredentialStore(session), config, transport)
    try:
        ctx = await tokens.ensure_access_token(user_id)
    except AdsyncError as e:
        raise HTTPException(status_code=400, detail=str(e))

    target = sanitize_customer_id(customer_id or ctx.credential.customer_id)
    if not target:
        raise HTTPException(status_code=400, detail="A target account id is required")

    resolver = ManagerResolver(session, config)
    candidates = resolver.candidates(user_id, ctx.login_customer_id)
    if not candidates:
        raise HTTPException(status_code=404, detail=f"No manager account known for user {user_id}")

    async with GoogleAdsClient(ctx.access_token, config, transport) as client:
        try:
            resolution = await resolver.resolve(
                GoogleAdsEndpoints(client), user_id, target, candidates
            )
        except AdsyncError as e:
            raise HTTPException(status_code=502, detail=str(e))

    if not resolution.ok:
        logger.info(resolution.reason, extra={"user_id": user_id, "customer_id": target})
        raise HTTPException(status_code=404, detail=resolution.reason)

    return {
        "status": "success",
        "customer_id": target,
        "login_customer_id": resolution.login_customer_id,
        "cached": resolution.cached,
        "candidates": candidates,
    }
