"""
OAuth connection routes: connect, callback, list and disconnect.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from config import settings
from routers.dependencies import get_http_client, get_state_store, get_storage
from routers.rate_limit import rate_limit
from services.connections import (
    begin_authorization,
    disconnect,
    handle_callback,
    list_connected_accounts,
)
from services.connectors.state_store import OAuthStateStore
from services.connectors.types import (
    CallbackOutcome,
    NotConnectedError,
    ProviderNotConfiguredError,
    UnknownProviderError,
)
from services.storage import LinkStorage

router = APIRouter()

# Failures caused by a specific provider call carry the platform back to the UI
PLATFORM_SCOPED_ERRORS = {"token_exchange_failed", "user_info_failed", "invalid_user_data"}


class ConnectedAccountResponse(BaseModel):
    id: str
    profile_id: str
    platform: str
    username: str
    connected_at: Optional[datetime] = None


class DisconnectRequest(BaseModel):
    profile_id: str


class DisconnectResponse(BaseModel):
    message: str
    platform: str
    revoke: str


def frontend_redirect_url(outcome: CallbackOutcome) -> str:
    """Translate a callback outcome into the front-end landing URL."""
    base_url = (settings.FRONTEND_URL or "").rstrip("/")
    params: Dict[str, Any]
    if outcome.succeeded:
        params = {"connected": outcome.platform}
    else:
        params = {"error": outcome.error or "callback_error"}
        if outcome.description:
            params["desc"] = outcome.description
        if outcome.error in PLATFORM_SCOPED_ERRORS:
            params["platform"] = outcome.platform
    return f"{base_url}/?{urlencode(params)}"


@router.get("/connected-accounts/{profile_id}", response_model=List[ConnectedAccountResponse])
async def get_connected_accounts(
    profile_id: str,
    storage: LinkStorage = Depends(get_storage),
):
    """List connected accounts for a profile without any token material."""
    return await list_connected_accounts(profile_id, storage=storage)


@router.get("/auth/{platform}/connect")
async def connect_platform(
    platform: str,
    profile_id: str = Query(..., min_length=1, description="Profile that will own the connection"),
    state_store: OAuthStateStore = Depends(get_state_store),
    _rate_limit: None = Depends(rate_limit("oauth_connect", limit=60, window_seconds=3600)),
):
    """Start an OAuth flow by redirecting to the provider consent screen."""
    try:
        authorization = await begin_authorization(platform, profile_id, state_store=state_store)
    except (UnknownProviderError, ProviderNotConfiguredError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return RedirectResponse(url=authorization.url, status_code=302)


@router.get("/auth/{platform}/callback")
async def oauth_callback(
    platform: str,
    request: Request,
    storage: LinkStorage = Depends(get_storage),
    state_store: OAuthStateStore = Depends(get_state_store),
    http_client: httpx.AsyncClient = Depends(get_http_client),
    _rate_limit: None = Depends(rate_limit("oauth_callback", limit=120, window_seconds=3600)),
):
    """Provider redirect target; always answers with a redirect to the front end."""
    outcome = await handle_callback(
        platform,
        dict(request.query_params),
        state_store=state_store,
        storage=storage,
        http_client=http_client,
    )
    return RedirectResponse(url=frontend_redirect_url(outcome), status_code=302)


@router.post("/disconnect/{platform}", response_model=DisconnectResponse)
async def disconnect_platform(
    platform: str,
    body: DisconnectRequest,
    storage: LinkStorage = Depends(get_storage),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Disconnect a platform; token revocation is best effort."""
    try:
        result = await disconnect(body.profile_id, platform, storage=storage, http_client=http_client)
    except NotConnectedError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return DisconnectResponse(
        message="Account disconnected successfully",
        platform=result.platform,
        revoke=result.revoke.value,
    )
