"""Shared FastAPI dependencies for connection routes."""

from typing import AsyncIterator

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from services.connectors.state_store import OAuthStateStore, get_oauth_state_store
from services.storage import DatabaseLinkStorage, LinkStorage


def build_http_client() -> httpx.AsyncClient:
    """Outbound client for provider calls; every request is time-bounded."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.PROVIDER_HTTP_TIMEOUT_SECONDS),
        headers={"User-Agent": "linkfolio-api"},
    )


async def get_http_client(request: Request) -> AsyncIterator[httpx.AsyncClient]:
    shared = getattr(request.app.state, "http_client", None)
    if shared is not None:
        yield shared
        return
    async with build_http_client() as client:
        yield client


async def get_storage(db: AsyncSession = Depends(get_db)) -> LinkStorage:
    return DatabaseLinkStorage(db)


def get_state_store() -> OAuthStateStore:
    return get_oauth_state_store()
