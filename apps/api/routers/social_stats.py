"""
Follower count endpoints for connected accounts.
"""

from typing import Dict

import httpx
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from routers.dependencies import get_http_client, get_storage
from services.social_stats import refresh_stats, visible_stats
from services.storage import LinkStorage

router = APIRouter()


class PlatformStatsResponse(BaseModel):
    count: int
    growth: float


@router.get("/social-stats/{profile_id}", response_model=Dict[str, PlatformStatsResponse])
async def get_social_stats(
    profile_id: str,
    display: bool = Query(False, description="Hide zero counts for providers without a usable metric"),
    storage: LinkStorage = Depends(get_storage),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Refresh follower counts for every connected platform of a profile."""
    stats = await refresh_stats(profile_id, storage=storage, http_client=http_client)
    if display:
        stats = visible_stats(stats)
    return {platform: entry.as_dict() for platform, entry in stats.items()}
