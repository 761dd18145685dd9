"""Follower counts and growth for connected social accounts."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Mapping, Optional

import httpx

from config import settings
from models.connected_account import ConnectedAccount
from services.connectors.providers import PROVIDERS, get_connector_provider
from services.crypto import decrypt_token
from services.storage import LinkStorage, as_utc

logger = logging.getLogger(__name__)

# (exclusive upper bound on follower count, estimated daily growth %)
ESTIMATED_GROWTH_TIERS = ((100, 5.0), (1000, 3.0), (10000, 2.0))
LARGE_ACCOUNT_GROWTH = 1.0
MAX_ESTIMATED_GROWTH = 5.0
NEW_ACCOUNT_GROWTH = 2.5


@dataclass(frozen=True)
class PlatformStats:
    count: int
    growth: float

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def estimated_daily_growth(follower_count: int) -> float:
    for upper_bound, growth in ESTIMATED_GROWTH_TIERS:
        if follower_count < upper_bound:
            return growth
    return LARGE_ACCOUNT_GROWTH


def compute_growth(
    current: int,
    previous: Optional[int],
    connected_at: Optional[datetime],
    *,
    now: Optional[datetime] = None,
) -> float:
    """
    Growth percentage against the previous reading.

    Without a usable previous reading (none, or zero) the value is a
    placeholder estimate, not measured growth: a size-tiered figure capped at
    5% for accounts connected at least a day, 2.5 for newer ones.
    """
    growth = 0.0
    if previous is not None and previous > 0:
        growth = (current - previous) / previous * 100
    elif current > 0 and connected_at is not None:
        now = now or datetime.now(timezone.utc)
        if now - as_utc(connected_at) >= timedelta(days=1):
            growth = min(estimated_daily_growth(current), MAX_ESTIMATED_GROWTH)
        else:
            growth = NEW_ACCOUNT_GROWTH
    return round(growth, 1)


async def _fetch_follower_count(
    account: ConnectedAccount,
    http_client: httpx.AsyncClient,
    timeout_seconds: float,
) -> int:
    try:
        provider = get_connector_provider(account.platform)
        access_token = decrypt_token(account.access_token_encrypted)
        count = await asyncio.wait_for(
            provider.fetch_follower_count(http_client, access_token),
            timeout=timeout_seconds,
        )
        return max(int(count), 0)
    except asyncio.TimeoutError:
        logger.warning("Follower count fetch for %s timed out after %ss", account.platform, timeout_seconds)
    except Exception as exc:
        logger.warning("Failed to fetch stats for %s: %s", account.platform, exc)
    return 0


async def refresh_stats(
    profile_id: str,
    *,
    storage: LinkStorage,
    http_client: httpx.AsyncClient,
    timeout_seconds: Optional[float] = None,
) -> Dict[str, PlatformStats]:
    """Fetch, record and score follower counts for every connected platform."""
    timeout = float(timeout_seconds or settings.PROVIDER_HTTP_TIMEOUT_SECONDS)
    accounts = await storage.list_connected_accounts(profile_id)

    # Network calls run concurrently; the session is only touched sequentially below.
    counts = await asyncio.gather(
        *(_fetch_follower_count(account, http_client, timeout) for account in accounts)
    )

    now = datetime.now(timezone.utc)
    stats: Dict[str, PlatformStats] = {}
    for account, count in zip(accounts, counts):
        await storage.append_follower_history(
            profile_id=profile_id,
            platform=account.platform,
            follower_count=count,
            recorded_at=now,
        )
        previous = await storage.get_previous_follower_count(profile_id, account.platform)
        stats[account.platform] = PlatformStats(
            count=count,
            growth=compute_growth(count, previous, account.connected_at, now=now),
        )
    await storage.commit()

    logger.info("social_stats_refresh profile=%s platforms=%s", profile_id, sorted(stats))
    return stats


def visible_stats(stats: Mapping[str, PlatformStats]) -> Dict[str, PlatformStats]:
    """Drop zero counts for providers whose zero means "metric unavailable"."""
    visible: Dict[str, PlatformStats] = {}
    for platform, entry in stats.items():
        provider_class = PROVIDERS.get(platform)
        if provider_class is not None and provider_class.hide_zero_count and entry.count == 0:
            continue
        visible[platform] = entry
    return visible
