import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
import redis.asyncio as redis
from httpx import ASGITransport, AsyncClient

import main
from config import settings
from main import _periodic_oauth_state_sweep, app, lifespan
from routers import rate_limit
from services.connectors.state_store import MemoryOAuthStateStore
from services.connectors.types import PendingAuthorization


@pytest.mark.asyncio
async def test_readiness_requires_a_configured_provider():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        with patch("routers.health.connector_capabilities", return_value={"github_oauth_available": False}):
            not_ready = await client.get("/health/ready")
        with patch("routers.health.connector_capabilities", return_value={"github_oauth_available": True}):
            ready = await client.get("/health/ready")
        live = await client.get("/health/live")

    assert not_ready.status_code == 503
    assert not_ready.json()["ready"] is False
    assert ready.json() == {"ready": True}
    assert live.json() == {"alive": True}


@pytest.mark.asyncio
async def test_rate_limit_falls_back_to_local_counters_when_redis_is_down():
    app.state.disable_rate_limits = False
    failing = AsyncMock(side_effect=redis.ConnectionError("redis unavailable"))

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        with patch("routers.rate_limit._consume_redis_quota", failing):
            statuses = []
            for _ in range(121):
                resp = await client.get("/api/auth/github/callback")
                statuses.append(resp.status_code)

    assert failing.await_count == 121
    assert statuses[-1] == 429
    assert set(statuses[:-1]) == {302}
    assert any(key.startswith("linkfolio:rate:oauth_callback:") for key in rate_limit._local_counters)


@pytest.mark.asyncio
async def test_rate_limit_ignores_rotating_forwarded_for_header():
    app.state.disable_rate_limits = False
    failing = AsyncMock(side_effect=redis.ConnectionError("redis unavailable"))

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        with patch("routers.rate_limit._consume_redis_quota", failing):
            statuses = []
            for attempt in range(121):
                resp = await client.get(
                    "/api/auth/github/callback",
                    headers={"X-Forwarded-For": f"203.0.113.{attempt % 250}"},
                )
                statuses.append(resp.status_code)

    assert statuses[-1] == 429
    assert list(rate_limit._local_counters) == ["linkfolio:rate:oauth_callback:127.0.0.1"]


@pytest.mark.asyncio
async def test_periodic_sweep_purges_expired_states():
    store = MemoryOAuthStateStore(ttl=timedelta(minutes=10))
    stale = datetime.now(timezone.utc) - timedelta(minutes=30)
    await store.put("stale", PendingAuthorization(profile_id="p1", platform="github", created_at=stale))
    await store.put(
        "fresh",
        PendingAuthorization(profile_id="p1", platform="github", created_at=datetime.now(timezone.utc)),
    )

    task = asyncio.create_task(_periodic_oauth_state_sweep(store, 0.01))
    for _ in range(100):
        if len(store) == 1:
            break
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(store) == 1
    assert await store.consume("fresh", "github") is not None


@pytest.mark.asyncio
async def test_periodic_sweep_disabled_with_zero_interval():
    store = MemoryOAuthStateStore(ttl=timedelta(minutes=10))
    await asyncio.wait_for(_periodic_oauth_state_sweep(store, 0), timeout=1)


@pytest.mark.asyncio
async def test_lifespan_starts_and_cancels_state_sweep(monkeypatch):
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", "k" * 48)
    monkeypatch.setattr(settings, "AUTO_CREATE_DB_SCHEMA", False)
    monkeypatch.setattr(settings, "OAUTH_STATE_SWEEP_INTERVAL_MINUTES", 2)
    started = asyncio.Event()
    seen = {}

    async def _fake_sweep(store, interval_seconds):
        seen["interval"] = interval_seconds
        started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            seen["cancelled"] = True
            raise

    monkeypatch.setattr(main, "_periodic_oauth_state_sweep", _fake_sweep)

    async with lifespan(app):
        await asyncio.wait_for(started.wait(), timeout=1)
        client = app.state.http_client
        assert not client.is_closed
    del app.state.http_client

    assert seen == {"interval": 120, "cancelled": True}
    assert client.is_closed
