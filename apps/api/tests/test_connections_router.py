from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from config import settings
from database import get_db
from main import app
from models.connected_account import ConnectedAccount
from models.profile import Profile
from routers.dependencies import get_http_client, get_state_store
from services.connectors.state_store import MemoryOAuthStateStore
from services.crypto import encrypt_token


@pytest_asyncio.fixture
async def integration_client(provider_credentials, session_maker, provider_api):
    api, provider_client = provider_api
    state_store = MemoryOAuthStateStore(ttl=timedelta(minutes=10))

    async with session_maker() as session:
        session.add(Profile(id="p1", name="Ada"))
        await session.commit()

    async def override_get_db():
        async with session_maker() as session:
            yield session

    async def override_get_http_client():
        yield provider_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_http_client] = override_get_http_client
    app.dependency_overrides[get_state_store] = lambda: state_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, api

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_http_client, None)
    app.dependency_overrides.pop(get_state_store, None)


def _query(url: str):
    return parse_qs(urlparse(url).query)


@pytest.mark.asyncio
async def test_connect_redirects_to_provider(integration_client):
    client, _ = integration_client

    resp = await client.get("/api/auth/github/connect", params={"profile_id": "p1"})

    assert resp.status_code == 302
    location = resp.headers["location"]
    assert location.startswith("https://github.com/login/oauth/authorize?")
    assert _query(location)["redirect_uri"] == [f"{settings.BASE_URL.rstrip('/')}/api/auth/github/callback"]


@pytest.mark.asyncio
async def test_connect_rejects_unknown_platform_and_missing_profile_id(integration_client):
    client, _ = integration_client

    unknown = await client.get("/api/auth/myspace/connect", params={"profile_id": "p1"})
    missing_param = await client.get("/api/auth/github/connect")

    assert unknown.status_code == 400
    assert unknown.json()["detail"] == "Invalid platform: myspace"
    assert missing_param.status_code == 422


@pytest.mark.asyncio
async def test_connect_does_not_require_a_stored_profile(integration_client):
    client, _ = integration_client

    resp = await client.get("/api/auth/github/connect", params={"profile_id": "no-such-profile"})

    assert resp.status_code == 302
    assert resp.headers["location"].startswith("https://github.com/login/oauth/authorize?")


@pytest.mark.asyncio
async def test_full_connect_round_trip_lands_on_frontend(integration_client):
    client, api = integration_client
    api.add("POST", "https://github.com/login/oauth/access_token", httpx.Response(200, json={"access_token": "gho"}))
    api.add("GET", "https://api.github.com/user", httpx.Response(200, json={"login": "octocat", "id": 1}))

    connect = await client.get("/api/auth/github/connect", params={"profile_id": "p1"})
    state = _query(connect.headers["location"])["state"][0]

    callback = await client.get("/api/auth/github/callback", params={"code": "c-1", "state": state})
    assert callback.status_code == 302
    assert callback.headers["location"] == f"{settings.FRONTEND_URL.rstrip('/')}/?connected=github"

    accounts = await client.get("/api/connected-accounts/p1")
    assert accounts.status_code == 200
    body = accounts.json()
    assert [(row["platform"], row["username"]) for row in body] == [("github", "octocat")]
    assert not any("token" in key for key in body[0])

    replay = await client.get("/api/auth/github/callback", params={"code": "c-1", "state": state})
    assert _query(replay.headers["location"]) == {"error": ["invalid_state"]}


@pytest.mark.asyncio
async def test_callback_failures_redirect_with_error_codes(integration_client):
    client, api = integration_client
    api.add("POST", "https://github.com/login/oauth/access_token", httpx.Response(500, text="upstream down"))

    denied = await client.get(
        "/api/auth/github/callback",
        params={"error": "access_denied", "error_description": "Cancelled"},
    )
    assert _query(denied.headers["location"]) == {"error": ["access_denied"], "desc": ["Cancelled"]}

    missing = await client.get("/api/auth/github/callback")
    assert _query(missing.headers["location"]) == {"error": ["missing_code_or_state"]}

    connect = await client.get("/api/auth/github/connect", params={"profile_id": "p1"})
    state = _query(connect.headers["location"])["state"][0]
    failed = await client.get("/api/auth/github/callback", params={"code": "c-1", "state": state})
    assert failed.status_code == 302
    assert _query(failed.headers["location"]) == {"error": ["token_exchange_failed"], "platform": ["github"]}
    assert "upstream down" not in failed.headers["location"]


@pytest.mark.asyncio
async def test_disconnect_endpoint(integration_client, session_maker):
    client, api = integration_client
    api.add("DELETE", "https://api.github.com/applications/github-client-id/token", httpx.Response(204))

    not_connected = await client.post("/api/disconnect/github", json={"profile_id": "p1"})
    assert not_connected.status_code == 404

    async with session_maker() as session:
        session.add(
            ConnectedAccount(
                profile_id="p1",
                platform="github",
                account_id="1",
                username="octocat",
                access_token_encrypted=encrypt_token("gho"),
            )
        )
        await session.commit()

    resp = await client.post("/api/disconnect/github", json={"profile_id": "p1"})
    assert resp.status_code == 200
    assert resp.json() == {
        "message": "Account disconnected successfully",
        "platform": "github",
        "revoke": "revoked",
    }
    assert (await client.get("/api/connected-accounts/p1")).json() == []


@pytest.mark.asyncio
async def test_social_stats_endpoint_applies_display_filter(integration_client, session_maker):
    client, api = integration_client
    api.add("GET", "https://api.github.com/user", httpx.Response(200, json={"followers": 40}))

    async with session_maker() as session:
        for platform in ("github", "linkedin"):
            session.add(
                ConnectedAccount(
                    profile_id="p1",
                    platform=platform,
                    account_id=f"{platform}-1",
                    username="ada",
                    access_token_encrypted=encrypt_token(f"{platform}-token"),
                )
            )
        await session.commit()

    raw = await client.get("/api/social-stats/p1")
    assert raw.status_code == 200
    assert raw.json()["linkedin"] == {"count": 0, "growth": 0.0}
    assert raw.json()["github"]["count"] == 40

    displayed = await client.get("/api/social-stats/p1", params={"display": "true"})
    assert set(displayed.json()) == {"github"}
