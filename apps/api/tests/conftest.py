import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import settings
from database import Base
from main import app
from routers import rate_limit
from services.connectors.providers import PROVIDERS, load_provider_descriptors
from tests.helpers import FakeProviderApi


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest.fixture
def provider_credentials(monkeypatch):
    """Configure client credentials for every provider."""
    for platform in PROVIDERS:
        prefix = platform.upper()
        monkeypatch.setattr(settings, f"{prefix}_CLIENT_ID", f"{platform}-client-id")
        monkeypatch.setattr(settings, f"{prefix}_CLIENT_SECRET", f"{platform}-client-secret")
    load_provider_descriptors.cache_clear()
    yield
    load_provider_descriptors.cache_clear()


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "linkfolio.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def provider_api():
    api = FakeProviderApi()
    async with httpx.AsyncClient(transport=httpx.MockTransport(api.handler)) as client:
        yield api, client
