"""
Linkfolio API - FastAPI Backend
Main application entry point with health check and API routing.
"""

import asyncio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import (
    health,
    connections,
    social_stats,
)
from routers.dependencies import build_http_client
from services.connectors.state_store import OAuthStateStore, get_oauth_state_store


async def _periodic_oauth_state_sweep(store: OAuthStateStore, interval_seconds: float) -> None:
    if interval_seconds <= 0:
        return
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            purged = await store.sweep()
            if purged:
                print(f"🧹 OAuth state sweep purged {purged} expired states.")
        except Exception as exc:
            print(f"⚠️ OAuth state sweep tick failed: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Linkfolio API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")

    app.state.http_client = build_http_client()
    sweep_task = asyncio.create_task(
        _periodic_oauth_state_sweep(
            get_oauth_state_store(),
            max(int(settings.OAUTH_STATE_SWEEP_INTERVAL_MINUTES), 0) * 60,
        )
    )
    print(
        "📅 OAuth state sweep enabled "
        f"(every {int(settings.OAUTH_STATE_SWEEP_INTERVAL_MINUTES)} min, "
        f"ttl {int(settings.OAUTH_STATE_TTL_MINUTES)} min)."
    )
    yield
    # Shutdown
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass
    await app.state.http_client.aclose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="Linkfolio API",
    description="Link-in-bio profiles with OAuth-connected social accounts and follower stats",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(connections.router, prefix="/api", tags=["Connections"])
app.include_router(social_stats.router, prefix="/api", tags=["Social Stats"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Linkfolio API",
        "version": "0.1.0",
        "status": "running"
    }
