"""Short-lived storage for pending OAuth authorization states."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Dict, Optional

import redis.asyncio as redis

from config import settings
from services.connectors.types import PendingAuthorization

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OAuthStateStore(ABC):
    """Single-use mapping of CSRF state token -> pending authorization."""

    def __init__(self, *, ttl: timedelta, now_fn: Optional[Callable[[], datetime]] = None) -> None:
        self.ttl = ttl
        self._now = now_fn or _utcnow

    def is_expired(self, pending: PendingAuthorization) -> bool:
        return self._now() - pending.created_at > self.ttl

    @abstractmethod
    async def put(self, state: str, pending: PendingAuthorization) -> None:
        raise NotImplementedError

    @abstractmethod
    async def consume(self, state: str, platform: str) -> Optional[PendingAuthorization]:
        """Atomically remove and return the entry issued for ``platform``.

        Returns ``None`` if the state is unknown, expired or was issued for a
        different platform; a mismatched entry is left in place.
        """
        raise NotImplementedError

    @abstractmethod
    async def sweep(self) -> int:
        """Purge expired entries and return how many were removed."""
        raise NotImplementedError


class MemoryOAuthStateStore(OAuthStateStore):
    """In-process store. Correct for a single-instance deployment only."""

    def __init__(self, *, ttl: timedelta, now_fn: Optional[Callable[[], datetime]] = None) -> None:
        super().__init__(ttl=ttl, now_fn=now_fn)
        self._entries: Dict[str, PendingAuthorization] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def put(self, state: str, pending: PendingAuthorization) -> None:
        with self._lock:
            self._entries[state] = pending

    async def consume(self, state: str, platform: str) -> Optional[PendingAuthorization]:
        with self._lock:
            pending = self._entries.get(state)
            if pending is None or pending.platform != platform:
                return None
            del self._entries[state]
        if self.is_expired(pending):
            return None
        return pending

    async def sweep(self) -> int:
        with self._lock:
            expired = [key for key, pending in self._entries.items() if self.is_expired(pending)]
            for key in expired:
                del self._entries[key]
        return len(expired)


class RedisOAuthStateStore(OAuthStateStore):
    """Redis-backed store for horizontally scaled deployments.

    Expiry is delegated to Redis key TTLs and single use to ``GETDEL``.
    """

    key_prefix = "linkfolio:oauth_state:"

    def __init__(
        self,
        client: "redis.Redis",
        *,
        ttl: timedelta,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        super().__init__(ttl=ttl, now_fn=now_fn)
        self._client = client

    def _key(self, state: str, platform: str) -> str:
        return f"{self.key_prefix}{platform}:{state}"

    async def put(self, state: str, pending: PendingAuthorization) -> None:
        payload = {
            "profile_id": pending.profile_id,
            "platform": pending.platform,
            "created_at": pending.created_at.isoformat(),
            "code_verifier": pending.code_verifier,
        }
        await self._client.set(
            self._key(state, pending.platform),
            json.dumps(payload),
            ex=max(int(self.ttl.total_seconds()), 1),
        )

    async def consume(self, state: str, platform: str) -> Optional[PendingAuthorization]:
        raw = await self._client.getdel(self._key(state, platform))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            data = json.loads(raw)
            pending = PendingAuthorization(
                profile_id=str(data["profile_id"]),
                platform=str(data["platform"]),
                created_at=datetime.fromisoformat(data["created_at"]),
                code_verifier=data.get("code_verifier"),
            )
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding malformed OAuth state entry: %s", exc)
            return None
        if self.is_expired(pending):
            return None
        return pending

    async def sweep(self) -> int:
        return 0


_state_store: Optional[OAuthStateStore] = None


def build_oauth_state_store() -> OAuthStateStore:
    ttl = timedelta(minutes=max(int(settings.OAUTH_STATE_TTL_MINUTES), 1))
    backend = (settings.OAUTH_STATE_BACKEND or "memory").strip().lower()
    if backend == "redis":
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        return RedisOAuthStateStore(client, ttl=ttl)
    if backend != "memory":
        raise ValueError(f"Unsupported OAUTH_STATE_BACKEND: {settings.OAUTH_STATE_BACKEND}")
    return MemoryOAuthStateStore(ttl=ttl)


def get_oauth_state_store() -> OAuthStateStore:
    """Process-wide state store used by the connection routes."""
    global _state_store
    if _state_store is None:
        _state_store = build_oauth_state_store()
    return _state_store
