"""TTL cache with optional Redis backend, used for pending OAuth states."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from redis import asyncio as redis_asyncio

OAUTH_STATE_PREFIX = "dropbox-oauth-state:"
logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires_at: datetime


class CacheService:
    """A very small cache facade that prefers Redis but falls back to memory."""

    def __init__(self, redis_url: Optional[str]):
        self._redis = None
        if redis_url:
            try:
                self._redis = redis_asyncio.from_url(redis_url)
            except Exception as exc:
                logger.warning("Redis unavailable at %s, using in-memory cache: %s", redis_url, exc)
                self._redis = None
        self._store: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any:
        """Return a cached value or None."""

        if self._redis:
            try:
                result = await self._redis.get(key)
                return json.loads(result) if result else None
            except Exception as exc:
                logger.warning("Redis get failed for %s: %s", key, exc)
        async with self._lock:
            entry = self._store.get(key)
            if entry and entry.expires_at > datetime.now(timezone.utc):
                return entry.value
            if entry:
                self._store.pop(key, None)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int = 3600) -> None:
        """Store a value for a period of time."""

        expires = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        if self._redis:
            try:
                await self._redis.set(key, json.dumps(value), ex=max(ttl_seconds, 1))
                return
            except Exception as exc:
                logger.warning("Redis set failed for %s: %s", key, exc)
        async with self._lock:
            self._store[key] = CacheEntry(value=value, expires_at=expires)

    async def delete(self, key: str) -> None:
        if self._redis:
            try:
                await self._redis.delete(key)
            except Exception as exc:
                logger.warning("Redis delete failed for %s: %s", key, exc)
        async with self._lock:
            self._store.pop(key, None)

    async def remember_oauth_state(self, state: str, user_id: Optional[str], ttl_seconds: int = 600) -> None:
        """Record a state value handed to Dropbox so the callback can be matched to it."""

        if not state:
            return
        await self.set(f"{OAUTH_STATE_PREFIX}{state}", {"state": state, "user_id": user_id}, ttl_seconds=ttl_seconds)

    async def consume_oauth_state(self, state: Optional[str]) -> Optional[dict[str, Any]]:
        """Return and forget a pending state; None when it was never issued or has expired."""

        if not state:
            return None
        key = f"{OAUTH_STATE_PREFIX}{state}"
        pending = await self.get(key)
        if pending is not None:
            await self.delete(key)
        return pending
