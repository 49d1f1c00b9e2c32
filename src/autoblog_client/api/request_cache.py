"""In-flight request sharing and session cache for user-scoped idempotent reads."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from autoblog_client.api.identity import IdentityProvider
from autoblog_client.domain.models import CacheEntry
from autoblog_client.domain.ports import KeyValueStorage

logger = logging.getLogger(__name__)

RECENT_ANALYSIS_ENDPOINT = "/api/v1/user/recent-analysis"
CURRENT_USER_ENDPOINT = "/api/v1/auth/me"
DEFAULT_CACHEABLE_ENDPOINTS = frozenset({RECENT_ANALYSIS_ENDPOINT, CURRENT_USER_ENDPOINT})
_STORAGE_PREFIXES = {
    RECENT_ANALYSIS_ENDPOINT: "recentAnalysis",
    CURRENT_USER_ENDPOINT: "currentUser",
}


def storage_key(endpoint: str, user_id: str) -> str:
    prefix = _STORAGE_PREFIXES.get(endpoint, endpoint.strip("/").replace("/", "_"))
    return f"{prefix}_{user_id}"


class RequestCache:
    """At most one network fetch per (endpoint, user) while a result is pending or cached."""

    def __init__(
        self,
        *,
        storage: KeyValueStorage,
        identity: IdentityProvider,
        cacheable_endpoints: Iterable[str] = DEFAULT_CACHEABLE_ENDPOINTS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._identity = identity
        self._cacheable = frozenset(cacheable_endpoints)
        self._clock = clock
        self._in_flight: dict[tuple[str, str], asyncio.Future[Any]] = {}

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def is_cacheable(self, endpoint: str) -> bool:
        return endpoint in self._cacheable

    async def fetch(self, endpoint: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return a cached or shared result, calling `loader` only when neither exists."""
        user_id = self._identity.current_user_id()
        if user_id is None or not self.is_cacheable(endpoint):
            return await loader()

        key = (endpoint, user_id)
        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug("cache.shared endpoint=%s", endpoint)
            return await asyncio.shield(pending)

        cached = self.get_entry(endpoint, user_id)
        if cached is not None:
            logger.debug("cache.hit endpoint=%s", endpoint)
            return cached.payload

        task = asyncio.ensure_future(self._load_and_store(key, loader))
        self._in_flight[key] = task
        return await asyncio.shield(task)

    async def _load_and_store(
        self, key: tuple[str, str], loader: Callable[[], Awaitable[Any]]
    ) -> Any:
        endpoint, user_id = key
        try:
            payload = await loader()
            self.put(endpoint, user_id, payload)
            return payload
        finally:
            self._in_flight.pop(key, None)

    def get_entry(self, endpoint: str, user_id: str) -> CacheEntry | None:
        raw = self._storage.get_item(storage_key(endpoint, user_id))
        if raw is None:
            return None
        try:
            decoded = json.loads(raw)
            return CacheEntry(
                endpoint=endpoint,
                user_id=user_id,
                payload=decoded["response"],
                timestamp=float(decoded["timestamp"]),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("cache.read_failed endpoint=%s error=%s", endpoint, exc)
            return None

    def put(self, endpoint: str, user_id: str, payload: Any) -> None:
        entry = {"response": payload, "timestamp": self._clock()}
        try:
            self._storage.set_item(storage_key(endpoint, user_id), json.dumps(entry))
        except (TypeError, ValueError, OSError) as exc:
            logger.warning("cache.write_failed endpoint=%s error=%s", endpoint, exc)

    def invalidate(self, endpoint: str, user_id: str | None = None) -> None:
        """Drop the cached entry for `user_id` (default: the current user)."""
        target = user_id or self._identity.current_user_id()
        if target is None:
            return
        self._storage.remove_item(storage_key(endpoint, target))
        logger.info("cache.invalidated endpoint=%s", endpoint)
