from __future__ import annotations

import asyncio
import json

import jwt
import pytest

from autoblog_client.adapters.storage import InMemoryStorage
from autoblog_client.api.identity import TOKEN_KEY, IdentityProvider
from autoblog_client.api.request_cache import (
    CURRENT_USER_ENDPOINT,
    RECENT_ANALYSIS_ENDPOINT,
    RequestCache,
    storage_key,
)

_SECRET = "test-secret-key-for-hs256-signing-0001"


def _cache(*, user_id: str | None = "u1") -> tuple[RequestCache, InMemoryStorage]:
    tokens = InMemoryStorage()
    if user_id is not None:
        tokens.set_item(TOKEN_KEY, jwt.encode({"userId": user_id}, _SECRET, algorithm="HS256"))
    identity = IdentityProvider(
        token_storage=tokens,
        session_storage=InMemoryStorage(),
        session_id_factory=lambda: "session_cache",
    )
    storage = InMemoryStorage()
    return RequestCache(storage=storage, identity=identity, clock=lambda: 1000.0), storage


class _Loader:
    def __init__(self, payload: object) -> None:
        self.payload = payload
        self.calls = 0
        self.release = asyncio.Event()

    async def __call__(self) -> object:
        self.calls += 1
        await self.release.wait()
        return self.payload


@pytest.mark.asyncio
async def test_concurrent_reads_share_one_fetch_and_later_reads_hit_cache() -> None:
    cache, storage = _cache()
    loader = _Loader({"analysis": {"businessName": "Acme"}})

    async def release_soon() -> None:
        await asyncio.sleep(0)
        assert cache.in_flight_count == 1
        loader.release.set()

    first, second, _ = await asyncio.gather(
        cache.fetch(RECENT_ANALYSIS_ENDPOINT, loader),
        cache.fetch(RECENT_ANALYSIS_ENDPOINT, loader),
        release_soon(),
    )
    assert first == second == {"analysis": {"businessName": "Acme"}}
    assert loader.calls == 1
    assert cache.in_flight_count == 0

    third = await cache.fetch(RECENT_ANALYSIS_ENDPOINT, loader)
    assert third == first
    assert loader.calls == 1
    stored = json.loads(storage.get_item("recentAnalysis_u1") or "{}")
    assert stored == {"response": first, "timestamp": 1000.0}


@pytest.mark.asyncio
async def test_anonymous_callers_bypass_the_cache() -> None:
    cache, storage = _cache(user_id=None)
    loader = _Loader({"user": None})
    loader.release.set()
    await cache.fetch(CURRENT_USER_ENDPOINT, loader)
    await cache.fetch(CURRENT_USER_ENDPOINT, loader)
    assert loader.calls == 2
    assert storage.keys() == []


@pytest.mark.asyncio
async def test_non_cacheable_endpoint_always_loads() -> None:
    cache, _ = _cache()
    loader = _Loader({"ok": True})
    loader.release.set()
    await cache.fetch("/api/v1/other", loader)
    await cache.fetch("/api/v1/other", loader)
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_invalidate_forces_a_new_fetch() -> None:
    cache, _ = _cache()
    loader = _Loader({"user": {"id": "u1"}})
    loader.release.set()
    await cache.fetch(CURRENT_USER_ENDPOINT, loader)
    cache.invalidate(CURRENT_USER_ENDPOINT)
    await cache.fetch(CURRENT_USER_ENDPOINT, loader)
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_failed_fetch_is_not_cached_and_clears_in_flight() -> None:
    cache, storage = _cache()
    calls: list[int] = []

    async def failing() -> object:
        calls.append(1)
        raise RuntimeError("backend down")

    for _ in range(2):
        with pytest.raises(RuntimeError, match="backend down"):
            await cache.fetch(RECENT_ANALYSIS_ENDPOINT, failing)
    assert len(calls) == 2
    assert cache.in_flight_count == 0
    assert storage.keys() == []


@pytest.mark.asyncio
async def test_corrupted_entry_counts_as_a_miss() -> None:
    cache, storage = _cache()
    storage.set_item(storage_key(RECENT_ANALYSIS_ENDPOINT, "u1"), "{not json")
    loader = _Loader({"fresh": True})
    loader.release.set()
    assert await cache.fetch(RECENT_ANALYSIS_ENDPOINT, loader) == {"fresh": True}
    assert loader.calls == 1


def test_entries_are_scoped_per_user() -> None:
    cache, _ = _cache()
    cache.put(RECENT_ANALYSIS_ENDPOINT, "u1", {"mine": True})
    assert cache.get_entry(RECENT_ANALYSIS_ENDPOINT, "u2") is None
    entry = cache.get_entry(RECENT_ANALYSIS_ENDPOINT, "u1")
    assert entry is not None
    assert entry.payload == {"mine": True}
    assert storage_key(CURRENT_USER_ENDPOINT, "u2") == "currentUser_u2"
