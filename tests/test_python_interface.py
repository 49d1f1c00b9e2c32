from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import jwt
import pytest

from autoblog_client.adapters.settings import ClientSettings
from autoblog_client.adapters.storage import InMemoryStorage
from autoblog_client.api import AutoBlogClient
from autoblog_client.api.contracts import NO_CACHED_ANALYSIS
from autoblog_client.api.request_cache import RECENT_ANALYSIS_ENDPOINT
from autoblog_client.domain.errors import BackendError

_SECRET = "test-secret-key-for-hs256-signing-0001"


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    api_url: str = "http://api.test",
    sessions: InMemoryStorage | None = None,
) -> AutoBlogClient:
    return AutoBlogClient(
        ClientSettings(api_url=api_url),
        session_storage=sessions or InMemoryStorage(),
        http_transport=httpx.MockTransport(handler),
        session_id_factory=lambda: "session_client",
    )


def _user_token(user_id: str = "u1") -> str:
    return jwt.encode({"userId": user_id}, _SECRET, algorithm="HS256")


def test_api_base_url_strips_trailing_slash() -> None:
    client = _client(lambda request: httpx.Response(200), api_url="https://api.example.test/")
    assert client.api_base_url == "https://api.example.test"


@pytest.mark.asyncio
async def test_missing_recent_analysis_is_cached_no_data_body() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404, json={"error": "Not found"})

    async with _client(handler) as client:
        client.set_token(_user_token())
        first = await client.get_recent_analysis()
        second = await client.get_recent_analysis()
    assert first == NO_CACHED_ANALYSIS
    assert second == NO_CACHED_ANALYSIS
    assert len(calls) == 1
    assert calls[0].url.path == RECENT_ANALYSIS_ENDPOINT
    assert calls[0].headers["authorization"].startswith("Bearer ")


@pytest.mark.asyncio
async def test_recent_analysis_server_error_propagates() -> None:
    async with _client(lambda request: httpx.Response(500, json={"error": "boom"})) as client:
        client.set_token(_user_token())
        with pytest.raises(BackendError, match="boom"):
            await client.get_recent_analysis()


@pytest.mark.asyncio
async def test_logout_clears_token_and_cached_reads() -> None:
    sessions = InMemoryStorage()
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        del request
        calls.append(1)
        return httpx.Response(200, json={"user": {"id": "u1"}})

    async with _client(handler, sessions=sessions) as client:
        client.set_token(_user_token())
        await client.get_recent_analysis()
        assert "recentAnalysis_u1" in sessions.keys()
        client.logout()
        assert client.identity.token is None
        assert "recentAnalysis_u1" not in sessions.keys()


@pytest.mark.asyncio
async def test_adopt_session_posts_anonymous_session_id() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "adopted": 2})

    async with _client(handler) as client:
        session_id = client.identity.get_or_create_session_id()
        client.set_token(_user_token())
        response = await client.adopt_session()
    assert response == {"success": True, "adopted": 2}
    assert seen[0].url.path == "/api/v1/users/adopt-session"
    assert json.loads(seen[0].content) == {"session_id": session_id}


@pytest.mark.asyncio
async def test_adopt_session_without_session_is_rejected() -> None:
    async with _client(lambda request: httpx.Response(200)) as client:
        with pytest.raises(ValueError, match="No anonymous session"):
            await client.adopt_session()


@pytest.mark.asyncio
async def test_track_event_sends_camel_case_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    async with _client(handler) as client:
        client.identity.get_or_create_session_id()
        await client.track_event("cta_click", {"cta": "signup"}, page_url="https://app.test/")
    assert json.loads(seen[0].content) == {
        "eventType": "cta_click",
        "eventData": {"cta": "signup"},
        "sessionId": "session_client",
        "pageUrl": "https://app.test/",
    }


@pytest.mark.asyncio
async def test_track_event_failures_are_swallowed() -> None:
    def explode(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    async with _client(lambda request: httpx.Response(500)) as client:
        await client.track_event("page_view")
    async with _client(explode) as client:
        await client.track_event("page_view")


@pytest.mark.asyncio
async def test_stream_content_accumulates_generated_post() -> None:
    stream_body = (
        b"event: connected\ndata: {}\n\n"
        b'event: content-chunk\ndata: {"content": "Hello "}\n\n'
        b'event: content-chunk\ndata: {"content": "world"}\n\n'
        b"event: complete\ndata: {}\n\n"
    )
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "POST":
            return httpx.Response(200, json={"connectionId": "c1"})
        return httpx.Response(
            200, headers={"content-type": "text/event-stream"}, content=stream_body
        )

    chunks: list[str] = []
    async with _client(handler) as client:
        content = await client.stream_content(
            "/api/v1/enhanced-blog-generation/generate-stream",
            {"topic": "coffee"},
            on_chunk=chunks.append,
        )
    assert content == "Hello world"
    assert chunks == ["Hello ", "world"]
    assert json.loads(seen[0].content) == {"topic": "coffee"}
    assert seen[1].url.path == "/api/v1/stream/c1"
    assert seen[1].url.params["sessionId"] == "session_client"


@pytest.mark.asyncio
async def test_stream_content_raises_stream_error() -> None:
    stream_body = b'event: error\ndata: {"error": "Generation failed"}\n\n'

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"connectionId": "c1"})
        return httpx.Response(200, content=stream_body)

    async with _client(handler) as client:
        with pytest.raises(BackendError, match="Generation failed"):
            await client.stream_content("/api/v1/generate-stream", {})
