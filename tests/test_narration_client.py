from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from autoblog_client.adapters.http_transport import HttpTransport
from autoblog_client.adapters.storage import InMemoryStorage
from autoblog_client.api.identity import IdentityProvider
from autoblog_client.api.narration import NarrationClient, SectionNarrationHandlers
from autoblog_client.api.session_http import AuthenticatedHttp
from autoblog_client.core.cancellation import AbortSignal
from autoblog_client.core.narration import NarrationController
from autoblog_client.core.stream_events import NarrationSection
from autoblog_client.domain.errors import (
    BackendError,
    NarrationUnavailableError,
    OperationAbortedError,
)
from autoblog_client.domain.models import InsightCard, NarrationMoment


def _sse(*events: tuple[str, Any]) -> bytes:
    return "".join(
        f"event: {name}\ndata: {json.dumps(data)}\n\n" for name, data in events
    ).encode("utf-8")


def _stream(body: bytes) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> NarrationClient:
    identity = IdentityProvider(
        token_storage=InMemoryStorage(),
        session_storage=InMemoryStorage(),
        session_id_factory=lambda: "session_narration",
    )
    transport = HttpTransport(base_url="http://api.test", transport=httpx.MockTransport(handler))
    return NarrationClient(
        http=AuthenticatedHttp(transport=transport, identity=identity),
        legacy_poll_interval=0.0,
        legacy_max_attempts=3,
        token_interval=0.0,
    )


@pytest.mark.asyncio
async def test_live_narrative_drives_controller_to_audiences() -> None:
    body = _sse(
        ("scraping-thought", {"content": "Reading your homepage."}),
        ("analysis-status-update", {"message": "Checking pricing"}),
        ("transition", {}),
        ("analysis-chunk", {"content": "You sell "}),
        ("analysis-chunk", {"content": "coffee."}),
        ("insight-card", {"title": "Audience", "content": "Remote workers"}),
        ("narrative-complete", {}),
        ("complete", {}),
    )
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _stream(body)

    moments: list[NarrationMoment] = []
    controller = NarrationController(
        transition_delay=0.01, on_change=lambda session: moments.append(session.moment)
    )
    assert await _client(handler).follow_narrative("j1", controller) is True

    session = controller.session
    assert session.job_id == "j1"
    assert session.scraping_narrative == "Reading your homepage. Checking pricing "
    assert session.analysis_narrative == "You sell coffee."
    assert session.insight_cards == (InsightCard(title="Audience", content="Remote workers"),)
    assert session.moment == NarrationMoment.AUDIENCES
    assert session.narrative_available
    assert not session.is_streaming
    orders = [moment.order for moment in moments]
    assert orders == sorted(orders)
    assert seen[0].url.path == "/api/v1/jobs/j1/narrative-stream"
    assert seen[0].url.params["sessionId"] == "session_narration"


@pytest.mark.asyncio
async def test_missing_narrative_stream_is_not_fatal() -> None:
    controller = NarrationController()
    available = await _client(lambda request: httpx.Response(404)).follow_narrative(
        "j1", controller
    )
    assert available is False
    assert controller.session.narrative_available is False
    assert controller.moment == NarrationMoment.AUDIENCES


@pytest.mark.asyncio
async def test_narrative_error_event_marks_unavailable() -> None:
    body = _sse(("scraping-thought", {"content": "Hi"}), ("error", {"error": "LLM down"}))
    controller = NarrationController()
    assert await _client(lambda request: _stream(body)).follow_narrative("j1", controller) is False
    assert controller.session.narrative_available is False
    assert controller.moment == NarrationMoment.AUDIENCES


@pytest.mark.asyncio
async def test_aborted_narrative_freezes_controller() -> None:
    signal = AbortSignal()
    signal.abort()
    controller = NarrationController()
    with pytest.raises(OperationAbortedError):
        await _client(lambda request: _stream(_sse(("complete", {})))).follow_narrative(
            "j1", controller, signal=signal
        )
    assert controller.frozen
    assert controller.moment == NarrationMoment.SCRAPING


@pytest.mark.asyncio
async def test_section_narration_streams_chunks_then_final_text() -> None:
    body = _sse(
        ("business-profile", {"name": "Acme"}),
        ("topic-chunk", {"text": "Brewing "}),
        ("topic-chunk", {"chunk": "guides"}),
        ("audience-chunk", {"text": "ignored"}),
        ("topic-complete", {"text": "Brewing guides for teams"}),
    )
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _stream(body)

    chunks: list[str] = []
    finals: list[str] = []
    profiles: list[Any] = []
    text = await _client(handler).stream_section_narration(
        NarrationSection.TOPIC,
        organization_id="org 1",
        selected_audience="Remote workers",
        handlers=SectionNarrationHandlers(
            on_chunk=chunks.append, on_complete=finals.append, on_business_profile=profiles.append
        ),
    )
    assert chunks == ["Brewing ", "guides"]
    assert finals == ["Brewing guides for teams"]
    assert text == "Brewing guides for teams"
    assert profiles == [{"name": "Acme"}]
    params = seen[0].url.params
    assert seen[0].url.path == "/api/v1/analysis/narration/topic"
    assert params["organizationId"] == "org 1"
    assert params["selectedAudience"] == "Remote workers"
    assert "selectedTopic" not in params


@pytest.mark.asyncio
async def test_section_narration_without_final_text_keeps_chunks() -> None:
    body = _sse(("audience-chunk", {"text": "Founders"}), ("audience-complete", {}))
    text = await _client(lambda request: _stream(body)).stream_section_narration(
        NarrationSection.AUDIENCE, organization_id="org-1"
    )
    assert text == "Founders"


@pytest.mark.asyncio
async def test_section_narration_errors() -> None:
    with pytest.raises(NarrationUnavailableError):
        await _client(lambda request: httpx.Response(404)).stream_section_narration(
            NarrationSection.CONTENT, organization_id="org-1"
        )
    body = _sse(("error", {"error": "Narration quota reached"}))
    with pytest.raises(BackendError, match="Narration quota reached"):
        await _client(lambda request: _stream(body)).stream_section_narration(
            NarrationSection.CONTENT, organization_id="org-1"
        )


@pytest.mark.asyncio
async def test_legacy_narration_polls_then_simulates_tokens() -> None:
    replies = [{"ready": False}, {"ready": True, "narrative": "hello world"}]
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json=replies.pop(0))

    chunks: list[str] = []
    finals: list[str] = []
    text = await _client(handler).legacy_narration(
        "org-1", on_chunk=chunks.append, on_complete=finals.append
    )
    assert chunks == ["hello ", "world"]
    assert finals == ["hello world"]
    assert text == "hello world"
    assert seen == ["/api/narrative/org-1", "/api/narrative/org-1"]


@pytest.mark.asyncio
async def test_legacy_narration_gives_up_when_never_ready() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        del request
        calls.append(1)
        return httpx.Response(200, json={"ready": False})

    with pytest.raises(NarrationUnavailableError):
        await _client(handler).legacy_narration("org-1")
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_legacy_narration_missing_endpoint_is_unavailable() -> None:
    with pytest.raises(NarrationUnavailableError):
        await _client(lambda request: httpx.Response(404)).legacy_narration("org-1")
