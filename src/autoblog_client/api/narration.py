"""Narration streams: live job narrative, per-section narration, and legacy poll-and-simulate."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from autoblog_client.api.contracts import LegacyNarrativeResponse
from autoblog_client.api.event_stream import EventStream, StreamEvent, run_abortable
from autoblog_client.api.session_http import AuthenticatedHttp
from autoblog_client.core.cancellation import AbortSignal, sleep_unless_aborted
from autoblog_client.core.narration import (
    SIMULATED_TOKEN_INTERVAL_SECONDS,
    NarrationController,
    tokenize_for_simulation,
)
from autoblog_client.core.stream_events import (
    NARRATIVE_VOCABULARY,
    NarrationEventKind,
    NarrationSection,
    NarrativeEventKind,
    narration_chunk_kind,
    narration_complete_kind,
    narration_vocabulary,
)
from autoblog_client.domain.errors import (
    BackendError,
    FeatureUnavailableError,
    NarrationUnavailableError,
    RequestTimeoutError,
    TransportError,
)
from autoblog_client.domain.models import ConnectionStatus, InsightCard, StreamConnection

logger = logging.getLogger(__name__)

LEGACY_POLL_INTERVAL_SECONDS = 2.0
LEGACY_MAX_ATTEMPTS = 30

TextHandler = Callable[[str], None]


def _text_field(data: Any, *keys: str) -> str:
    if isinstance(data, str):
        return data
    if not isinstance(data, dict):
        return ""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return str(value)
    return ""


def insight_card_from(data: Any) -> InsightCard:
    return InsightCard(
        title=_text_field(data, "title", "heading"),
        content=_text_field(data, "content", "text", "body"),
    )


@dataclass
class SectionNarrationHandlers:
    on_chunk: TextHandler | None = None
    on_complete: TextHandler | None = None
    on_business_profile: Callable[[Any], None] | None = None


class NarrationClient:
    """Feeds narration into a NarrationController or plain text callbacks."""

    def __init__(
        self,
        *,
        http: AuthenticatedHttp,
        stream_timeout: float | None = None,
        legacy_poll_interval: float = LEGACY_POLL_INTERVAL_SECONDS,
        legacy_max_attempts: int = LEGACY_MAX_ATTEMPTS,
        token_interval: float = SIMULATED_TOKEN_INTERVAL_SECONDS,
    ) -> None:
        self._http = http
        self._stream_timeout = stream_timeout
        self._legacy_poll_interval = legacy_poll_interval
        self._legacy_max_attempts = legacy_max_attempts
        self._token_interval = token_interval

    def narrative_stream_url(self, job_id: str) -> str:
        url = self._http.transport.url(f"/api/v1/jobs/{quote(job_id, safe='')}/narrative-stream")
        return self._http.identity.project_stream_url(url)

    def section_stream_url(
        self,
        section: NarrationSection,
        *,
        organization_id: str,
        selected_audience: str | None = None,
        selected_topic: str | None = None,
        previous_narration: str | None = None,
    ) -> str:
        params = {
            "organizationId": organization_id,
            "selectedAudience": selected_audience,
            "selectedTopic": selected_topic,
            "previousNarration": previous_narration,
        }
        url = self._http.transport.url(f"/api/v1/analysis/narration/{section.value}")
        query = {key: value for key, value in params.items() if value}
        return self._http.identity.project_stream_url(str(httpx.URL(url, params=query)))

    async def follow_narrative(
        self,
        job_id: str,
        controller: NarrationController,
        *,
        signal: AbortSignal | None = None,
    ) -> bool:
        """Drive `controller` from the live narrative stream; return whether narration was available."""
        controller.bind(job_id)
        controller.start_streaming()
        remove = signal.add_listener(controller.abort) if signal is not None else None
        connection = StreamConnection(
            connection_id=job_id, stream_url=self.narrative_stream_url(job_id)
        )
        stream = EventStream(
            transport=self._http.transport,
            connection=connection,
            vocabulary=NARRATIVE_VOCABULARY,
            timeout=self._stream_timeout,
        )

        def dispatch(event: StreamEvent) -> None:
            self._apply_narrative_event(event, controller)

        try:
            terminal = await run_abortable(stream.run(dispatch), signal)
        except (FeatureUnavailableError, TransportError, RequestTimeoutError) as exc:
            connection.advance(ConnectionStatus.ERRORED)
            logger.info("narration.unavailable job_id=%s error=%s", job_id, exc)
            controller.mark_unavailable()
            return False
        finally:
            if remove is not None:
                remove()
        if terminal.kind == NarrativeEventKind.ERROR:
            connection.advance(ConnectionStatus.ERRORED)
            return False
        connection.advance(ConnectionStatus.CLOSED)
        return True

    @staticmethod
    def _apply_narrative_event(event: StreamEvent, controller: NarrationController) -> None:
        kind = NarrativeEventKind(event.kind)
        data = event.data
        if kind in {NarrativeEventKind.SCRAPING_THOUGHT, NarrativeEventKind.ANALYSIS_STATUS_UPDATE}:
            controller.append_scraping_thought(_text_field(data, "content", "message"))
        elif kind == NarrativeEventKind.TRANSITION:
            controller.begin_transition()
        elif kind == NarrativeEventKind.ANALYSIS_CHUNK:
            controller.append_analysis_chunk(_text_field(data, "content", "message", "text"))
        elif kind == NarrativeEventKind.INSIGHT_CARD:
            controller.add_insight_card(insight_card_from(data))
        elif kind == NarrativeEventKind.NARRATIVE_COMPLETE:
            controller.narrative_complete()
        elif kind == NarrativeEventKind.COMPLETE:
            controller.complete()
        elif kind == NarrativeEventKind.ERROR:
            logger.info("narration.stream_error job_id=%s", controller.session.job_id)
            controller.mark_unavailable()

    async def stream_section_narration(
        self,
        section: NarrationSection,
        *,
        organization_id: str,
        selected_audience: str | None = None,
        selected_topic: str | None = None,
        previous_narration: str | None = None,
        handlers: SectionNarrationHandlers | None = None,
        signal: AbortSignal | None = None,
    ) -> str:
        """Stream one section's narration and return its final text."""
        handlers = handlers or SectionNarrationHandlers()
        url = self.section_stream_url(
            section,
            organization_id=organization_id,
            selected_audience=selected_audience,
            selected_topic=selected_topic,
            previous_narration=previous_narration,
        )
        connection = StreamConnection(connection_id=f"narration-{section.value}", stream_url=url)
        stream = EventStream(
            transport=self._http.transport,
            connection=connection,
            vocabulary=narration_vocabulary(section),
            timeout=self._stream_timeout,
        )
        chunk_kind = narration_chunk_kind(section)
        complete_kind = narration_complete_kind(section)
        text_parts: list[str] = []

        def dispatch(event: StreamEvent) -> None:
            if event.kind == chunk_kind:
                chunk = _text_field(event.data, "text", "chunk")
                if chunk:
                    text_parts.append(chunk)
                    if handlers.on_chunk is not None:
                        handlers.on_chunk(chunk)
            elif event.kind == complete_kind:
                final = _text_field(event.data, "text")
                if final:
                    text_parts[:] = [final]
                if handlers.on_complete is not None:
                    handlers.on_complete("".join(text_parts))
            elif event.kind == NarrationEventKind.BUSINESS_PROFILE:
                if handlers.on_business_profile is not None:
                    handlers.on_business_profile(event.data)

        try:
            terminal = await run_abortable(stream.run(dispatch), signal)
        except FeatureUnavailableError as exc:
            connection.advance(ConnectionStatus.ERRORED)
            raise NarrationUnavailableError(f"{section.value} narration is not available") from exc
        if terminal.kind == NarrationEventKind.ERROR:
            connection.advance(ConnectionStatus.ERRORED)
            raise BackendError.from_payload(terminal.data, default_message="Narration failed")
        connection.advance(ConnectionStatus.CLOSED)
        return "".join(text_parts)

    async def legacy_narration(
        self,
        organization_id: str,
        *,
        on_chunk: TextHandler | None = None,
        on_complete: TextHandler | None = None,
        signal: AbortSignal | None = None,
    ) -> str:
        """Poll until the narrative is ready, then replay it as a token stream."""
        path = f"/api/narrative/{quote(organization_id, safe='')}"
        for attempt in range(1, self._legacy_max_attempts + 1):
            if signal is not None:
                signal.raise_if_aborted("Narration aborted")
            try:
                body = await self._http.request_json("GET", path)
            except BackendError as exc:
                if exc.status == 404:
                    raise NarrationUnavailableError("Legacy narration is not available") from exc
                raise
            response = LegacyNarrativeResponse.model_validate(body)
            if response.ready and response.narrative:
                logger.debug(
                    "narration.legacy_ready organization_id=%s attempts=%s",
                    organization_id,
                    attempt,
                )
                return await self._simulate_stream(
                    response.narrative, on_chunk=on_chunk, on_complete=on_complete, signal=signal
                )
            if attempt < self._legacy_max_attempts:
                await sleep_unless_aborted(self._legacy_poll_interval, signal)
        raise NarrationUnavailableError(
            f"Narrative not ready after {self._legacy_max_attempts} attempts"
        )

    async def _simulate_stream(
        self,
        text: str,
        *,
        on_chunk: TextHandler | None,
        on_complete: TextHandler | None,
        signal: AbortSignal | None,
    ) -> str:
        emitted: list[str] = []
        for token in tokenize_for_simulation(text):
            if signal is not None:
                signal.raise_if_aborted("Narration aborted")
            emitted.append(token)
            if on_chunk is not None:
                on_chunk(token)
            await sleep_unless_aborted(self._token_interval, signal)
        if signal is not None:
            signal.raise_if_aborted("Narration aborted")
        narrative = "".join(emitted)
        if on_complete is not None:
            on_complete(narrative)
        return narrative
