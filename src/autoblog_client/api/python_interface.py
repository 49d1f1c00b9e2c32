"""Python-first async client composing transport, identity, cache, streams, jobs, and narration."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError

from autoblog_client.adapters.http_transport import HttpTransport
from autoblog_client.adapters.settings import ClientSettings, load_client_settings
from autoblog_client.adapters.storage import InMemoryStorage, JsonFileStorage
from autoblog_client.api.contracts import (
    NO_CACHED_ANALYSIS,
    AdoptSessionRequest,
    StreamStartResponse,
    TrackEventRequest,
)
from autoblog_client.api.identity import IdentityProvider
from autoblog_client.api.jobs import JobOrchestrator
from autoblog_client.api.narration import NarrationClient
from autoblog_client.api.request_cache import (
    CURRENT_USER_ENDPOINT,
    RECENT_ANALYSIS_ENDPOINT,
    RequestCache,
)
from autoblog_client.api.session_http import AuthenticatedHttp
from autoblog_client.api.stream_connector import StreamConnector, StreamHandle, StreamHandlers
from autoblog_client.core.cancellation import AbortSignal
from autoblog_client.core.content_stream import ContentAccumulator
from autoblog_client.domain.errors import (
    AutoBlogClientError,
    BackendError,
    OperationAbortedError,
)
from autoblog_client.domain.ports import KeyValueStorage

logger = logging.getLogger(__name__)

ADOPT_SESSION_ENDPOINT = "/api/v1/users/adopt-session"
TRACK_EVENT_ENDPOINT = "/api/v1/analytics/track"


class AutoBlogClient:
    """Typed async client for the generation backend."""

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        token_storage: KeyValueStorage | None = None,
        session_storage: KeyValueStorage | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        session_id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Build a client; storages default to process memory or AUTOBLOG_SESSION_FILE."""
        self._settings = settings or load_client_settings()
        if session_storage is None:
            session_file = self._settings.session_file
            session_storage = JsonFileStorage(session_file) if session_file else InMemoryStorage()
        self._transport = HttpTransport(
            base_url=self._settings.api_url,
            timeout_seconds=self._settings.request_timeout_seconds,
            transport=http_transport,
        )
        self._identity = IdentityProvider(
            token_storage=token_storage or InMemoryStorage(),
            session_storage=session_storage,
            session_id_factory=session_id_factory,
        )
        self._http = AuthenticatedHttp(transport=self._transport, identity=self._identity)
        self._cache = RequestCache(storage=session_storage, identity=self._identity)
        long_timeout = self._settings.long_request_timeout_seconds
        self.jobs = JobOrchestrator(
            http=self._http,
            streaming_enabled=self._settings.streaming_enabled,
            poll_interval_ms=self._settings.poll_interval_ms,
            max_poll_attempts=self._settings.max_poll_attempts,
            max_reconnect_attempts=self._settings.max_reconnect_attempts,
            stream_timeout=long_timeout,
        )
        self.narration = NarrationClient(http=self._http, stream_timeout=long_timeout)
        self.streams = StreamConnector(
            transport=self._transport, identity=self._identity, timeout=long_timeout
        )

    async def __aenter__(self) -> AutoBlogClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def api_base_url(self) -> str:
        """Return normalized API base URL."""
        return self._transport.base_url

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def identity(self) -> IdentityProvider:
        return self._identity

    @property
    def cache(self) -> RequestCache:
        return self._cache

    def set_token(self, token: str, *, refresh_token: str | None = None) -> None:
        self._identity.set_token(token, refresh_token=refresh_token)

    def logout(self) -> None:
        """Forget credentials and the current user's cached reads."""
        self.clear_cached_analysis()
        self._identity.clear_auth()

    def on_unauthorized(self, callback: Callable[[], None] | None) -> None:
        self._identity.register_unauthorized_callback(callback)

    async def get_recent_analysis(self) -> Any:
        """Return the user's most recent analysis; a 404 yields the no-data body."""

        async def load() -> Any:
            try:
                return await self._http.request_json("GET", RECENT_ANALYSIS_ENDPOINT)
            except BackendError as exc:
                if exc.status == 404:
                    return dict(NO_CACHED_ANALYSIS)
                raise

        return await self._cache.fetch(RECENT_ANALYSIS_ENDPOINT, load)

    async def get_current_user(self) -> Any:
        async def load() -> Any:
            return await self._http.request_json("GET", CURRENT_USER_ENDPOINT)

        return await self._cache.fetch(CURRENT_USER_ENDPOINT, load)

    def clear_cached_analysis(self, user_id: str | None = None) -> None:
        self._cache.invalidate(RECENT_ANALYSIS_ENDPOINT, user_id)

    async def adopt_session(self, session_id: str | None = None) -> Any:
        """Move anonymous-session work into the signed-in account."""
        target = session_id or self._identity.session_id
        if not target:
            raise ValueError("No anonymous session to adopt.")
        request = AdoptSessionRequest(session_id=target)
        response = await self._http.request_json(
            "POST", ADOPT_SESSION_ENDPOINT, body=request.model_dump()
        )
        self.clear_cached_analysis()
        logger.info("session.adopted session_id=%s", target)
        return response

    async def track_event(
        self,
        event_type: str,
        event_data: dict[str, Any] | None = None,
        *,
        page_url: str | None = None,
    ) -> None:
        """Fire-and-forget analytics; failures are logged, never raised."""
        try:
            request = TrackEventRequest(
                event_type=event_type,
                event_data=event_data or {},
                session_id=self._identity.session_id,
                page_url=page_url,
            )
            await self._http.request_json(
                "POST",
                TRACK_EVENT_ENDPOINT,
                body=request.model_dump(by_alias=True, exclude_none=True),
            )
        except (AutoBlogClientError, ValidationError) as exc:
            logger.warning("analytics.track_failed event_type=%s error=%s", event_type, exc)

    async def start_stream(self, endpoint: str, payload: dict[str, Any]) -> StreamStartResponse:
        """POST a generation request that answers with a stream connection id."""
        body = await self._http.request_json(
            "POST",
            endpoint,
            body=payload,
            timeout=self._settings.long_request_timeout_seconds,
        )
        return StreamStartResponse.model_validate(body)

    def connect_to_stream(
        self,
        connection_id: str,
        handlers: StreamHandlers,
        *,
        stream_url: str | None = None,
        signal: AbortSignal | None = None,
    ) -> StreamHandle:
        return self.streams.connect(connection_id, handlers, stream_url=stream_url, signal=signal)

    async def stream_content(
        self,
        endpoint: str,
        payload: dict[str, Any],
        *,
        on_chunk: Callable[[str], None] | None = None,
        signal: AbortSignal | None = None,
    ) -> str:
        """Start a generation stream and return the accumulated content once it completes."""
        started = await self.start_stream(endpoint, payload)
        accumulator = ContentAccumulator()
        errors: list[Exception] = []

        def handle_chunk(data: Any) -> None:
            text = accumulator.append_chunk(data)
            if text and on_chunk is not None:
                on_chunk(text)

        handle = self.connect_to_stream(
            started.connection_id,
            StreamHandlers(
                on_content_chunk=handle_chunk,
                on_complete=accumulator.complete,
                on_error=errors.append,
            ),
            stream_url=started.stream_url,
            signal=signal,
        )
        await handle.wait()
        if errors:
            raise errors[0]
        if signal is not None and signal.aborted:
            raise OperationAbortedError("Stream aborted")
        return accumulator.content

    async def aclose(self) -> None:
        await self._transport.aclose()
