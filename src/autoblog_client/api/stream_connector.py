"""Generation stream connector: one handle per request, typed handler table."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from autoblog_client.adapters.http_transport import HttpTransport
from autoblog_client.api.event_stream import EventStream, StreamEvent
from autoblog_client.api.identity import IdentityProvider
from autoblog_client.core.cancellation import AbortSignal
from autoblog_client.core.stream_events import GENERATION_VOCABULARY, StreamEventKind
from autoblog_client.domain.errors import AutoBlogClientError, BackendError
from autoblog_client.domain.models import ConnectionStatus, StreamConnection

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]
ErrorHandler = Callable[[Exception], None]


@dataclass
class StreamHandlers:
    """Optional callbacks, one per generation event."""

    on_connected: EventHandler | None = None
    on_content_chunk: EventHandler | None = None
    on_audience_complete: EventHandler | None = None
    on_topic_complete: EventHandler | None = None
    on_topic_image_start: EventHandler | None = None
    on_topic_image_complete: EventHandler | None = None
    on_queries_extracted: EventHandler | None = None
    on_complete: EventHandler | None = None
    on_error: ErrorHandler | None = None


HANDLER_SLOTS: dict[StreamEventKind, str] = {
    StreamEventKind.CONNECTED: "on_connected",
    StreamEventKind.CONTENT_CHUNK: "on_content_chunk",
    StreamEventKind.AUDIENCE_COMPLETE: "on_audience_complete",
    StreamEventKind.TOPIC_COMPLETE: "on_topic_complete",
    StreamEventKind.TOPIC_IMAGE_START: "on_topic_image_start",
    StreamEventKind.TOPIC_IMAGE_COMPLETE: "on_topic_image_complete",
    StreamEventKind.QUERIES_EXTRACTED: "on_queries_extracted",
    StreamEventKind.COMPLETE: "on_complete",
    StreamEventKind.ERROR: "on_error",
}


class StreamHandle:
    """Caller-side control of one live stream connection."""

    def __init__(self, connection: StreamConnection) -> None:
        self._connection = connection
        self._closed = False
        self._task: asyncio.Task[None] | None = None

    @property
    def connection(self) -> StreamConnection:
        return self._connection

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop delivery; safe to call any number of times."""
        if self._closed:
            return
        self._settle(ConnectionStatus.CLOSED)
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug("stream.closed connection_id=%s", self._connection.connection_id)

    async def wait(self) -> None:
        """Return once the stream has finished; handler exceptions re-raise here."""
        if self._task is None:
            return
        await asyncio.wait({self._task})
        if not self._task.cancelled():
            self._task.result()

    def _settle(self, status: ConnectionStatus) -> None:
        self._closed = True
        self._connection.advance(status)

    def _attach(self, task: asyncio.Task[None]) -> None:
        self._task = task


def route_stream_event(event: StreamEvent, handlers: StreamHandlers) -> None:
    """Invoke the handler slot registered for `event.kind`."""
    kind = StreamEventKind(event.kind)
    if kind == StreamEventKind.ERROR:
        if handlers.on_error is not None:
            handlers.on_error(BackendError.from_payload(event.data, default_message="Stream error"))
        return
    handler = getattr(handlers, HANDLER_SLOTS[kind])
    if handler is not None:
        handler(event.data)


class StreamConnector:
    """Opens generation streams at `/api/v1/stream/{connection_id}`."""

    def __init__(
        self,
        *,
        transport: HttpTransport,
        identity: IdentityProvider,
        timeout: float | None = None,
    ) -> None:
        self._transport = transport
        self._identity = identity
        self._timeout = timeout

    def stream_url_for(self, connection_id: str) -> str:
        return self._identity.project_stream_url(
            self._transport.url(f"/api/v1/stream/{connection_id}")
        )

    def connect(
        self,
        connection_id: str,
        handlers: StreamHandlers,
        *,
        stream_url: str | None = None,
        signal: AbortSignal | None = None,
    ) -> StreamHandle:
        """Start reading in the background; must be called from a running event loop."""
        connection = StreamConnection(
            connection_id=connection_id,
            stream_url=stream_url or self.stream_url_for(connection_id),
        )
        handle = StreamHandle(connection)
        task = asyncio.get_running_loop().create_task(self._run(handle, handlers))
        handle._attach(task)
        if signal is not None:
            remove = signal.add_listener(handle.close)
            task.add_done_callback(lambda _task: remove())
        return handle

    async def _run(self, handle: StreamHandle, handlers: StreamHandlers) -> None:
        stream = EventStream(
            transport=self._transport,
            connection=handle.connection,
            vocabulary=GENERATION_VOCABULARY,
            timeout=self._timeout,
        )
        handler_failed = False

        def dispatch(event: StreamEvent) -> None:
            nonlocal handler_failed
            if handle.closed:
                return
            try:
                route_stream_event(event, handlers)
            except Exception:
                handler_failed = True
                raise

        try:
            terminal = await stream.run(dispatch)
        except AutoBlogClientError as exc:
            if handle.closed:
                return
            handle._settle(ConnectionStatus.ERRORED)
            # A caller's handler raised; it is not a stream failure.
            if handler_failed:
                raise
            logger.warning(
                "stream.failed connection_id=%s error=%s", handle.connection.connection_id, exc
            )
            if handlers.on_error is not None:
                handlers.on_error(exc)
            return
        except BaseException:
            if not handle.closed:
                handle._settle(ConnectionStatus.ERRORED)
            raise
        if handle.closed:
            return
        if terminal.kind == StreamEventKind.ERROR:
            handle._settle(ConnectionStatus.ERRORED)
        else:
            handle._settle(ConnectionStatus.CLOSED)
