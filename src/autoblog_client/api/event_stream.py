"""One SSE connection: open, decode, route, and stop after a terminal event."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeVar

from autoblog_client.adapters.http_transport import HttpTransport
from autoblog_client.adapters.sse_transport import iter_sse_messages
from autoblog_client.core.cancellation import AbortSignal
from autoblog_client.core.sse import SseMessage
from autoblog_client.core.stream_events import (
    ENVELOPE_EVENT,
    EventVocabulary,
    MalformedEventError,
    decode_envelope,
    decode_event_data,
)
from autoblog_client.domain.errors import (
    FeatureUnavailableError,
    OperationAbortedError,
    TransportError,
)
from autoblog_client.domain.models import ConnectionStatus, StreamConnection

logger = logging.getLogger(__name__)

T = TypeVar("T")

STREAM_HEADERS = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}


@dataclass(frozen=True)
class StreamEvent:
    """A decoded event from a known vocabulary."""

    kind: StrEnum
    data: Any


class EventStream:
    """Reads one stream connection and hands each known event to `dispatch` in order."""

    def __init__(
        self,
        *,
        transport: HttpTransport,
        connection: StreamConnection,
        vocabulary: EventVocabulary,
        timeout: float | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._transport = transport
        self._connection = connection
        self._vocabulary = vocabulary
        self._timeout = timeout
        self._headers = {**STREAM_HEADERS, **(headers or {})}

    @property
    def connection(self) -> StreamConnection:
        return self._connection

    async def run(self, dispatch: Callable[[StreamEvent], None]) -> StreamEvent:
        """Deliver events until a terminal one arrives; return that terminal event."""
        connection = self._connection
        async with self._transport.stream(
            connection.stream_url, headers=self._headers, timeout=self._timeout
        ) as response:
            if response.status_code == 404:
                raise FeatureUnavailableError(
                    f"Stream not available ({self._vocabulary.name}, HTTP 404)"
                )
            if not response.is_success:
                raise TransportError(
                    f"Stream request failed with HTTP {response.status_code}",
                    status=response.status_code,
                )
            connection.advance(ConnectionStatus.OPEN)
            logger.debug(
                "stream.open connection_id=%s vocabulary=%s",
                connection.connection_id,
                self._vocabulary.name,
            )
            async for message in iter_sse_messages(response):
                event = self._decode(message)
                if event is None:
                    continue
                dispatch(event)
                if event.kind in self._vocabulary.terminal:
                    return event
        raise TransportError("Stream connection failed")

    def _decode(self, message: SseMessage) -> StreamEvent | None:
        try:
            if message.event == ENVELOPE_EVENT:
                name, data = decode_envelope(message.data)
            else:
                name, data = message.event, decode_event_data(message.data)
        except MalformedEventError as exc:
            logger.warning(
                "stream.event.malformed connection_id=%s event=%s error=%s",
                self._connection.connection_id,
                message.event,
                exc,
            )
            return None
        kind = self._vocabulary.lookup(name)
        if kind is None:
            logger.debug(
                "stream.event.unknown connection_id=%s event=%s",
                self._connection.connection_id,
                name,
            )
            return None
        return StreamEvent(kind=kind, data=data)


async def run_abortable(awaitable: Awaitable[T], signal: AbortSignal | None) -> T:
    """Await `awaitable`, cancelling it and raising OperationAbortedError when `signal` fires."""
    if signal is None:
        return await awaitable
    if signal.aborted:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise OperationAbortedError()
    task = asyncio.ensure_future(awaitable)
    remove = signal.add_listener(task.cancel)
    try:
        return await task
    except asyncio.CancelledError:
        current = asyncio.current_task()
        if signal.aborted and (current is None or not current.cancelling()):
            raise OperationAbortedError() from None
        raise
    finally:
        remove()
