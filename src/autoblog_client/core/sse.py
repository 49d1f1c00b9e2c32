"""Incremental decoder for the text/event-stream wire format."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_EVENT = "message"


@dataclass(frozen=True)
class SseMessage:
    """One dispatched server-sent event."""

    event: str
    data: str
    id: str | None = None
    retry_ms: int | None = None


class SseDecoder:
    """Turns decoded lines (without terminators) into dispatched messages."""

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self._last_id: str | None = None
        self._retry_ms: int | None = None

    def feed_line(self, line: str) -> SseMessage | None:
        """Consume one line; return a message when a blank line ends an event."""
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None
        name, sep, value = line.partition(":")
        if not sep:
            value = ""
        elif value.startswith(" "):
            value = value[1:]
        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            if "\x00" not in value:
                self._last_id = value
        elif name == "retry":
            if value.isdigit():
                self._retry_ms = int(value)
        return None

    def flush(self) -> SseMessage | None:
        """Dispatch a trailing event when the stream ended without a blank line."""
        return self._dispatch()

    def _dispatch(self) -> SseMessage | None:
        if not self._data:
            self._event = ""
            return None
        message = SseMessage(
            event=self._event or DEFAULT_EVENT,
            data="\n".join(self._data),
            id=self._last_id,
            retry_ms=self._retry_ms,
        )
        self._event = ""
        self._data = []
        return message
