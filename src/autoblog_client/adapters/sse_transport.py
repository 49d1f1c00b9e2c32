"""Server-sent event iteration over an httpx streaming response."""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx

from autoblog_client.core.sse import SseDecoder, SseMessage


async def iter_sse_messages(response: httpx.Response) -> AsyncIterator[SseMessage]:
    """Yield dispatched events in wire order until the body ends."""
    decoder = SseDecoder()
    async for line in response.aiter_lines():
        message = decoder.feed_line(line)
        if message is not None:
            yield message
    trailing = decoder.flush()
    if trailing is not None:
        yield trailing
