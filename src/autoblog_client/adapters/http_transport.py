"""Timeout-bounded HTTP transport over httpx with error mapping."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import httpx

from autoblog_client.domain.errors import RequestTimeoutError, TransportError

logger = logging.getLogger(__name__)


class HttpTransport:
    """Shared async HTTP client for REST calls and streaming reads."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout_seconds)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    def url(self, path: str) -> str:
        """Resolve `path` against the base URL; absolute URLs pass through."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send one request; timeouts and network failures map to client errors."""
        url = self.url(path)
        try:
            return await self._client.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
                timeout=timeout if timeout is not None else self._timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            logger.warning("http.timeout method=%s url=%s", method, url)
            raise RequestTimeoutError() from exc
        except httpx.TransportError as exc:
            logger.warning("http.network_error method=%s url=%s error=%s", method, url, exc)
            raise TransportError(f"Network error: {exc}") from exc

    @asynccontextmanager
    async def stream(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming GET; reads inside the block share the same error mapping."""
        resolved = self.url(url)
        try:
            async with self._client.stream(
                "GET",
                resolved,
                headers=headers,
                timeout=timeout if timeout is not None else self._timeout_seconds,
            ) as response:
                yield response
        except httpx.TimeoutException as exc:
            logger.warning("http.stream_timeout path=%s", httpx.URL(resolved).path)
            raise RequestTimeoutError() from exc
        except httpx.TransportError as exc:
            logger.warning("http.stream_failed path=%s error=%s", httpx.URL(resolved).path, exc)
            raise TransportError("Stream connection failed") from exc

    async def aclose(self) -> None:
        await self._client.aclose()
