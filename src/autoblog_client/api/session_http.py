"""Identity-aware JSON requests with backend error mapping."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from autoblog_client.adapters.http_transport import HttpTransport
from autoblog_client.api.identity import IdentityProvider
from autoblog_client.domain.errors import BackendError, UnauthorizedError

logger = logging.getLogger(__name__)


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


class AuthenticatedHttp:
    """Sends REST calls as the current identity and maps non-2xx replies to errors."""

    def __init__(self, *, transport: HttpTransport, identity: IdentityProvider) -> None:
        self._transport = transport
        self._identity = identity

    @property
    def transport(self) -> HttpTransport:
        return self._transport

    @property
    def identity(self) -> IdentityProvider:
        return self._identity

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Return the decoded JSON body; raise BackendError or UnauthorizedError otherwise."""
        headers = {"Content-Type": "application/json", **self._identity.request_headers()}
        response = await self._transport.request(
            method,
            path,
            json=body,
            params=params,
            headers=headers,
            timeout=timeout,
        )
        payload = _decode_body(response)
        if response.status_code == 401:
            self._identity.handle_unauthorized()
            error = BackendError.from_payload(
                payload, status=401, default_message="Authentication required"
            )
            raise UnauthorizedError(error.message, code=error.code, data=payload)
        if not response.is_success:
            logger.info(
                "http.backend_error method=%s path=%s status=%s",
                method,
                path,
                response.status_code,
            )
            raise BackendError.from_payload(
                payload,
                status=response.status_code,
                default_message=f"HTTP {response.status_code}",
            )
        return payload
