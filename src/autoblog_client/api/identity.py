"""Bearer-token vs anonymous-session identity, projected onto REST and stream calls."""

from __future__ import annotations

import logging
import secrets
import string
import time
from collections.abc import Callable

import httpx
import jwt

from autoblog_client.domain.models import SessionIdentity
from autoblog_client.domain.ports import KeyValueStorage

logger = logging.getLogger(__name__)

TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"
SESSION_ID_KEY = "audience_session_id"
_SESSION_ALPHABET = string.ascii_lowercase + string.digits
_USER_ID_CLAIMS = ("userId", "id", "sub")


def generate_session_id() -> str:
    """Return `session_<epoch ms>_<9 base36 chars>`."""
    suffix = "".join(secrets.choice(_SESSION_ALPHABET) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def user_id_from_token(token: str | None) -> str | None:
    """Read the user id claim from a JWT payload without verifying its signature."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        logger.debug("identity.token_undecodable")
        return None
    for claim in _USER_ID_CLAIMS:
        value = claims.get(claim)
        if value not in (None, ""):
            return str(value)
    return None


class IdentityProvider:
    """Single source of truth for who the caller is."""

    def __init__(
        self,
        *,
        token_storage: KeyValueStorage,
        session_storage: KeyValueStorage,
        session_id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._token_storage = token_storage
        self._session_storage = session_storage
        self._session_id_factory = session_id_factory or generate_session_id
        self._unauthorized_callback: Callable[[], None] | None = None
        self._unauthorized_fired = False

    @property
    def token(self) -> str | None:
        return self._token_storage.get_item(TOKEN_KEY) or None

    def set_token(self, token: str, *, refresh_token: str | None = None) -> None:
        """Store credentials for a new auth session."""
        self._token_storage.set_item(TOKEN_KEY, token)
        if refresh_token:
            self._token_storage.set_item(REFRESH_TOKEN_KEY, refresh_token)
        self._unauthorized_fired = False

    def clear_auth(self) -> None:
        self._token_storage.remove_item(TOKEN_KEY)
        self._token_storage.remove_item(REFRESH_TOKEN_KEY)

    @property
    def session_id(self) -> str | None:
        return self._session_storage.get_item(SESSION_ID_KEY) or None

    def get_or_create_session_id(self) -> str:
        existing = self.session_id
        if existing:
            return existing
        created = self._session_id_factory()
        self._session_storage.set_item(SESSION_ID_KEY, created)
        logger.info("identity.session_created session_id=%s", created)
        return created

    def current(self) -> SessionIdentity:
        """Resolve the active identity; a stored token always wins."""
        token = self.token
        if token:
            return SessionIdentity.resolve(token=token, session_id=None)
        return SessionIdentity.resolve(token=None, session_id=self.get_or_create_session_id())

    def current_user_id(self) -> str | None:
        return user_id_from_token(self.token)

    def request_headers(self) -> dict[str, str]:
        identity = self.current()
        if identity.is_authenticated:
            return {"Authorization": f"Bearer {identity.token}"}
        return {"x-session-id": str(identity.session_id)}

    def stream_query(self) -> dict[str, str]:
        """Stream clients cannot set headers, so identity travels in the query string."""
        identity = self.current()
        if identity.is_authenticated:
            return {"token": str(identity.token)}
        return {"sessionId": str(identity.session_id)}

    def project_stream_url(self, url: str) -> str:
        return str(httpx.URL(url).copy_merge_params(self.stream_query()))

    def register_unauthorized_callback(self, callback: Callable[[], None] | None) -> None:
        """Install the single handler invoked on the first 401 of an auth session."""
        self._unauthorized_callback = callback

    def handle_unauthorized(self) -> None:
        had_token = self.token is not None
        self.clear_auth()
        if self._unauthorized_fired:
            return
        self._unauthorized_fired = True
        logger.warning("identity.unauthorized had_token=%s", had_token)
        if self._unauthorized_callback is not None:
            self._unauthorized_callback()
