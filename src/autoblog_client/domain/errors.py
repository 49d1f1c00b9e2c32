"""Error taxonomy shared by transports, streams, jobs, and narration."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from autoblog_client.domain.models import JobRecord

RATE_LIMIT_MESSAGE = "Service is busy. Please wait a moment and try again."
_RATE_LIMIT_CODES = {"rate_limit", "rate_limit_exceeded"}


class AutoBlogClientError(RuntimeError):
    """Base class for every error raised by the client SDK."""


class TransportError(AutoBlogClientError):
    """Raised when a connection died or never opened without a structured payload."""

    def __init__(self, message: str = "Connection failed", *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RequestTimeoutError(AutoBlogClientError, TimeoutError):
    """Raised when a request or stream exceeded its explicit timeout."""

    def __init__(self, message: str = "Request timed out. Please try again.") -> None:
        super().__init__(message)


class BackendError(AutoBlogClientError):
    """Structured error reported by the backend (error event or non-2xx JSON body)."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.data = data

    @property
    def retryable(self) -> bool:
        return is_rate_limit_payload(self.data) or self.status == 429 or (
            (self.code or "").lower() in _RATE_LIMIT_CODES
        )

    @classmethod
    def from_payload(
        cls,
        payload: Any,
        *,
        status: int | None = None,
        default_message: str = "Request failed",
    ) -> BackendError:
        """Build an error from a decoded JSON body or event payload."""
        if isinstance(payload, dict):
            message = payload.get("error") or payload.get("message") or default_message
            code = payload.get("errorCode") or payload.get("code")
            return cls(
                str(message),
                code=str(code) if code is not None else None,
                status=status,
                data=payload,
            )
        if isinstance(payload, str) and payload.strip():
            return cls(payload.strip(), status=status, data=payload)
        return cls(default_message, status=status, data=payload)


class UnauthorizedError(BackendError):
    """Raised on HTTP 401 after stored auth state has been cleared."""

    is_unauthorized = True

    def __init__(self, message: str = "Authentication required", **kwargs: Any) -> None:
        kwargs.setdefault("status", 401)
        super().__init__(message, **kwargs)


class PollingTimeoutError(AutoBlogClientError):
    """Raised when job polling exhausted its attempts without a terminal status."""

    def __init__(self, job_id: str, attempts: int, last_record: JobRecord | None) -> None:
        super().__init__(f"Job polling timed out after {attempts} attempts (job {job_id})")
        self.job_id = job_id
        self.attempts = attempts
        self.last_record = last_record


class OperationAbortedError(AutoBlogClientError):
    """Raised when an abort signal stopped an operation."""

    aborted = True

    def __init__(self, message: str = "Operation aborted") -> None:
        super().__init__(message)


class FeatureUnavailableError(AutoBlogClientError):
    """Raised when the backend does not support a feature (404 on open, or disabled)."""


class NarrationUnavailableError(FeatureUnavailableError):
    """Narration is an enhancement; callers skip it instead of failing."""


def is_rate_limit_payload(data: Any) -> bool:
    """Return whether a failure payload describes a rate limit."""
    if not isinstance(data, dict):
        return False
    code = str(data.get("errorCode") or data.get("code") or "").lower()
    message = str(data.get("error") or data.get("message") or "").lower()
    return (
        data.get("status") == 429
        or code in _RATE_LIMIT_CODES
        or "rate limit" in message
        or "too many requests" in message
    )
