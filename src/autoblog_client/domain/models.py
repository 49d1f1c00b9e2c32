"""Core client-side records for streams, jobs, narration, cache, and identity."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any


class StreamTransport(StrEnum):
    SSE = "sse"
    POLL = "poll"


class ConnectionStatus(StrEnum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERRORED = "errored"


_CONNECTION_TRANSITIONS: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    ConnectionStatus.CONNECTING: frozenset(
        {ConnectionStatus.OPEN, ConnectionStatus.CLOSED, ConnectionStatus.ERRORED}
    ),
    ConnectionStatus.OPEN: frozenset({ConnectionStatus.CLOSED, ConnectionStatus.ERRORED}),
    ConnectionStatus.CLOSED: frozenset(),
    ConnectionStatus.ERRORED: frozenset(),
}


@dataclass
class StreamConnection:
    """One stream opened for one generation request; never reopens itself."""

    connection_id: str
    stream_url: str
    transport: StreamTransport = StreamTransport.SSE
    status: ConnectionStatus = ConnectionStatus.CONNECTING

    @property
    def finished(self) -> bool:
        return self.status in {ConnectionStatus.CLOSED, ConnectionStatus.ERRORED}

    def advance(self, status: ConnectionStatus) -> bool:
        """Move forward to `status`; return False when the move would go backwards."""
        if status == self.status:
            return False
        if status not in _CONNECTION_TRANSITIONS[self.status]:
            return False
        self.status = status
        return True


class JobKind(StrEnum):
    CONTENT_GENERATION = "content-generation"
    WEBSITE_ANALYSIS = "website-analysis"


class JobStatus(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES


TERMINAL_JOB_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED})
_JOB_STATUS_RANK = {
    JobStatus.QUEUED: 0,
    JobStatus.RUNNING: 1,
    JobStatus.SUCCEEDED: 2,
    JobStatus.FAILED: 2,
    JobStatus.CANCELLED: 2,
}


@dataclass(frozen=True)
class JobRecord:
    """Server-tracked job status as observed by the client."""

    job_id: str
    status: JobStatus
    progress: int = 0
    current_step: str | None = None
    error: str | None = None
    result: Any = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


def job_status_can_follow(previous: JobStatus, following: JobStatus) -> bool:
    """Return whether `following` is a legal successor of `previous`."""
    if previous == following:
        return True
    if previous.is_terminal:
        return False
    if following == JobStatus.CANCELLED:
        return previous in {JobStatus.QUEUED, JobStatus.RUNNING}
    return _JOB_STATUS_RANK[following] > _JOB_STATUS_RANK[previous]


class NarrationMoment(StrEnum):
    SCRAPING = "scraping"
    TRANSITION = "transition"
    ANALYSIS = "analysis"
    AUDIENCES = "audiences"

    @property
    def order(self) -> int:
        return _MOMENT_ORDER.index(self)


_MOMENT_ORDER = (
    NarrationMoment.SCRAPING,
    NarrationMoment.TRANSITION,
    NarrationMoment.ANALYSIS,
    NarrationMoment.AUDIENCES,
)


@dataclass(frozen=True)
class InsightCard:
    title: str = ""
    content: str = ""


@dataclass(frozen=True)
class NarrationSession:
    """Narrative progress for one analysis job."""

    job_id: str | None
    moment: NarrationMoment = NarrationMoment.SCRAPING
    scraping_narrative: str = ""
    analysis_narrative: str = ""
    narrative_available: bool = True
    insight_cards: tuple[InsightCard, ...] = ()
    is_streaming: bool = False

    def evolve(self, **changes: Any) -> NarrationSession:
        return replace(self, **changes)


@dataclass(frozen=True)
class CacheEntry:
    """Cached payload of an idempotent, user-scoped read."""

    endpoint: str
    user_id: str
    payload: Any
    timestamp: float

    @property
    def key(self) -> tuple[str, str]:
        return (self.endpoint, self.user_id)


class IdentityMode(StrEnum):
    JWT = "jwt"
    ANONYMOUS_SESSION = "anonymous-session"


@dataclass(frozen=True)
class SessionIdentity:
    """Exactly one identity mode; a token always wins over a session id."""

    mode: IdentityMode
    token: str | None = None
    session_id: str | None = None

    @classmethod
    def resolve(cls, *, token: str | None, session_id: str | None) -> SessionIdentity:
        if token:
            return cls(mode=IdentityMode.JWT, token=token)
        return cls(mode=IdentityMode.ANONYMOUS_SESSION, session_id=session_id)

    @property
    def is_authenticated(self) -> bool:
        return self.mode == IdentityMode.JWT


class UpdateKind(StrEnum):
    PROGRESS = "progress"
    CHUNK = "chunk"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class OperationUpdate:
    """Transport-agnostic update emitted by stream or poll adapters."""

    kind: UpdateKind
    data: Any = None
