"""Domain records, errors, and ports for the generation client."""

from autoblog_client.domain.errors import (
    AutoBlogClientError,
    BackendError,
    FeatureUnavailableError,
    NarrationUnavailableError,
    OperationAbortedError,
    PollingTimeoutError,
    RequestTimeoutError,
    TransportError,
    UnauthorizedError,
)
from autoblog_client.domain.models import (
    CacheEntry,
    ConnectionStatus,
    JobKind,
    JobRecord,
    JobStatus,
    NarrationMoment,
    NarrationSession,
    OperationUpdate,
    SessionIdentity,
    StreamConnection,
    UpdateKind,
)
from autoblog_client.domain.ports import AsyncOperation, KeyValueStorage

__all__ = [
    "AsyncOperation",
    "AutoBlogClientError",
    "BackendError",
    "CacheEntry",
    "ConnectionStatus",
    "FeatureUnavailableError",
    "JobKind",
    "JobRecord",
    "JobStatus",
    "KeyValueStorage",
    "NarrationMoment",
    "NarrationSession",
    "NarrationUnavailableError",
    "OperationAbortedError",
    "OperationUpdate",
    "PollingTimeoutError",
    "RequestTimeoutError",
    "SessionIdentity",
    "StreamConnection",
    "TransportError",
    "UnauthorizedError",
    "UpdateKind",
]
