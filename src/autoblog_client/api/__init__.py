"""Public API surface for the generation backend client."""

from autoblog_client.api.contracts import (
    CancelJobResponse,
    CreateJobResponse,
    JobStatusResponse,
    StreamStartResponse,
)
from autoblog_client.api.identity import IdentityProvider
from autoblog_client.api.jobs import JobOrchestrator, JobStreamHandlers, JobStreamOutcome
from autoblog_client.api.narration import NarrationClient, SectionNarrationHandlers
from autoblog_client.api.operations import select_job_operation, select_narration_operation
from autoblog_client.api.python_interface import AutoBlogClient
from autoblog_client.api.request_cache import RequestCache
from autoblog_client.api.stream_connector import StreamConnector, StreamHandle, StreamHandlers

__all__ = [
    "AutoBlogClient",
    "CancelJobResponse",
    "CreateJobResponse",
    "IdentityProvider",
    "JobOrchestrator",
    "JobStatusResponse",
    "JobStreamHandlers",
    "JobStreamOutcome",
    "NarrationClient",
    "RequestCache",
    "SectionNarrationHandlers",
    "StreamConnector",
    "StreamHandle",
    "StreamHandlers",
    "StreamStartResponse",
    "select_job_operation",
    "select_narration_operation",
]
