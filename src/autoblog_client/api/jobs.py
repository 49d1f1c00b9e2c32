"""Job orchestration: create, status, bounded polling, retry, cancel, progress stream."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from pydantic import ValidationError

from autoblog_client.api.contracts import (
    CancelJobResponse,
    CreateJobResponse,
    JobStatusResponse,
    WebsiteAnalysisJobRequest,
)
from autoblog_client.api.event_stream import EventStream, StreamEvent, run_abortable
from autoblog_client.api.session_http import AuthenticatedHttp
from autoblog_client.core.cancellation import AbortSignal, sleep_unless_aborted
from autoblog_client.core.stream_events import JOB_VOCABULARY, JobStreamEventKind
from autoblog_client.domain.errors import (
    RATE_LIMIT_MESSAGE,
    BackendError,
    FeatureUnavailableError,
    PollingTimeoutError,
    RequestTimeoutError,
    TransportError,
    is_rate_limit_payload,
)
from autoblog_client.domain.models import (
    ConnectionStatus,
    JobKind,
    JobRecord,
    JobStatus,
    StreamConnection,
    job_status_can_follow,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 2500
DEFAULT_MAX_POLL_ATTEMPTS = 120
DEFAULT_MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_BASE_DELAY_SECONDS = 1.0

EventHandler = Callable[[Any], None]


@dataclass(frozen=True)
class JobStreamOutcome:
    """How a job progress stream ended."""

    status: JobStatus
    result: Any = None
    error: str | None = None
    error_code: str | None = None
    retryable: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCEEDED


@dataclass
class JobStreamHandlers:
    on_connected: EventHandler | None = None
    on_progress: EventHandler | None = None
    on_step_change: EventHandler | None = None
    on_scrape_phase: EventHandler | None = None
    on_scrape_result: EventHandler | None = None
    on_analysis_result: EventHandler | None = None
    on_audience_complete: EventHandler | None = None
    on_audiences_result: EventHandler | None = None
    on_pitch_complete: EventHandler | None = None
    on_pitches_result: EventHandler | None = None
    on_scenario_image_complete: EventHandler | None = None
    on_scenarios_result: EventHandler | None = None
    on_stream_timeout: EventHandler | None = None
    on_context_result: EventHandler | None = None
    on_blog_result: EventHandler | None = None
    on_visuals_result: EventHandler | None = None
    on_seo_result: EventHandler | None = None
    on_complete: EventHandler | None = None
    on_failed: Callable[[JobStreamOutcome], None] | None = None
    on_reconnecting: Callable[[int, int], None] | None = None


JOB_HANDLER_SLOTS: dict[JobStreamEventKind, str] = {
    JobStreamEventKind.CONNECTED: "on_connected",
    JobStreamEventKind.PROGRESS_UPDATE: "on_progress",
    JobStreamEventKind.STEP_CHANGE: "on_step_change",
    JobStreamEventKind.SCRAPE_PHASE: "on_scrape_phase",
    JobStreamEventKind.SCRAPE_RESULT: "on_scrape_result",
    JobStreamEventKind.ANALYSIS_RESULT: "on_analysis_result",
    JobStreamEventKind.AUDIENCE_COMPLETE: "on_audience_complete",
    JobStreamEventKind.AUDIENCES_RESULT: "on_audiences_result",
    JobStreamEventKind.PITCH_COMPLETE: "on_pitch_complete",
    JobStreamEventKind.PITCHES_RESULT: "on_pitches_result",
    JobStreamEventKind.SCENARIO_IMAGE_COMPLETE: "on_scenario_image_complete",
    JobStreamEventKind.SCENARIOS_RESULT: "on_scenarios_result",
    JobStreamEventKind.STREAM_TIMEOUT: "on_stream_timeout",
    JobStreamEventKind.CONTEXT_RESULT: "on_context_result",
    JobStreamEventKind.BLOG_RESULT: "on_blog_result",
    JobStreamEventKind.VISUALS_RESULT: "on_visuals_result",
    JobStreamEventKind.SEO_RESULT: "on_seo_result",
    JobStreamEventKind.COMPLETE: "on_complete",
    JobStreamEventKind.FAILED: "on_failed",
    JobStreamEventKind.RATE_LIMIT: "on_failed",
    JobStreamEventKind.ERROR: "on_failed",
}
_FAILURE_KINDS = frozenset(
    {JobStreamEventKind.FAILED, JobStreamEventKind.RATE_LIMIT, JobStreamEventKind.ERROR}
)


def failed_outcome(data: Any, *, rate_limited: bool = False) -> JobStreamOutcome:
    """Normalize a failure payload; rate limits become retryable with a friendly message."""
    if isinstance(data, dict):
        payload = dict(data)
    elif isinstance(data, str) and data.strip():
        payload = {"error": data.strip()}
    else:
        payload = {}
    if rate_limited:
        payload["errorCode"] = "rate_limit"
    retryable = rate_limited or is_rate_limit_payload(payload)
    fallback = RATE_LIMIT_MESSAGE if retryable else "Job failed"
    error = payload.get("error") or payload.get("message") or fallback
    code = payload.get("errorCode")
    return JobStreamOutcome(
        status=JobStatus.FAILED,
        error=str(error),
        error_code=str(code) if code is not None else None,
        retryable=retryable,
    )


def _has_progress_fields(data: Any) -> bool:
    return isinstance(data, dict) and (
        data.get("progress") is not None or data.get("currentStep") is not None
    )


class JobOrchestrator:
    """Drives server-side jobs through REST calls and the job progress stream."""

    def __init__(
        self,
        *,
        http: AuthenticatedHttp,
        streaming_enabled: bool = True,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        reconnect_base_delay: float = RECONNECT_BASE_DELAY_SECONDS,
        stream_timeout: float | None = None,
    ) -> None:
        self._http = http
        self._streaming_enabled = streaming_enabled
        self._poll_interval_ms = poll_interval_ms
        self._max_poll_attempts = max_poll_attempts
        self._max_reconnect_attempts = max_reconnect_attempts
        self._reconnect_base_delay = reconnect_base_delay
        self._stream_timeout = stream_timeout

    @property
    def streaming_enabled(self) -> bool:
        return self._streaming_enabled

    async def create_job(self, kind: JobKind, payload: dict[str, Any]) -> CreateJobResponse:
        body = await self._http.request_json("POST", f"/api/v1/jobs/{kind.value}", body=payload)
        response = CreateJobResponse.model_validate(body)
        logger.info("jobs.created kind=%s job_id=%s", kind.value, response.job_id)
        return response

    async def create_content_generation_job(self, payload: dict[str, Any]) -> CreateJobResponse:
        return await self.create_job(JobKind.CONTENT_GENERATION, payload)

    async def create_website_analysis_job(
        self, url: str, session_id: str | None = None
    ) -> CreateJobResponse:
        request = WebsiteAnalysisJobRequest(url=url, session_id=session_id)
        return await self.create_job(
            JobKind.WEBSITE_ANALYSIS, request.model_dump(by_alias=True, exclude_none=True)
        )

    async def get_status(self, job_id: str) -> JobRecord:
        body = await self._http.request_json("GET", f"/api/v1/jobs/{quote(job_id, safe='')}/status")
        if isinstance(body, dict):
            body = {"jobId": job_id, **body}
        try:
            return JobStatusResponse.model_validate(body).to_record()
        except ValidationError as exc:
            raise BackendError("Malformed job status response", data=body) from exc

    async def retry_job(self, job_id: str) -> CreateJobResponse:
        body = await self._http.request_json("POST", f"/api/v1/jobs/{quote(job_id, safe='')}/retry")
        return CreateJobResponse.model_validate(body)

    async def cancel_job(self, job_id: str) -> CancelJobResponse:
        """Request cancellation; the local view changes only through a later status read."""
        body = await self._http.request_json(
            "POST", f"/api/v1/jobs/{quote(job_id, safe='')}/cancel"
        )
        return CancelJobResponse.model_validate(body)

    async def poll_job_status(
        self,
        job_id: str,
        *,
        on_progress: Callable[[JobRecord], None] | None = None,
        poll_interval_ms: int | None = None,
        max_attempts: int | None = None,
        signal: AbortSignal | None = None,
    ) -> JobRecord:
        """Poll until a terminal status; raise PollingTimeoutError after `max_attempts` reads."""
        interval_ms = self._poll_interval_ms if poll_interval_ms is None else poll_interval_ms
        interval_seconds = interval_ms / 1000
        attempts = self._max_poll_attempts if max_attempts is None else max_attempts
        last_record: JobRecord | None = None
        for attempt in range(1, attempts + 1):
            if signal is not None:
                signal.raise_if_aborted("Polling aborted")
            record = await run_abortable(self.get_status(job_id), signal)
            if signal is not None:
                signal.raise_if_aborted("Polling aborted")
            if last_record is not None and not job_status_can_follow(
                last_record.status, record.status
            ):
                logger.warning(
                    "jobs.poll.status_regressed job_id=%s previous=%s current=%s",
                    job_id,
                    last_record.status,
                    record.status,
                )
            last_record = record
            if on_progress is not None:
                on_progress(record)
            if record.is_terminal:
                logger.info(
                    "jobs.poll.finished job_id=%s status=%s attempts=%s",
                    job_id,
                    record.status,
                    attempt,
                )
                return record
            if attempt < attempts:
                await sleep_unless_aborted(interval_seconds, signal)
        raise PollingTimeoutError(job_id, attempts, last_record)

    def job_stream_url(self, job_id: str) -> str:
        transport = self._http.transport
        url = transport.url(f"/api/v1/jobs/{quote(job_id, safe='')}/stream")
        return self._http.identity.project_stream_url(url)

    async def connect_job_stream(
        self,
        job_id: str,
        handlers: JobStreamHandlers | None = None,
        *,
        max_reconnect_attempts: int | None = None,
        signal: AbortSignal | None = None,
    ) -> JobStreamOutcome:
        """Follow the job progress stream, reconnecting with backoff after connection loss."""
        if not self._streaming_enabled:
            raise FeatureUnavailableError("Streaming disabled by configuration")
        limit = (
            self._max_reconnect_attempts
            if max_reconnect_attempts is None
            else max_reconnect_attempts
        )
        return await run_abortable(
            self._follow_job_stream(job_id, handlers or JobStreamHandlers(), limit), signal
        )

    async def _follow_job_stream(
        self, job_id: str, handlers: JobStreamHandlers, max_reconnect_attempts: int
    ) -> JobStreamOutcome:
        url = self.job_stream_url(job_id)
        reconnect_attempt = 0
        while True:
            connection = StreamConnection(connection_id=job_id, stream_url=url)
            stream = EventStream(
                transport=self._http.transport,
                connection=connection,
                vocabulary=JOB_VOCABULARY,
                timeout=self._stream_timeout,
            )
            outcome: list[JobStreamOutcome] = []

            def dispatch(event: StreamEvent) -> None:
                nonlocal reconnect_attempt
                if event.kind == JobStreamEventKind.CONNECTED:
                    reconnect_attempt = 0
                settled = self._route_job_event(event, handlers)
                if settled is not None:
                    outcome.append(settled)

            try:
                await stream.run(dispatch)
            except (TransportError, RequestTimeoutError) as exc:
                connection.advance(ConnectionStatus.ERRORED)
                if reconnect_attempt >= max_reconnect_attempts:
                    logger.warning(
                        "jobs.stream.gave_up job_id=%s attempts=%s error=%s",
                        job_id,
                        reconnect_attempt,
                        exc,
                    )
                    raise TransportError(
                        "Job stream connection failed after reconnection attempts"
                    ) from exc
                reconnect_attempt += 1
                if handlers.on_reconnecting is not None:
                    handlers.on_reconnecting(reconnect_attempt, max_reconnect_attempts)
                delay = self._reconnect_base_delay * 2 ** (reconnect_attempt - 1)
                logger.info(
                    "jobs.stream.reconnect job_id=%s attempt=%s delay_s=%s",
                    job_id,
                    reconnect_attempt,
                    delay,
                )
                await asyncio.sleep(delay)
                continue
            connection.advance(ConnectionStatus.CLOSED)
            return outcome[0]

    def _route_job_event(
        self, event: StreamEvent, handlers: JobStreamHandlers
    ) -> JobStreamOutcome | None:
        kind = JobStreamEventKind(event.kind)
        data = event.data
        if kind in _FAILURE_KINDS:
            settled = failed_outcome(data, rate_limited=kind == JobStreamEventKind.RATE_LIMIT)
            if handlers.on_failed is not None:
                handlers.on_failed(settled)
            return settled
        handler = getattr(handlers, JOB_HANDLER_SLOTS[kind])
        if handler is not None:
            handler(data)
        if kind == JobStreamEventKind.STEP_CHANGE and handlers.on_progress is not None:
            if _has_progress_fields(data):
                handlers.on_progress(data)
        if kind == JobStreamEventKind.COMPLETE:
            result = data
            if isinstance(data, dict) and data.get("result") is not None:
                result = data["result"]
            return JobStreamOutcome(status=JobStatus.SUCCEEDED, result=result)
        return None
