"""Transport-agnostic operations: the same update contract over streams or polling."""

from __future__ import annotations

import logging
from collections.abc import Callable

from autoblog_client.api.jobs import JobOrchestrator, JobStreamHandlers, JobStreamOutcome
from autoblog_client.api.narration import NarrationClient
from autoblog_client.core.cancellation import AbortSignal
from autoblog_client.core.narration import NarrationController
from autoblog_client.domain.errors import (
    FeatureUnavailableError,
    RequestTimeoutError,
    TransportError,
)
from autoblog_client.domain.models import JobRecord, JobStatus, OperationUpdate, UpdateKind
from autoblog_client.domain.ports import AsyncOperation

logger = logging.getLogger(__name__)

UpdateHandler = Callable[[OperationUpdate], None]


def _finish(on_update: UpdateHandler, kind: UpdateKind, data: object) -> OperationUpdate:
    update = OperationUpdate(kind=kind, data=data)
    on_update(update)
    return update


class PolledJobOperation:
    """Job progress observed by polling the status endpoint."""

    def __init__(
        self, jobs: JobOrchestrator, job_id: str, *, signal: AbortSignal | None = None
    ) -> None:
        self._jobs = jobs
        self._job_id = job_id
        self._signal = signal

    async def subscribe(self, on_update: UpdateHandler) -> OperationUpdate:
        def on_progress(record: JobRecord) -> None:
            if not record.is_terminal:
                on_update(OperationUpdate(kind=UpdateKind.PROGRESS, data=record))

        record = await self._jobs.poll_job_status(
            self._job_id, on_progress=on_progress, signal=self._signal
        )
        kind = UpdateKind.COMPLETE if record.status == JobStatus.SUCCEEDED else UpdateKind.FAILED
        return _finish(on_update, kind, record)


class StreamedJobOperation:
    """Job progress observed through the job progress stream."""

    def __init__(
        self, jobs: JobOrchestrator, job_id: str, *, signal: AbortSignal | None = None
    ) -> None:
        self._jobs = jobs
        self._job_id = job_id
        self._signal = signal

    async def subscribe(self, on_update: UpdateHandler) -> OperationUpdate:
        handlers = JobStreamHandlers(
            on_progress=lambda data: on_update(OperationUpdate(kind=UpdateKind.PROGRESS, data=data))
        )
        outcome: JobStreamOutcome = await self._jobs.connect_job_stream(
            self._job_id, handlers, signal=self._signal
        )
        kind = UpdateKind.COMPLETE if outcome.succeeded else UpdateKind.FAILED
        return _finish(on_update, kind, outcome)


class FallbackOperation:
    """Runs `primary`; switches to `fallback` when the primary transport is unusable."""

    def __init__(self, primary: AsyncOperation, fallback: AsyncOperation, *, label: str) -> None:
        self._primary = primary
        self._fallback = fallback
        self._label = label

    async def subscribe(self, on_update: UpdateHandler) -> OperationUpdate:
        try:
            return await self._primary.subscribe(on_update)
        except (FeatureUnavailableError, TransportError, RequestTimeoutError) as exc:
            logger.info("operation.fallback label=%s error=%s", self._label, exc)
            return await self._fallback.subscribe(on_update)


class LiveNarrationOperation:
    """Narrative stream updates as NarrationSession snapshots."""

    def __init__(
        self,
        narration: NarrationClient,
        job_id: str,
        *,
        signal: AbortSignal | None = None,
    ) -> None:
        self._narration = narration
        self._job_id = job_id
        self._signal = signal

    async def subscribe(self, on_update: UpdateHandler) -> OperationUpdate:
        controller = NarrationController(
            on_change=lambda session: on_update(
                OperationUpdate(kind=UpdateKind.PROGRESS, data=session)
            )
        )
        available = await self._narration.follow_narrative(
            self._job_id, controller, signal=self._signal
        )
        kind = UpdateKind.COMPLETE if available else UpdateKind.FAILED
        return _finish(on_update, kind, controller.session)


class LegacyNarrationOperation:
    """Polled narrative replayed as chunk updates."""

    def __init__(
        self,
        narration: NarrationClient,
        organization_id: str,
        *,
        signal: AbortSignal | None = None,
    ) -> None:
        self._narration = narration
        self._organization_id = organization_id
        self._signal = signal

    async def subscribe(self, on_update: UpdateHandler) -> OperationUpdate:
        narrative = await self._narration.legacy_narration(
            self._organization_id,
            on_chunk=lambda token: on_update(OperationUpdate(kind=UpdateKind.CHUNK, data=token)),
            signal=self._signal,
        )
        return _finish(on_update, UpdateKind.COMPLETE, narrative)


def select_job_operation(
    jobs: JobOrchestrator, job_id: str, *, signal: AbortSignal | None = None
) -> AsyncOperation:
    """Prefer the progress stream; poll when streaming is disabled or unavailable."""
    polled = PolledJobOperation(jobs, job_id, signal=signal)
    if not jobs.streaming_enabled:
        return polled
    streamed = StreamedJobOperation(jobs, job_id, signal=signal)
    return FallbackOperation(streamed, polled, label=f"job:{job_id}")


def select_narration_operation(
    narration: NarrationClient,
    *,
    job_id: str | None = None,
    organization_id: str | None = None,
    signal: AbortSignal | None = None,
) -> AsyncOperation:
    """Live narrative for a job id, legacy polling for an organization id."""
    if job_id:
        return LiveNarrationOperation(narration, job_id, signal=signal)
    if organization_id:
        return LegacyNarrationOperation(narration, organization_id, signal=signal)
    raise ValueError("select_narration_operation requires job_id or organization_id.")
