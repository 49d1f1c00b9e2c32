"""Typed wire contracts for the generation backend's REST endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from autoblog_client.domain.models import JobRecord, JobStatus


class ContractModel(BaseModel):
    """Base model config used by all wire contracts."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)


class CreateJobResponse(ContractModel):
    job_id: str = Field(alias="jobId", min_length=1)


class JobStatusResponse(ContractModel):
    job_id: str = Field(alias="jobId", min_length=1)
    status: JobStatus
    progress: int = 0
    current_step: str | None = Field(default=None, alias="currentStep")
    error: str | None = None
    result: Any = None

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value: Any) -> int:
        if value is None:
            return 0
        return max(0, min(100, int(float(value))))

    def to_record(self) -> JobRecord:
        return JobRecord(
            job_id=self.job_id,
            status=self.status,
            progress=self.progress,
            current_step=self.current_step,
            error=self.error,
            result=self.result,
        )


class CancelJobResponse(ContractModel):
    cancelled: bool = False


class WebsiteAnalysisJobRequest(ContractModel):
    url: str = Field(min_length=1)
    session_id: str | None = Field(default=None, serialization_alias="sessionId")


class StreamStartResponse(ContractModel):
    connection_id: str = Field(alias="connectionId", min_length=1)
    stream_url: str | None = Field(default=None, alias="streamUrl")


class LegacyNarrativeResponse(ContractModel):
    ready: bool = False
    narrative: str = ""


class AdoptSessionRequest(ContractModel):
    session_id: str = Field(min_length=1)


class TrackEventRequest(ContractModel):
    event_type: str = Field(alias="eventType", min_length=1)
    event_data: dict[str, Any] = Field(default_factory=dict, alias="eventData")
    session_id: str | None = Field(default=None, alias="sessionId")
    page_url: str | None = Field(default=None, alias="pageUrl")


NO_CACHED_ANALYSIS: dict[str, Any] = {
    "success": False,
    "analysis": None,
    "message": "No cached analysis found",
}
