"""Closed event vocabularies and payload decoding for every stream kind."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

ENVELOPE_EVENT = "message"
_JSON_LEADERS = ("{", "[", '"')


class MalformedEventError(ValueError):
    """Raised when one event payload looks like JSON but does not parse."""


class StreamEventKind(StrEnum):
    """Events on a generation stream (`/api/v1/stream/{connectionId}`)."""

    CONNECTED = "connected"
    CONTENT_CHUNK = "content-chunk"
    AUDIENCE_COMPLETE = "audience-complete"
    TOPIC_COMPLETE = "topic-complete"
    TOPIC_IMAGE_START = "topic-image-start"
    TOPIC_IMAGE_COMPLETE = "topic-image-complete"
    QUERIES_EXTRACTED = "queries-extracted"
    COMPLETE = "complete"
    ERROR = "error"


class JobStreamEventKind(StrEnum):
    """Events on a job progress stream (`/api/v1/jobs/{jobId}/stream`)."""

    CONNECTED = "connected"
    PROGRESS_UPDATE = "progress-update"
    STEP_CHANGE = "step-change"
    SCRAPE_PHASE = "scrape-phase"
    SCRAPE_RESULT = "scrape-result"
    ANALYSIS_RESULT = "analysis-result"
    AUDIENCE_COMPLETE = "audience-complete"
    AUDIENCES_RESULT = "audiences-result"
    PITCH_COMPLETE = "pitch-complete"
    PITCHES_RESULT = "pitches-result"
    SCENARIO_IMAGE_COMPLETE = "scenario-image-complete"
    SCENARIOS_RESULT = "scenarios-result"
    STREAM_TIMEOUT = "stream-timeout"
    CONTEXT_RESULT = "context-result"
    BLOG_RESULT = "blog-result"
    VISUALS_RESULT = "visuals-result"
    SEO_RESULT = "seo-result"
    COMPLETE = "complete"
    FAILED = "failed"
    RATE_LIMIT = "rate_limit"
    ERROR = "error"


class NarrativeEventKind(StrEnum):
    """Events on a job narrative stream (`/api/v1/jobs/{jobId}/narrative-stream`)."""

    SCRAPING_THOUGHT = "scraping-thought"
    ANALYSIS_STATUS_UPDATE = "analysis-status-update"
    TRANSITION = "transition"
    ANALYSIS_CHUNK = "analysis-chunk"
    INSIGHT_CARD = "insight-card"
    NARRATIVE_COMPLETE = "narrative-complete"
    COMPLETE = "complete"
    ERROR = "error"


class NarrationSection(StrEnum):
    AUDIENCE = "audience"
    TOPIC = "topic"
    CONTENT = "content"


class NarrationEventKind(StrEnum):
    """Events on a section narration stream (`/api/v1/analysis/narration/{section}`)."""

    AUDIENCE_CHUNK = "audience-chunk"
    AUDIENCE_COMPLETE = "audience-complete"
    TOPIC_CHUNK = "topic-chunk"
    TOPIC_COMPLETE = "topic-complete"
    CONTENT_CHUNK = "content-chunk"
    CONTENT_COMPLETE = "content-complete"
    BUSINESS_PROFILE = "business-profile"
    ERROR = "error"


def narration_chunk_kind(section: NarrationSection) -> NarrationEventKind:
    return NarrationEventKind(f"{section.value}-chunk")


def narration_complete_kind(section: NarrationSection) -> NarrationEventKind:
    return NarrationEventKind(f"{section.value}-complete")


@dataclass(frozen=True)
class EventVocabulary:
    """One closed set of event names plus which of them end a connection."""

    name: str
    kinds: type[StrEnum]
    terminal: frozenset[StrEnum]

    def lookup(self, event_name: str) -> StrEnum | None:
        try:
            return self.kinds(event_name)
        except ValueError:
            return None


GENERATION_VOCABULARY = EventVocabulary(
    name="generation",
    kinds=StreamEventKind,
    terminal=frozenset({StreamEventKind.COMPLETE, StreamEventKind.ERROR}),
)
JOB_VOCABULARY = EventVocabulary(
    name="job",
    kinds=JobStreamEventKind,
    terminal=frozenset(
        {
            JobStreamEventKind.COMPLETE,
            JobStreamEventKind.FAILED,
            JobStreamEventKind.RATE_LIMIT,
            JobStreamEventKind.ERROR,
        }
    ),
)
NARRATIVE_VOCABULARY = EventVocabulary(
    name="narrative",
    kinds=NarrativeEventKind,
    terminal=frozenset({NarrativeEventKind.COMPLETE, NarrativeEventKind.ERROR}),
)


def narration_vocabulary(section: NarrationSection) -> EventVocabulary:
    """Vocabulary for one narration section; only its own completion is terminal."""
    return EventVocabulary(
        name=f"narration.{section.value}",
        kinds=NarrationEventKind,
        terminal=frozenset({narration_complete_kind(section), NarrationEventKind.ERROR}),
    )


def decode_event_data(raw: str) -> Any:
    """Parse JSON payloads; pass plain-text content through unchanged."""
    stripped = raw.strip()
    if not stripped:
        return {}
    if not stripped.startswith(_JSON_LEADERS):
        return raw
    try:
        return json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise MalformedEventError(f"Invalid JSON event payload: {exc.msg}") from exc


def decode_envelope(raw: str) -> tuple[str, Any]:
    """Split an untyped `{type, data}` envelope into event name and payload."""
    try:
        payload = json.loads(raw or "{}")
    except json.JSONDecodeError as exc:
        raise MalformedEventError(f"Invalid JSON envelope: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise MalformedEventError("Envelope payload must be a JSON object.")
    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedEventError("Envelope payload is missing a string `type`.")
    data = payload.get("data")
    return event_type, payload if data is None else data
