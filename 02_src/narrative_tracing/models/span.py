"""Span data model: one traced narrative operation."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..errors import ValidationError
from .events import NarrativeEventType


def utc_now() -> str:
    """Current time as ISO-8601 UTC with millisecond precision ('...T12:00:00.000Z')."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def parse_timestamp(value: str) -> datetime:
    """Parse a timestamp produced by utc_now()."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class NarrativeSpan:
    """A single narrative span in a trace."""

    span_id: str
    trace_id: str
    event_type: NarrativeEventType
    story_id: str
    session_id: str

    # Narrative context
    beat_id: str | None = None
    character_ids: list[str] = field(default_factory=list)
    emotional_tone: str | None = None
    lead_universe: str | None = None

    # Timing
    start_time: str = field(default_factory=utc_now)
    end_time: str | None = None

    # Data
    input_data: dict[str, Any] | None = None
    output_data: dict[str, Any] | None = None

    # Status
    success: bool = True
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape."""
        data: dict[str, Any] = {
            "spanId": self.span_id,
            "traceId": self.trace_id,
            "eventType": self.event_type.value,
            "storyId": self.story_id,
            "sessionId": self.session_id,
            "characterIds": list(self.character_ids),
            "startTime": self.start_time,
            "success": self.success,
        }
        optional = {
            "beatId": self.beat_id,
            "emotionalTone": self.emotional_tone,
            "leadUniverse": self.lead_universe,
            "endTime": self.end_time,
            "inputData": self.input_data,
            "outputData": self.output_data,
            "error": self.error,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data


def create_span(
    span_id: str,
    trace_id: str,
    event_type: NarrativeEventType,
    story_id: str,
    session_id: str,
    *,
    beat_id: str | None = None,
    character_ids: list[str] | None = None,
    emotional_tone: str | None = None,
    lead_universe: str | None = None,
    input_data: dict[str, Any] | None = None,
) -> NarrativeSpan:
    """Create a NarrativeSpan with defaults (no characters, success, started now)."""
    return NarrativeSpan(
        span_id=span_id,
        trace_id=trace_id,
        event_type=NarrativeEventType(event_type),
        story_id=story_id,
        session_id=session_id,
        beat_id=beat_id,
        character_ids=list(character_ids or []),
        emotional_tone=emotional_tone,
        lead_universe=lead_universe,
        input_data=input_data,
    )


def set_output(span: NarrativeSpan, data: dict[str, Any]) -> None:
    """Attach output data and stamp the end time. A later call overwrites."""
    span.output_data = data
    span.end_time = utc_now()


def mark_error(span: NarrativeSpan, message: str) -> None:
    """Mark the span failed and stamp the end time. A later call overwrites."""
    if not message:
        raise ValidationError("error", "a non-empty message", message)
    span.success = False
    span.error = message
    span.end_time = utc_now()
