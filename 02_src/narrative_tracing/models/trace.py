"""Root and completed trace models."""

from dataclasses import dataclass, field
from typing import Any

from .correlation import TraceCorrelation
from .metrics import NarrativeMetrics
from .span import NarrativeSpan, utc_now


@dataclass
class RootTrace:
    """Live root trace for a story generation session (owned by the orchestrator)."""

    trace_id: str
    story_id: str
    session_id: str
    handle: Any  # opaque backend trace handle
    child_span_ids: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)
    correlation: TraceCorrelation | None = None


@dataclass(frozen=True)
class CompletedTrace:
    """A finalized trace with all spans and metrics."""

    trace_id: str
    story_id: str
    session_id: str
    spans: tuple[NarrativeSpan, ...]
    start_time: str
    end_time: str
    duration_ms: float
    metrics: NarrativeMetrics | None = None
    story_content: str | None = None
    beat_count: int = 0
    correlation: TraceCorrelation | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON shape; optional members are omitted when absent."""
        data: dict[str, Any] = {
            "traceId": self.trace_id,
            "storyId": self.story_id,
            "sessionId": self.session_id,
            "spans": [span.to_dict() for span in self.spans],
            "startTime": self.start_time,
            "endTime": self.end_time,
            "durationMs": self.duration_ms,
            "beatCount": self.beat_count,
        }
        if self.metrics is not None:
            data["metrics"] = self.metrics.to_dict()
        if self.story_content is not None:
            data["storyContent"] = self.story_content
        if self.correlation is not None:
            data["correlation"] = self.correlation.to_dict()
        return data
