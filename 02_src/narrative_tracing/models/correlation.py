"""Cross-system correlation for one root trace."""

from dataclasses import dataclass, field
from typing import Any

from ..config import DEFAULT_ORIGIN_SYSTEM


@dataclass
class TraceCorrelation:
    """Systems a logical trace has touched and the foreign trace IDs it absorbed."""

    root_trace_id: str
    story_id: str
    session_id: str
    correlation_path: list[str] = field(default_factory=list)  # unique, first-seen order
    child_trace_ids: dict[str, str] = field(default_factory=dict)  # foreign id -> system

    def to_dict(self) -> dict[str, Any]:
        """Serialize with childTraceIds as a plain object."""
        return {
            "rootTraceId": self.root_trace_id,
            "storyId": self.story_id,
            "sessionId": self.session_id,
            "correlationPath": list(self.correlation_path),
            "childTraceIds": dict(self.child_trace_ids),
        }


def create_correlation(
    root_trace_id: str,
    story_id: str,
    session_id: str,
    origin: str = DEFAULT_ORIGIN_SYSTEM,
) -> TraceCorrelation:
    """Create a correlation seeded with the originating system."""
    return TraceCorrelation(
        root_trace_id=root_trace_id,
        story_id=story_id,
        session_id=session_id,
        correlation_path=[origin],
    )


def append_system(correlation: TraceCorrelation, system: str) -> None:
    """Add a system to the path unless it is already there."""
    if system not in correlation.correlation_path:
        correlation.correlation_path.append(system)


def add_child_trace(
    correlation: TraceCorrelation, child_trace_id: str, system: str
) -> None:
    """Record a foreign trace ID; the path keeps the first appearance of each system."""
    correlation.child_trace_ids[child_trace_id] = system
    append_system(correlation, system)
