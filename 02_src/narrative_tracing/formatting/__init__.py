"""Human-readable rendering of completed traces."""

from .formatter import (
    FormattedSpan,
    NarrativeTraceFormatter,
    StoryArcVisualization,
    arc_to_ascii_chart,
    formatted_span_to_string,
)

__all__ = [
    "FormattedSpan",
    "NarrativeTraceFormatter",
    "StoryArcVisualization",
    "arc_to_ascii_chart",
    "formatted_span_to_string",
]
