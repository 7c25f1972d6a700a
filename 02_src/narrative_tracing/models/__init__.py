"""Core data models for narrative tracing."""

from .events import (
    ANALYSIS_GLYPHS,
    EVENT_GLYPHS,
    NarrativeEventType,
    THEME_EVENTS,
    Universe,
    display_name,
    glyph_for,
)
from .span import (
    NarrativeSpan,
    create_span,
    mark_error,
    parse_timestamp,
    set_output,
    utc_now,
)
from .correlation import (
    TraceCorrelation,
    add_child_trace,
    append_system,
    create_correlation,
)
from .metrics import (
    NarrativeMetrics,
    apply_three_universe,
    average_character_arc,
    calculate_overall_quality,
    create_metrics,
    ema,
    increment,
    with_character_arc,
    with_timing,
)
from .trace import CompletedTrace, RootTrace

__all__ = [
    # Events
    "NarrativeEventType",
    "Universe",
    "EVENT_GLYPHS",
    "THEME_EVENTS",
    "ANALYSIS_GLYPHS",
    "glyph_for",
    "display_name",
    # Spans
    "NarrativeSpan",
    "create_span",
    "set_output",
    "mark_error",
    "utc_now",
    "parse_timestamp",
    # Correlation
    "TraceCorrelation",
    "create_correlation",
    "add_child_trace",
    "append_system",
    # Metrics
    "NarrativeMetrics",
    "create_metrics",
    "increment",
    "ema",
    "apply_three_universe",
    "with_character_arc",
    "with_timing",
    "average_character_arc",
    "calculate_overall_quality",
    # Traces
    "RootTrace",
    "CompletedTrace",
]
