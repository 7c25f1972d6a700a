"""Narrative tracing module."""

from .app import Application, IApplication
from .backend import ITelemetryBackend, InMemoryBackend, SqliteBackend
from .errors import (
    BackendUnavailableError,
    NarrativeTracingError,
    NotFoundError,
    ValidationError,
)
from .formatting import (
    FormattedSpan,
    NarrativeTraceFormatter,
    StoryArcVisualization,
    arc_to_ascii_chart,
    formatted_span_to_string,
)
from .integrations import (
    CorrelationContext,
    extract_correlation_from_headers,
    make_correlation_hook,
)
from .models import (
    CompletedTrace,
    NarrativeEventType,
    NarrativeMetrics,
    NarrativeSpan,
    RootTrace,
    TraceCorrelation,
    Universe,
    calculate_overall_quality,
)
from .orchestrator import NarrativeTraceOrchestrator
from .tracker import ITracingHandler, NarrativeTracingHandler

__all__ = [
    # Application
    "Application",
    "IApplication",
    # Models
    "NarrativeEventType",
    "Universe",
    "NarrativeSpan",
    "TraceCorrelation",
    "NarrativeMetrics",
    "RootTrace",
    "CompletedTrace",
    "calculate_overall_quality",
    # Errors
    "NarrativeTracingError",
    "ValidationError",
    "NotFoundError",
    "BackendUnavailableError",
    # Components
    "ITelemetryBackend",
    "InMemoryBackend",
    "SqliteBackend",
    "NarrativeTraceOrchestrator",
    "ITracingHandler",
    "NarrativeTracingHandler",
    "NarrativeTraceFormatter",
    "StoryArcVisualization",
    "arc_to_ascii_chart",
    "FormattedSpan",
    "formatted_span_to_string",
    # Integrations
    "CorrelationContext",
    "extract_correlation_from_headers",
    "make_correlation_hook",
]
