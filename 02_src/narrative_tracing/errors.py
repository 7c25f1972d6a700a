"""Exceptions raised by narrative tracing."""


class NarrativeTracingError(Exception):
    """Base class for all narrative tracing errors."""


class ValidationError(NarrativeTracingError, ValueError):
    """A value at the call boundary violates its constraint."""

    def __init__(self, field: str, constraint: str, value: object):
        self.field = field
        self.constraint = constraint
        self.value = value
        super().__init__(f"{field} must be {constraint}, got {value!r}")


class NotFoundError(NarrativeTracingError, LookupError):
    """An operation referenced a trace that is not live."""

    def __init__(self, trace_id: str):
        self.trace_id = trace_id
        super().__init__(f"Unknown trace ID: {trace_id}")


class BackendUnavailableError(NarrativeTracingError):
    """The telemetry backend could not be loaded or configured."""
