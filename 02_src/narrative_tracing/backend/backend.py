"""Telemetry backend interface and in-memory implementation."""

from typing import Any, Protocol

from ..models import utc_now

BACKEND_CAPABILITIES = ("open_trace", "open_child_span", "update_span", "flush")


class ITelemetryBackend(Protocol):
    """Opaque sink for trace and span records."""

    def open_trace(
        self,
        trace_id: str,
        session_id: str,
        name: str,
        metadata: dict[str, Any],
    ) -> Any:
        """Open a trace and return an opaque handle for it."""
        ...

    def open_child_span(
        self,
        handle: Any,
        span_id: str,
        name: str,
        input: dict[str, Any] | None = None,
        output: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        parent_span_id: str | None = None,
    ) -> None:
        """Record a span under the trace; parented to the root unless parent_span_id is set."""
        ...

    def update_span(
        self,
        handle: Any,
        observation_id: str,
        output: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        """Update a span, or the trace itself when observation_id is the trace ID."""
        ...

    async def flush(self) -> None:
        """Deliver pending records."""
        ...


class InMemoryBackend:
    """Keeps every record in dictionaries. Used in tests and when no export is wanted."""

    def __init__(self):
        self.traces: dict[str, dict[str, Any]] = {}
        self.flush_count = 0

    def open_trace(
        self,
        trace_id: str,
        session_id: str,
        name: str,
        metadata: dict[str, Any],
    ) -> str:
        """Open a trace; the handle is the trace ID."""
        self.traces[trace_id] = {
            "id": trace_id,
            "session_id": session_id,
            "name": name,
            "metadata": metadata,
            "output": None,
            "created_at": utc_now(),
            "spans": {},
        }
        return trace_id

    def open_child_span(
        self,
        handle: str,
        span_id: str,
        name: str,
        input: dict[str, Any] | None = None,
        output: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        parent_span_id: str | None = None,
    ) -> None:
        """Record a span under the trace."""
        self.traces[handle]["spans"][span_id] = {
            "id": span_id,
            "name": name,
            "input": input,
            "output": output,
            "metadata": metadata or {},
            "parent_span_id": parent_span_id,
            "error": None,
        }

    def update_span(
        self,
        handle: str,
        observation_id: str,
        output: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        """Update a span or the trace."""
        trace = self.traces[handle]
        record = trace if observation_id == handle else trace["spans"].get(observation_id)
        if record is None:
            return
        if output is not None:
            record["output"] = output
        if error is not None:
            record["error"] = error

    async def flush(self) -> None:
        """Nothing to deliver; counts calls."""
        self.flush_count += 1
