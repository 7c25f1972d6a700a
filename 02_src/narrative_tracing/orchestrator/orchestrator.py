"""Narrative trace orchestrator.

Owns the lifecycle of root traces: creation, child span registration, span
mutation, and finalization into an immutable CompletedTrace. Also correlates
traces across system boundaries (LangGraph -> Flowise -> Langflow -> LangChain)
through HTTP headers and linked foreign trace IDs.

Live state is two keyed maps: root traces by trace ID and spans by span ID. A
root trace only holds the ordered IDs of the spans it owns. Finalizing a trace
removes it and its spans from both maps, so a finalized trace ID is simply
unknown afterwards.
"""

import copy
import uuid
from collections.abc import Mapping
from typing import Any

from ..backend import BACKEND_CAPABILITIES, ITelemetryBackend, SqliteBackend
from ..config import Settings, load_settings
from ..errors import BackendUnavailableError, NotFoundError, ValidationError
from ..headers import (
    HEADER_PARENT_SPAN_ID,
    HEADER_SESSION_ID,
    HEADER_STORY_ID,
    HEADER_TRACE_ID,
    get_header,
)
from ..logging_config import TraceLoggerAdapter, get_logger, trace_logger
from ..models import (
    ANALYSIS_GLYPHS,
    CompletedTrace,
    NarrativeEventType,
    NarrativeMetrics,
    NarrativeSpan,
    RootTrace,
    add_child_trace,
    append_system,
    create_correlation,
    create_span,
    display_name,
    glyph_for,
    mark_error,
    set_output,
    utc_now,
)
from ..models.events import DEFAULT_ANALYSIS_GLYPH, title_words
from ..models.span import parse_timestamp

logger = get_logger(__name__)

BEAT_PREVIEW_CHARS = 200
STORY_PREVIEW_CHARS = 500


def _preview(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _trace_log(root: RootTrace) -> TraceLoggerAdapter:
    return trace_logger(
        logger, trace_id=root.trace_id, story_id=root.story_id, session_id=root.session_id
    )


class NarrativeTraceOrchestrator:
    """Orchestrates traces across the Narrative Intelligence Stack."""

    TRACE_ID_HEADER = HEADER_TRACE_ID
    STORY_ID_HEADER = HEADER_STORY_ID
    SESSION_ID_HEADER = HEADER_SESSION_ID
    PARENT_SPAN_HEADER = HEADER_PARENT_SPAN_ID

    def __init__(
        self,
        backend: ITelemetryBackend | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or load_settings()
        if backend is None:
            backend = SqliteBackend(self._settings.db_path)

        missing = [
            name for name in BACKEND_CAPABILITIES if not callable(getattr(backend, name, None))
        ]
        if missing:
            raise BackendUnavailableError(
                f"Telemetry backend {type(backend).__name__} lacks: {', '.join(missing)}"
            )

        self._backend = backend
        self._active_traces: dict[str, RootTrace] = {}
        self._spans: dict[str, NarrativeSpan] = {}

    @property
    def backend(self) -> ITelemetryBackend:
        """The telemetry sink."""
        return self._backend

    @property
    def active_trace_ids(self) -> list[str]:
        """IDs of traces that have been started but not finalized."""
        return list(self._active_traces)

    def get_root(self, trace_id: str) -> RootTrace | None:
        """Live root trace by ID."""
        return self._active_traces.get(trace_id)

    def get_span(self, span_id: str) -> NarrativeSpan | None:
        """Live span by ID."""
        return self._spans.get(span_id)

    # Root trace creation
    def create_story_generation_root(
        self,
        story_id: str,
        session_id: str | None = None,
        trace_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> RootTrace:
        """Create the root trace for an entire story generation session."""
        final_trace_id = trace_id or str(uuid.uuid4())
        if final_trace_id in self._active_traces:
            raise ValidationError("trace_id", "unique among live traces", final_trace_id)
        final_session_id = session_id or self._settings.session_id or str(uuid.uuid4())
        created_at = utc_now()

        handle = self._backend.open_trace(
            trace_id=final_trace_id,
            session_id=final_session_id,
            name=f"{glyph_for(NarrativeEventType.STORY_GENERATION_START)} Story Generation: {story_id}",
            metadata={
                "story_id": story_id,
                "session_id": final_session_id,
                "created_at": created_at,
                **(metadata or {}),
            },
        )

        root = RootTrace(
            trace_id=final_trace_id,
            story_id=story_id,
            session_id=final_session_id,
            handle=handle,
            created_at=created_at,
            correlation=create_correlation(
                final_trace_id,
                story_id,
                final_session_id,
                origin=self._settings.origin_system,
            ),
        )
        self._active_traces[final_trace_id] = root

        _trace_log(root).info("Started root trace for story %s", story_id)
        return root

    # Child span creation
    def create_beat_span(
        self,
        beat_id: str,
        beat_content: str,
        beat_sequence: int,
        narrative_function: str,
        root_trace: RootTrace | str,
        *,
        emotional_tone: str | None = None,
        character_id: str | None = None,
        parent_span_id: str | None = None,
    ) -> str:
        """Create a child span for a story beat."""
        root = self._require_root(root_trace)

        name = f"{glyph_for(NarrativeEventType.BEAT_CREATED)} Beat {beat_sequence}: {beat_id}"
        if emotional_tone:
            name = f"{name} ({emotional_tone})"

        return self._register_span(
            root,
            NarrativeEventType.BEAT_CREATED,
            name,
            input={
                "beat_id": beat_id,
                "sequence": beat_sequence,
                "narrative_function": narrative_function,
            },
            output={"content_preview": _preview(beat_content, BEAT_PREVIEW_CHARS)},
            metadata={
                "beat_id": beat_id,
                "emotional_tone": emotional_tone,
                "character_id": character_id,
            },
            parent_span_id=parent_span_id,
            beat_id=beat_id,
            emotional_tone=emotional_tone,
            character_ids=[character_id] if character_id else [],
        )

    def create_analysis_span(
        self,
        analysis_type: str,
        trace_id: RootTrace | str,
        *,
        beat_id: str | None = None,
        parent_span_id: str | None = None,
        input_data: dict[str, Any] | None = None,
    ) -> str:
        """Create a span for narrative analysis work on a beat."""
        root = self._require_root(trace_id)

        glyph = ANALYSIS_GLYPHS.get(analysis_type, DEFAULT_ANALYSIS_GLYPH)
        name = f"{glyph} {title_words(analysis_type)} Analysis"
        if beat_id:
            name = f"{name} ({beat_id})"

        return self._register_span(
            root,
            NarrativeEventType.BEAT_ANALYZED,
            name,
            input=input_data or {"analysis_type": analysis_type, "beat_id": beat_id},
            metadata={"analysis_type": analysis_type, "beat_id": beat_id},
            parent_span_id=parent_span_id,
            beat_id=beat_id,
        )

    def create_agent_flow_span(
        self,
        flow_id: str,
        backend: str,
        trace_id: RootTrace | str,
        *,
        intent: str | None = None,
        parent_span_id: str | None = None,
        input_data: dict[str, Any] | None = None,
    ) -> str:
        """Create a span for a Flowise/Langflow flow execution."""
        root = self._require_root(trace_id)

        name = f"{glyph_for(NarrativeEventType.ROUTING_DECISION)} {backend[:1].upper()}{backend[1:]} Flow: {flow_id}"
        if intent:
            name = f"{name} (intent: {intent})"

        span_id = self._register_span(
            root,
            NarrativeEventType.FLOW_EXECUTED,
            name,
            input=input_data or {"flow_id": flow_id, "backend": backend},
            metadata={"flow_id": flow_id, "backend": backend, "intent": intent},
            parent_span_id=parent_span_id,
        )

        if root.correlation:
            append_system(root.correlation, backend)

        return span_id

    def create_enrichment_span(
        self,
        beat_id: str,
        enrichment_type: str,
        trace_id: RootTrace | str,
        flows_used: list[str],
        parent_span_id: str | None = None,
    ) -> str:
        """Create a span for beat enrichment."""
        root = self._require_root(trace_id)

        name = f"{glyph_for(NarrativeEventType.BEAT_ENRICHED)} Enrichment: {enrichment_type} ({beat_id})"

        return self._register_span(
            root,
            NarrativeEventType.BEAT_ENRICHED,
            name,
            input={
                "beat_id": beat_id,
                "enrichment_type": enrichment_type,
                "flows_used": list(flows_used),
            },
            metadata={"beat_id": beat_id, "enrichment_type": enrichment_type},
            parent_span_id=parent_span_id,
            beat_id=beat_id,
        )

    def create_event_span(
        self,
        event_type: NarrativeEventType,
        trace_id: RootTrace | str,
        *,
        input_data: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        parent_span_id: str | None = None,
        beat_id: str | None = None,
        character_ids: list[str] | None = None,
        emotional_tone: str | None = None,
        lead_universe: str | None = None,
    ) -> str:
        """Create a span for any narrative event kind, named from its glyph and kind."""
        root = self._require_root(trace_id)
        event_type = NarrativeEventType(event_type)

        name = f"{glyph_for(event_type)} {display_name(event_type)}"
        if beat_id:
            name = f"{name} ({beat_id})"
        elif lead_universe:
            name = f"{name} ({lead_universe})"

        return self._register_span(
            root,
            event_type,
            name,
            input=input_data or {},
            metadata={
                "event_type": event_type.value,
                "story_id": root.story_id,
                "beat_id": beat_id,
                "character_ids": list(character_ids or []),
                "emotional_tone": emotional_tone,
                "lead_universe": lead_universe,
                **(metadata or {}),
            },
            parent_span_id=parent_span_id,
            beat_id=beat_id,
            character_ids=character_ids,
            emotional_tone=emotional_tone,
            lead_universe=lead_universe,
        )

    def _require_root(self, root_or_id: RootTrace | str) -> RootTrace:
        trace_id = root_or_id.trace_id if isinstance(root_or_id, RootTrace) else root_or_id
        root = self._active_traces.get(trace_id)
        if root is None:
            raise NotFoundError(trace_id)
        return root

    def _register_span(
        self,
        root: RootTrace,
        event_type: NarrativeEventType,
        name: str,
        *,
        input: dict[str, Any] | None = None,
        output: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        parent_span_id: str | None = None,
        beat_id: str | None = None,
        character_ids: list[str] | None = None,
        emotional_tone: str | None = None,
        lead_universe: str | None = None,
    ) -> str:
        span_id = str(uuid.uuid4())

        self._backend.open_child_span(
            root.handle,
            span_id=span_id,
            name=name,
            input=input,
            output=output,
            metadata=metadata,
            parent_span_id=parent_span_id,
        )

        self._spans[span_id] = create_span(
            span_id,
            root.trace_id,
            event_type,
            root.story_id,
            root.session_id,
            beat_id=beat_id,
            character_ids=character_ids,
            emotional_tone=emotional_tone,
            lead_universe=lead_universe,
            input_data=input,
        )
        root.child_span_ids.append(span_id)

        _trace_log(root).debug(
            "Registered span %s", name, extra={"context": {"span_id": span_id}}
        )
        return span_id

    # Span updates (unknown span IDs are ignored: callers may race finalization)
    def update_span_output(self, span_id: str, output_data: dict[str, Any]) -> None:
        """Update a span with output data."""
        span = self._spans.get(span_id)
        if span is None:
            logger.debug("Ignoring output for unknown span %s", span_id)
            return

        set_output(span, output_data)
        root = self._active_traces.get(span.trace_id)
        if root is not None:
            self._backend.update_span(root.handle, span_id, output=output_data)

    def mark_span_error(self, span_id: str, error: str) -> None:
        """Mark a span as errored."""
        span = self._spans.get(span_id)
        if span is None:
            logger.debug("Ignoring error for unknown span %s", span_id)
            return

        mark_error(span, error)
        root = self._active_traces.get(span.trace_id)
        if root is not None:
            self._backend.update_span(root.handle, span_id, error=error)

    # Cross-system correlation
    def inject_correlation_header(
        self,
        headers: dict[str, str],
        trace_id: str | None = None,
        parent_span_id: str | None = None,
    ) -> dict[str, str]:
        """Inject correlation headers for an outgoing HTTP call (only for live traces)."""
        root = self._active_traces.get(trace_id) if trace_id else None
        if root is not None:
            headers[self.TRACE_ID_HEADER] = root.trace_id
            headers[self.STORY_ID_HEADER] = root.story_id
            headers[self.SESSION_ID_HEADER] = root.session_id
            if parent_span_id:
                headers[self.PARENT_SPAN_HEADER] = parent_span_id
        return headers

    def extract_correlation_header(
        self, headers: Mapping[str, str]
    ) -> tuple[str | None, str | None, str | None, str | None]:
        """Extract (trace_id, story_id, session_id, parent_span_id) from incoming headers.

        Plain dicts may carry either the canonical or the lower-cased header names.
        """
        return (
            get_header(headers, self.TRACE_ID_HEADER),
            get_header(headers, self.STORY_ID_HEADER),
            get_header(headers, self.SESSION_ID_HEADER),
            get_header(headers, self.PARENT_SPAN_HEADER),
        )

    def link_external_trace(
        self, trace_id: str, external_trace_id: str, external_system: str
    ) -> None:
        """Link a foreign system's trace to our root trace."""
        root = self._active_traces.get(trace_id)
        if root is None or root.correlation is None:
            logger.debug("Cannot link %s: trace %s is not live", external_trace_id, trace_id)
            return
        add_child_trace(root.correlation, external_trace_id, external_system)

    # Finalization
    async def finalize_story_trace(
        self,
        trace_id: str,
        final_story: str | None = None,
        metrics: NarrativeMetrics | None = None,
    ) -> CompletedTrace:
        """Close a root trace with the final story and quality metrics."""
        root = self._active_traces.get(trace_id)
        if root is None:
            raise NotFoundError(trace_id)

        end_time = utc_now()
        duration = parse_timestamp(end_time) - parse_timestamp(root.created_at)
        duration_ms = round(duration.total_seconds() * 1000)

        # Copies: the completed trace never changes after it is returned
        spans = tuple(
            copy.deepcopy(self._spans[span_id])
            for span_id in root.child_span_ids
            if span_id in self._spans
        )
        beat_count = sum(
            1 for span in spans if span.event_type == NarrativeEventType.BEAT_CREATED
        )

        completed = CompletedTrace(
            trace_id=trace_id,
            story_id=root.story_id,
            session_id=root.session_id,
            spans=spans,
            start_time=root.created_at,
            end_time=end_time,
            duration_ms=duration_ms,
            metrics=metrics,
            story_content=final_story,
            beat_count=beat_count,
            correlation=copy.deepcopy(root.correlation),
        )

        self._backend.update_span(
            root.handle,
            trace_id,
            output={
                "final_story_preview": (
                    _preview(final_story, STORY_PREVIEW_CHARS)
                    if final_story is not None
                    else None
                ),
                "beat_count": beat_count,
                "duration_ms": duration_ms,
                "metrics": metrics.to_dict() if metrics else None,
            },
        )

        del self._active_traces[trace_id]
        for span_id in root.child_span_ids:
            self._spans.pop(span_id, None)

        await self._backend.flush()

        _trace_log(root).info(
            "Finalized trace for story %s with %d beats in %dms",
            root.story_id,
            beat_count,
            duration_ms,
        )
        return completed

    async def flush(self) -> None:
        """Flush pending records to the backend."""
        await self._backend.flush()
