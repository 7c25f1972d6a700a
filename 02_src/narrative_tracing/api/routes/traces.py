"""Trace lifecycle API routes."""

from typing import Any, Literal

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException, Query, Request

from ...app import IApplication
from ...errors import NotFoundError, ValidationError
from ...logging_config import get_logger
from ...models import NarrativeEventType, RootTrace
from ...tracker import validate_lead_universe

logger = get_logger(__name__)


class StartTraceRequest(BaseModel):
    """Request model for starting a story generation trace."""

    story_id: str
    session_id: str | None = None
    trace_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TraceResponse(BaseModel):
    """Response model for a live trace."""

    trace_id: str
    story_id: str
    session_id: str
    created_at: str
    span_count: int = 0
    correlation_path: list[str] = Field(default_factory=list)


class BeatRequest(BaseModel):
    """Request model for registering a beat span."""

    beat_id: str
    content: str
    sequence: int
    narrative_function: str
    emotional_tone: str | None = None
    character_id: str | None = None
    parent_span_id: str | None = None


class EventRequest(BaseModel):
    """Request model for registering an event span."""

    event_type: NarrativeEventType
    input_data: dict[str, Any] | None = None
    output_data: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    parent_span_id: str | None = None
    beat_id: str | None = None
    character_ids: list[str] = Field(default_factory=list)
    emotional_tone: str | None = None
    lead_universe: str | None = None


class SpanResponse(BaseModel):
    """Response model for a registered span."""

    span_id: str
    trace_id: str


class SpanOutputRequest(BaseModel):
    """Request model for span output."""

    output_data: dict[str, Any]


class SpanErrorRequest(BaseModel):
    """Request model for a span error."""

    error: str


class FinalizeRequest(BaseModel):
    """Request model for finalizing a trace."""

    final_story: str | None = None


def _trace_response(root: RootTrace) -> dict:
    return {
        "trace_id": root.trace_id,
        "story_id": root.story_id,
        "session_id": root.session_id,
        "created_at": root.created_at,
        "span_count": len(root.child_span_ids),
        "correlation_path": list(root.correlation.correlation_path) if root.correlation else [],
    }


def create_traces_router(app: IApplication) -> APIRouter:
    """Create traces router."""
    router = APIRouter(prefix="/api", tags=["traces"])

    @router.post("/traces", response_model=TraceResponse, status_code=201)
    async def start_trace(body: StartTraceRequest, request: Request) -> dict:
        """Start a root trace; incoming correlation headers link the caller's trace."""
        orchestrator = app.orchestrator
        incoming_trace_id, _, incoming_session_id, _ = orchestrator.extract_correlation_header(
            request.headers
        )

        try:
            root = orchestrator.create_story_generation_root(
                body.story_id,
                session_id=body.session_id or incoming_session_id,
                trace_id=body.trace_id,
                metadata=body.metadata,
            )
        except ValidationError as e:
            raise HTTPException(status_code=409, detail=str(e))
        if incoming_trace_id and incoming_trace_id != root.trace_id:
            orchestrator.link_external_trace(root.trace_id, incoming_trace_id, "external")

        return _trace_response(root)

    @router.get("/traces", response_model=list[TraceResponse])
    async def list_traces() -> list[dict]:
        """List traces that are started but not finalized."""
        orchestrator = app.orchestrator
        roots = [orchestrator.get_root(trace_id) for trace_id in orchestrator.active_trace_ids]
        return [_trace_response(root) for root in roots if root is not None]

    @router.post("/traces/{trace_id}/beats", response_model=SpanResponse, status_code=201)
    async def create_beat(trace_id: str, body: BeatRequest) -> dict:
        """Register a beat span."""
        try:
            span_id = app.orchestrator.create_beat_span(
                body.beat_id,
                body.content,
                body.sequence,
                body.narrative_function,
                trace_id,
                emotional_tone=body.emotional_tone,
                character_id=body.character_id,
                parent_span_id=body.parent_span_id,
            )
            return {"span_id": span_id, "trace_id": trace_id}
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

    @router.post("/traces/{trace_id}/events", response_model=SpanResponse, status_code=201)
    async def create_event(trace_id: str, body: EventRequest) -> dict:
        """Register a span for any narrative event kind."""
        try:
            lead = (
                validate_lead_universe(body.lead_universe)
                if body.lead_universe is not None
                else None
            )
            span_id = app.orchestrator.create_event_span(
                body.event_type,
                trace_id,
                input_data=body.input_data,
                metadata=body.metadata,
                parent_span_id=body.parent_span_id,
                beat_id=body.beat_id,
                character_ids=body.character_ids,
                emotional_tone=body.emotional_tone,
                lead_universe=lead,
            )
            if body.output_data is not None:
                app.orchestrator.update_span_output(span_id, body.output_data)
            return {"span_id": span_id, "trace_id": trace_id}
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))

    @router.post("/traces/{trace_id}/spans/{span_id}/output")
    async def set_span_output(trace_id: str, span_id: str, body: SpanOutputRequest) -> dict:
        """Attach output to a span (unknown span IDs are ignored)."""
        if app.orchestrator.get_root(trace_id) is None:
            raise HTTPException(status_code=404, detail=str(NotFoundError(trace_id)))

        app.orchestrator.update_span_output(span_id, body.output_data)
        return {"status": "ok"}

    @router.post("/traces/{trace_id}/spans/{span_id}/error")
    async def set_span_error(trace_id: str, span_id: str, body: SpanErrorRequest) -> dict:
        """Mark a span as errored (unknown span IDs are ignored)."""
        if app.orchestrator.get_root(trace_id) is None:
            raise HTTPException(status_code=404, detail=str(NotFoundError(trace_id)))

        try:
            app.orchestrator.mark_span_error(span_id, body.error)
            return {"status": "ok"}
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))

    @router.post("/traces/{trace_id}/finalize")
    async def finalize_trace(
        trace_id: str,
        body: FinalizeRequest | None = None,
        format: Literal["json", "display", "timeline", "markdown", "arcs"] = Query("json"),
    ) -> dict:
        """Finalize a trace and render it in the requested format."""
        try:
            completed = await app.orchestrator.finalize_story_trace(
                trace_id, final_story=body.final_story if body else None
            )
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

        formatter = app.formatter
        if format == "json":
            metrics = formatter.extract_story_metrics(completed)
            return {
                "trace": completed.to_dict(),
                "metrics": metrics.to_dict(),
                "suggestions": formatter.generate_improvement_suggestions(metrics),
            }

        renderers = {
            "display": formatter.format_for_display,
            "timeline": formatter.format_as_timeline,
            "markdown": formatter.export_as_markdown,
            "arcs": formatter.format_as_arc_graph,
        }
        return {
            "trace_id": trace_id,
            "format": format,
            "content": renderers[format](completed),
        }

    return router
