"""Narrative tracing handler: semantic event logging with a metrics accumulator."""

from collections.abc import Mapping
from typing import Any, Protocol

from ..config import Settings, load_settings
from ..errors import NotFoundError, ValidationError
from ..headers import HEADER_TRACE_ID
from ..logging_config import get_logger
from ..models import (
    CompletedTrace,
    NarrativeEventType,
    NarrativeMetrics,
    TraceCorrelation,
    Universe,
    apply_three_universe,
    create_metrics,
    increment,
    with_character_arc,
    with_timing,
)
from ..models.events import THEME_EVENTS
from ..orchestrator import NarrativeTraceOrchestrator

logger = get_logger(__name__)

CONTENT_PREVIEW_CHARS = 200


def validate_coherence_score(score: float, field: str = "coherence_score") -> float:
    """Reject scores outside [0, 1]."""
    if not 0.0 <= score <= 1.0:
        raise ValidationError(field, "between 0.0 and 1.0", score)
    return score


def validate_lead_universe(universe: str | Universe) -> str:
    """Reject universes outside engineer/ceremony/story_engine."""
    try:
        return Universe(universe).value
    except ValueError:
        allowed = ", ".join(u.value for u in Universe)
        raise ValidationError("lead_universe", f"one of {allowed}", universe) from None


class ITracingHandler(Protocol):
    """Logs narrative events against a root trace and accumulates metrics."""

    def log_event(
        self,
        event_type: NarrativeEventType,
        input_data: dict[str, Any] | None = None,
        output_data: dict[str, Any] | None = None,
        *,
        metadata: dict[str, Any] | None = None,
        parent_span_id: str | None = None,
        beat_id: str | None = None,
        character_ids: list[str] | None = None,
        emotional_tone: str | None = None,
        lead_universe: str | None = None,
    ) -> str:
        """Register a span for the event and return its span ID."""
        ...

    @property
    def metrics(self) -> NarrativeMetrics:
        """Current metrics snapshot."""
        ...

    async def finish(self, final_story: str | None = None) -> CompletedTrace:
        """Finalize the root trace with the accumulated metrics."""
        ...


class NarrativeTracingHandler:
    """Narrative-aware event logging on top of the orchestrator.

    Every log_* call registers a child span on the handler's root trace (created
    lazily) and folds the event into the rolling NarrativeMetrics snapshot.
    """

    def __init__(
        self,
        orchestrator: NarrativeTraceOrchestrator,
        story_id: str | None = None,
        session_id: str | None = None,
        trace_id: str | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or load_settings()
        self._orchestrator = orchestrator
        self.story_id = story_id or settings.story_id or "unknown"
        self.session_id = session_id or settings.session_id
        self.root_trace_id = trace_id or settings.trace_id
        self._metrics = create_metrics()

    # Root trace management
    def _ensure_root_trace(self) -> str:
        if self.root_trace_id and self._orchestrator.get_root(self.root_trace_id):
            return self.root_trace_id

        root = self._orchestrator.create_story_generation_root(
            self.story_id,
            session_id=self.session_id,
            trace_id=self.root_trace_id,
        )
        self.root_trace_id = root.trace_id
        self.session_id = root.session_id
        return root.trace_id

    @property
    def correlation(self) -> TraceCorrelation | None:
        """Correlation of the live root trace, if any."""
        root = self._orchestrator.get_root(self.root_trace_id) if self.root_trace_id else None
        return root.correlation if root else None

    def get_correlation_header(self) -> dict[str, str]:
        """Headers that carry this trace across an HTTP call."""
        return self._orchestrator.inject_correlation_header({}, self._ensure_root_trace())

    def receive_correlation_header(self, headers: Mapping[str, str]) -> None:
        """Link the trace ID of an incoming request as an external child trace."""
        incoming_trace_id = headers.get(HEADER_TRACE_ID)
        if incoming_trace_id:
            trace_id = self._ensure_root_trace()
            self._orchestrator.link_external_trace(trace_id, incoming_trace_id, "external")
            logger.debug(
                "Linked incoming trace %s",
                incoming_trace_id,
                extra={"context": {"trace_id": trace_id}},
            )

    # Generic event logging
    def log_event(
        self,
        event_type: NarrativeEventType,
        input_data: dict[str, Any] | None = None,
        output_data: dict[str, Any] | None = None,
        *,
        metadata: dict[str, Any] | None = None,
        parent_span_id: str | None = None,
        beat_id: str | None = None,
        character_ids: list[str] | None = None,
        emotional_tone: str | None = None,
        lead_universe: str | None = None,
    ) -> str:
        """Log a narrative event as a child span of the root trace."""
        span_id = self._orchestrator.create_event_span(
            event_type,
            self._ensure_root_trace(),
            input_data=input_data,
            metadata=metadata,
            parent_span_id=parent_span_id,
            beat_id=beat_id,
            character_ids=character_ids,
            emotional_tone=emotional_tone,
            lead_universe=lead_universe,
        )
        if output_data is not None:
            self._orchestrator.update_span_output(span_id, output_data)
        return span_id

    # Beat events
    def log_beat_creation(
        self,
        beat_id: str,
        content: str,
        sequence: int,
        narrative_function: str,
        *,
        source: str = "generator",
        character_id: str | None = None,
        emotional_tone: str | None = None,
        parent_span_id: str | None = None,
    ) -> str:
        """Log creation of a new story beat."""
        self._metrics = increment(self._metrics, "beats_generated")

        preview = content
        if len(content) > CONTENT_PREVIEW_CHARS:
            preview = content[:CONTENT_PREVIEW_CHARS] + "..."

        return self.log_event(
            NarrativeEventType.BEAT_CREATED,
            input_data={
                "sequence": sequence,
                "narrative_function": narrative_function,
                "source": source,
            },
            output_data={"beat_id": beat_id, "content_preview": preview},
            beat_id=beat_id,
            character_ids=[character_id] if character_id else None,
            emotional_tone=emotional_tone,
            parent_span_id=parent_span_id,
        )

    def log_beat_analysis(
        self,
        beat_id: str,
        analysis_type: str,
        classification: str,
        confidence: float,
        *,
        detected_emotions: list[str] | None = None,
        parent_span_id: str | None = None,
    ) -> str:
        """Log emotional/thematic analysis of a beat."""
        return self.log_event(
            NarrativeEventType.BEAT_ANALYZED,
            input_data={"beat_id": beat_id, "analysis_type": analysis_type},
            output_data={
                "classification": classification,
                "confidence": confidence,
                "detected_emotions": list(detected_emotions or []),
            },
            beat_id=beat_id,
            emotional_tone=classification,
            parent_span_id=parent_span_id,
        )

    def log_beat_enrichment(
        self,
        beat_id: str,
        enrichment_type: str,
        flows_used: list[str],
        quality_before: float,
        quality_after: float,
        parent_span_id: str | None = None,
    ) -> str:
        """Log enrichment of a beat by agent flows."""
        self._metrics = increment(self._metrics, "enrichments_applied")

        return self.log_event(
            NarrativeEventType.BEAT_ENRICHED,
            input_data={
                "beat_id": beat_id,
                "enrichment_type": enrichment_type,
                "flows_used": list(flows_used),
                "quality_before": quality_before,
            },
            output_data={
                "quality_after": quality_after,
                "improvement": quality_after - quality_before,
            },
            beat_id=beat_id,
            parent_span_id=parent_span_id,
        )

    # Three-universe events
    def log_three_universe_analysis(
        self,
        event_id: str,
        engineer_intent: str,
        engineer_confidence: float,
        ceremony_intent: str,
        ceremony_confidence: float,
        story_engine_intent: str,
        story_engine_confidence: float,
        lead_universe: str | Universe,
        coherence_score: float,
        parent_span_id: str | None = None,
    ) -> str:
        """Log a three-universe analysis and update the alignment averages."""
        validate_coherence_score(coherence_score)
        lead = validate_lead_universe(lead_universe)

        self._metrics = apply_three_universe(
            self._metrics,
            engineer_confidence,
            ceremony_confidence,
            story_engine_confidence,
            coherence_score,
        )

        return self.log_event(
            NarrativeEventType.THREE_UNIVERSE_ANALYSIS,
            input_data={"event_id": event_id},
            output_data={
                "engineer": {"intent": engineer_intent, "confidence": engineer_confidence},
                "ceremony": {"intent": ceremony_intent, "confidence": ceremony_confidence},
                "story_engine": {
                    "intent": story_engine_intent,
                    "confidence": story_engine_confidence,
                },
                "lead_universe": lead,
                "coherence_score": coherence_score,
            },
            lead_universe=lead,
            metadata={"coherence_score": coherence_score},
            parent_span_id=parent_span_id,
        )

    # Character and theme events
    def log_character_arc_update(
        self,
        character_id: str,
        character_name: str,
        arc_position_before: float,
        arc_position_after: float,
        growth_description: str,
        *,
        beat_id: str | None = None,
        parent_span_id: str | None = None,
    ) -> str:
        """Log character arc progression."""
        self._metrics = with_character_arc(self._metrics, character_id, arc_position_after)

        return self.log_event(
            NarrativeEventType.CHARACTER_ARC_UPDATED,
            input_data={
                "character_id": character_id,
                "character_name": character_name,
                "arc_position_before": arc_position_before,
            },
            output_data={
                "arc_position_after": arc_position_after,
                "growth": arc_position_after - arc_position_before,
                "growth_description": growth_description,
            },
            beat_id=beat_id,
            character_ids=[character_id],
            parent_span_id=parent_span_id,
        )

    def log_theme_event(
        self,
        event_type: NarrativeEventType,
        theme: str,
        *,
        beat_id: str | None = None,
        strength: float | None = None,
        parent_span_id: str | None = None,
    ) -> str:
        """Log a theme being introduced, reinforced or resolved."""
        if event_type not in THEME_EVENTS:
            raise ValidationError("event_type", "a theme event", event_type)

        output: dict[str, Any] = {"theme": theme}
        if strength is not None:
            output["strength"] = strength

        return self.log_event(
            event_type,
            input_data={"theme": theme},
            output_data=output,
            beat_id=beat_id,
            parent_span_id=parent_span_id,
        )

    # Routing events
    def log_routing_decision(
        self,
        decision_id: str,
        backend: str,
        flow: str,
        score: float,
        *,
        method: str = "narrative",
        lead_universe: str | Universe | None = None,
        narrative_act: int | None = None,
        narrative_phase: str | None = None,
        success: bool = True,
        latency_ms: float = 0,
        parent_span_id: str | None = None,
    ) -> str:
        """Log a routing decision to a backend/flow."""
        lead = validate_lead_universe(lead_universe) if lead_universe is not None else None
        self._metrics = increment(self._metrics, "routing_decisions")

        return self.log_event(
            NarrativeEventType.ROUTING_DECISION,
            input_data={
                "decision_id": decision_id,
                "method": method,
                "lead_universe": lead,
                "narrative_position": {"act": narrative_act, "phase": narrative_phase},
            },
            output_data={
                "backend": backend,
                "flow": flow,
                "score": score,
                "success": success,
                "latency_ms": latency_ms,
            },
            lead_universe=lead,
            metadata={"backend": backend, "flow": flow},
            parent_span_id=parent_span_id,
        )

    # Checkpoint events
    def log_checkpoint(
        self,
        checkpoint_id: str,
        beat_count: int,
        narrative_act: int,
        narrative_phase: str,
        overall_coherence: float,
        parent_span_id: str | None = None,
    ) -> str:
        """Log a narrative state checkpoint."""
        return self.log_event(
            NarrativeEventType.NARRATIVE_CHECKPOINT,
            input_data={"story_id": self.story_id},
            output_data={
                "checkpoint_id": checkpoint_id,
                "beat_count": beat_count,
                "narrative_position": {"act": narrative_act, "phase": narrative_phase},
                "overall_coherence": overall_coherence,
            },
            metadata={"checkpoint_id": checkpoint_id},
            parent_span_id=parent_span_id,
        )

    def log_episode_boundary(
        self,
        episode_id: str,
        beat_count: int,
        reason: str = "beat_threshold",
        parent_span_id: str | None = None,
    ) -> str:
        """Log an episode boundary (new episode starting)."""
        return self.log_event(
            NarrativeEventType.EPISODE_BOUNDARY,
            input_data={"reason": reason, "beat_count": beat_count},
            output_data={"episode_id": episode_id},
            metadata={"episode_id": episode_id},
            parent_span_id=parent_span_id,
        )

    # Gap events
    def log_gap_identified(
        self,
        gap_type: str,
        description: str,
        severity: float,
        *,
        beat_id: str | None = None,
        suggested_remediation: str | None = None,
        parent_span_id: str | None = None,
    ) -> str:
        """Log identification of a narrative gap."""
        return self.log_event(
            NarrativeEventType.GAP_IDENTIFIED,
            input_data={"beat_id": beat_id},
            output_data={
                "gap_type": gap_type,
                "description": description,
                "severity": severity,
                "suggested_remediation": suggested_remediation,
            },
            beat_id=beat_id,
            parent_span_id=parent_span_id,
        )

    def log_gap_remediated(
        self,
        gap_type: str,
        remediation_method: str,
        flows_used: list[str],
        *,
        success: bool = True,
        beat_id: str | None = None,
        parent_span_id: str | None = None,
    ) -> str:
        """Log remediation of a narrative gap; only successful remediations are counted."""
        if success:
            self._metrics = increment(self._metrics, "gaps_remediated")

        span_id = self.log_event(
            NarrativeEventType.GAP_REMEDIATED,
            input_data={"gap_type": gap_type, "remediation_method": remediation_method},
            output_data={"flows_used": list(flows_used), "success": success},
            beat_id=beat_id,
            parent_span_id=parent_span_id,
        )
        if not success:
            self._orchestrator.mark_span_error(
                span_id, f"Remediation of {gap_type} gap via {remediation_method} failed"
            )
        return span_id

    # Story lifecycle
    def start_story_generation(self, story_id: str | None = None) -> str:
        """Start tracing story generation; returns the root trace ID."""
        if story_id:
            self.story_id = story_id

        trace_id = self._ensure_root_trace()
        self.log_event(
            NarrativeEventType.STORY_GENERATION_START,
            input_data={"story_id": self.story_id},
        )
        return trace_id

    def end_story_generation(self, total_ms: float) -> None:
        """Record timing and log the end-of-generation and quality-metrics events."""
        self._metrics = with_timing(self._metrics, total_ms)

        self.log_event(
            NarrativeEventType.STORY_GENERATION_END,
            input_data={"story_id": self.story_id},
            output_data={
                "duration_ms": total_ms,
                "beats_generated": self._metrics.beats_generated,
            },
        )
        self.log_event(
            NarrativeEventType.STORY_QUALITY_METRICS,
            output_data=self._metrics.to_dict(),
        )

    async def finish(self, final_story: str | None = None) -> CompletedTrace:
        """Finalize the root trace with the accumulated metrics."""
        if not self.root_trace_id:
            raise NotFoundError("<no root trace>")

        completed = await self._orchestrator.finalize_story_trace(
            self.root_trace_id, final_story=final_story, metrics=self._metrics
        )
        self.root_trace_id = None
        return completed

    # Metrics access
    @property
    def metrics(self) -> NarrativeMetrics:
        """Current metrics snapshot."""
        return self._metrics

    def reset_metrics(self) -> None:
        """Reset the metrics accumulator."""
        self._metrics = create_metrics()

    async def flush(self) -> None:
        """Flush pending records to the backend."""
        await self._orchestrator.flush()
