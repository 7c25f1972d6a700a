"""Tests for NarrativeTraceOrchestrator."""

import pytest

from narrative_tracing.backend import InMemoryBackend
from narrative_tracing.errors import BackendUnavailableError, NotFoundError, ValidationError
from narrative_tracing.models import (
    NarrativeEventType,
    add_child_trace,
    create_metrics,
    mark_error,
    set_output,
)
from narrative_tracing.orchestrator import NarrativeTraceOrchestrator


class TestOrchestratorInit:
    """Tests for orchestrator construction."""

    def test_rejects_backend_missing_capabilities(self, settings):
        """Test that an incomplete backend fails at construction."""

        class NoFlush:
            def open_trace(self, *args, **kwargs):
                return "handle"

            def open_child_span(self, *args, **kwargs):
                pass

            def update_span(self, *args, **kwargs):
                pass

        with pytest.raises(BackendUnavailableError, match="flush"):
            NarrativeTraceOrchestrator(backend=NoFlush(), settings=settings)

    def test_accepts_in_memory_backend(self, settings):
        """Test construction with a complete backend."""
        backend = InMemoryBackend()
        orchestrator = NarrativeTraceOrchestrator(backend=backend, settings=settings)
        assert orchestrator.backend is backend
        assert orchestrator.active_trace_ids == []


class TestRootTrace:
    """Tests for root trace creation."""

    def test_generates_ids(self, orchestrator, backend):
        """Test that trace and session IDs are generated when absent."""
        root = orchestrator.create_story_generation_root("story_1")

        assert root.trace_id
        assert root.session_id
        assert root.story_id == "story_1"
        assert orchestrator.active_trace_ids == [root.trace_id]
        assert backend.traces[root.trace_id]["name"] == "📖 Story Generation: story_1"

    def test_uses_given_ids(self, orchestrator, backend):
        """Test explicit IDs and metadata."""
        root = orchestrator.create_story_generation_root(
            "story_1", session_id="session_1", trace_id="trace_1", metadata={"genre": "noir"}
        )
        assert root.trace_id == "trace_1"
        assert root.session_id == "session_1"

        record = backend.traces["trace_1"]
        assert record["session_id"] == "session_1"
        assert record["metadata"]["story_id"] == "story_1"
        assert record["metadata"]["genre"] == "noir"

    def test_session_from_settings(self, backend, settings):
        """Test the default session ID comes from settings."""
        settings.session_id = "env_session"
        orchestrator = NarrativeTraceOrchestrator(backend=backend, settings=settings)
        root = orchestrator.create_story_generation_root("story_1")
        assert root.session_id == "env_session"

    def test_seeds_correlation(self, orchestrator):
        """Test the correlation is seeded with the origin system."""
        root = orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        assert root.correlation.root_trace_id == "trace_1"
        assert root.correlation.correlation_path == ["langchain"]

    def test_rejects_live_trace_id(self, orchestrator, backend):
        """Test a live trace ID cannot be reused and its spans stay owned."""
        root = orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        span_id = orchestrator.create_analysis_span("emotional", root)

        with pytest.raises(ValidationError, match="trace_id"):
            orchestrator.create_story_generation_root("story_2", trace_id="trace_1")

        assert orchestrator.get_root("trace_1") is root
        assert root.child_span_ids == [span_id]
        assert backend.traces["trace_1"]["metadata"]["story_id"] == "story_1"

    async def test_finalized_trace_id_reusable(self, orchestrator):
        """Test a trace ID can start again once finalized, with no spans left over."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        first = orchestrator.create_analysis_span("emotional", "trace_1")
        await orchestrator.finalize_story_trace("trace_1")

        root = orchestrator.create_story_generation_root("story_2", trace_id="trace_1")

        assert root.child_span_ids == []
        assert orchestrator.get_span(first) is None


class TestChildSpans:
    """Tests for child span registration."""

    def test_beat_span(self, orchestrator, backend):
        """Test beat span naming, ownership and narrative fields."""
        root = orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        span_id = orchestrator.create_beat_span(
            "beat_1",
            "The door creaked open.",
            1,
            "inciting_incident",
            root,
            emotional_tone="dread",
            character_id="char_1",
        )

        assert root.child_span_ids == [span_id]
        span = orchestrator.get_span(span_id)
        assert span.event_type == NarrativeEventType.BEAT_CREATED
        assert span.beat_id == "beat_1"
        assert span.character_ids == ["char_1"]
        assert span.emotional_tone == "dread"

        record = backend.traces["trace_1"]["spans"][span_id]
        assert record["name"] == "📝 Beat 1: beat_1 (dread)"
        assert record["input"]["narrative_function"] == "inciting_incident"
        assert record["output"] == {"content_preview": "The door creaked open."}
        assert record["parent_span_id"] is None

    def test_beat_span_preview_truncated(self, orchestrator, backend):
        """Test long beat content is previewed."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        span_id = orchestrator.create_beat_span("beat_1", "x" * 300, 1, "setup", "trace_1")
        preview = backend.traces["trace_1"]["spans"][span_id]["output"]["content_preview"]
        assert preview == "x" * 200 + "..."

    def test_analysis_span(self, orchestrator, backend):
        """Test analysis span naming."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        span_id = orchestrator.create_analysis_span(
            "character_arc", "trace_1", beat_id="beat_1"
        )
        record = backend.traces["trace_1"]["spans"][span_id]
        assert record["name"] == "🎭 Character Arc Analysis (beat_1)"
        assert orchestrator.get_span(span_id).event_type == NarrativeEventType.BEAT_ANALYZED

    def test_analysis_span_unknown_type_glyph(self, orchestrator, backend):
        """Test the fallback glyph for unknown analysis types."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        span_id = orchestrator.create_analysis_span("pacing", "trace_1")
        assert backend.traces["trace_1"]["spans"][span_id]["name"] == "🔬 Pacing Analysis"

    def test_agent_flow_span_extends_path(self, orchestrator, backend):
        """Test that a flow span adds its backend to the correlation path."""
        root = orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        span_id = orchestrator.create_agent_flow_span(
            "flow_42", "flowise", "trace_1", intent="enrich_dialogue"
        )
        orchestrator.create_agent_flow_span("flow_43", "flowise", "trace_1")

        record = backend.traces["trace_1"]["spans"][span_id]
        assert record["name"] == "🚀 Flowise Flow: flow_42 (intent: enrich_dialogue)"
        assert orchestrator.get_span(span_id).event_type == NarrativeEventType.FLOW_EXECUTED
        assert root.correlation.correlation_path == ["langchain", "flowise"]

    def test_enrichment_span(self, orchestrator, backend):
        """Test enrichment span fields."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        flows = ["flow_a"]
        span_id = orchestrator.create_enrichment_span("beat_1", "dialogue", "trace_1", flows)
        flows.append("flow_b")

        record = backend.traces["trace_1"]["spans"][span_id]
        assert record["name"] == "✨ Enrichment: dialogue (beat_1)"
        assert record["input"]["flows_used"] == ["flow_a"]
        assert orchestrator.get_span(span_id).beat_id == "beat_1"

    def test_event_span_with_parent(self, orchestrator, backend):
        """Test explicit parent linkage."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        parent_id = orchestrator.create_beat_span("beat_1", "text", 1, "setup", "trace_1")
        span_id = orchestrator.create_event_span(
            NarrativeEventType.THEME_INTRODUCED,
            "trace_1",
            beat_id="beat_1",
            parent_span_id=parent_id,
        )
        record = backend.traces["trace_1"]["spans"][span_id]
        assert record["name"] == "🎨 Theme Introduced (beat_1)"
        assert record["parent_span_id"] == parent_id
        assert record["metadata"]["event_type"] == "narrative.theme.introduced"

    def test_event_span_lead_universe_in_name(self, orchestrator, backend):
        """Test lead universe context in the span name."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        span_id = orchestrator.create_event_span(
            NarrativeEventType.ROUTING_DECISION, "trace_1", lead_universe="ceremony"
        )
        assert backend.traces["trace_1"]["spans"][span_id]["name"] == "🚀 Routing Decision (ceremony)"

    def test_unknown_trace_raises(self, orchestrator):
        """Test that every span variant requires a live trace."""
        with pytest.raises(NotFoundError, match="missing"):
            orchestrator.create_beat_span("beat_1", "text", 1, "setup", "missing")
        with pytest.raises(NotFoundError):
            orchestrator.create_analysis_span("emotional", "missing")
        with pytest.raises(NotFoundError):
            orchestrator.create_agent_flow_span("flow_1", "flowise", "missing")
        with pytest.raises(NotFoundError):
            orchestrator.create_enrichment_span("beat_1", "dialogue", "missing", [])
        with pytest.raises(NotFoundError):
            orchestrator.create_event_span(NarrativeEventType.NARRATIVE_CHECKPOINT, "missing")


class TestSpanMutation:
    """Tests for span output and error updates."""

    def test_update_output(self, orchestrator, backend):
        """Test output reaches the span and the backend."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        span_id = orchestrator.create_analysis_span("emotional", "trace_1")

        orchestrator.update_span_output(span_id, {"classification": "joy"})

        assert orchestrator.get_span(span_id).output_data == {"classification": "joy"}
        assert orchestrator.get_span(span_id).end_time is not None
        assert backend.traces["trace_1"]["spans"][span_id]["output"] == {"classification": "joy"}

    def test_mark_error(self, orchestrator, backend):
        """Test errors reach the span and the backend."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        span_id = orchestrator.create_agent_flow_span("flow_1", "langflow", "trace_1")

        orchestrator.mark_span_error(span_id, "timeout")

        span = orchestrator.get_span(span_id)
        assert span.success is False
        assert span.error == "timeout"
        assert backend.traces["trace_1"]["spans"][span_id]["error"] == "timeout"

    def test_unknown_span_is_noop(self, orchestrator):
        """Test that mutating an unknown span is silently ignored."""
        orchestrator.update_span_output("missing", {"x": 1})
        orchestrator.mark_span_error("missing", "boom")

    async def test_mutation_after_finalize_is_noop(self, orchestrator):
        """Test that a span evicted by finalization can no longer be mutated."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        span_id = orchestrator.create_analysis_span("emotional", "trace_1")
        completed = await orchestrator.finalize_story_trace("trace_1")

        orchestrator.update_span_output(span_id, {"late": True})
        orchestrator.mark_span_error(span_id, "late")

        assert completed.spans[0].output_data is None
        assert completed.spans[0].success is True


class TestCorrelationHeaders:
    """Tests for cross-system correlation."""

    def test_header_round_trip(self, orchestrator):
        """Test injected headers extract back to the same identity."""
        root = orchestrator.create_story_generation_root(
            "story_1", session_id="session_1", trace_id="trace_1"
        )
        headers = orchestrator.inject_correlation_header({}, root.trace_id, "span_9")

        assert headers == {
            "X-Narrative-Trace-Id": "trace_1",
            "X-Story-Id": "story_1",
            "X-Session-Id": "session_1",
            "X-Parent-Span-Id": "span_9",
        }
        assert orchestrator.extract_correlation_header(headers) == (
            "trace_1",
            "story_1",
            "session_1",
            "span_9",
        )

    def test_inject_unknown_trace_leaves_headers(self, orchestrator):
        """Test that nothing is injected for a trace that is not live."""
        headers = {"Accept": "application/json"}
        assert orchestrator.inject_correlation_header(headers, "missing") == {
            "Accept": "application/json"
        }

    def test_extract_missing_headers(self, orchestrator):
        """Test extraction from a request without correlation."""
        assert orchestrator.extract_correlation_header({}) == (None, None, None, None)

    def test_extract_lower_cased_dict(self, orchestrator):
        """Test extraction from a plain dict with lower-cased header names."""
        headers = {"x-narrative-trace-id": "trace_1", "x-session-id": "session_1"}
        assert orchestrator.extract_correlation_header(headers) == (
            "trace_1",
            None,
            "session_1",
            None,
        )

    def test_extract_prefers_canonical_name(self, orchestrator):
        """Test the canonical header name wins over a lower-cased duplicate."""
        headers = {"X-Story-Id": "story_1", "x-story-id": "story_2"}
        assert orchestrator.extract_correlation_header(headers)[1] == "story_1"

    def test_link_external_trace(self, orchestrator):
        """Test linking foreign traces into the correlation."""
        root = orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        orchestrator.link_external_trace("trace_1", "fw_trace", "flowise")
        orchestrator.link_external_trace("trace_1", "fw_trace_2", "flowise")

        assert root.correlation.child_trace_ids == {
            "fw_trace": "flowise",
            "fw_trace_2": "flowise",
        }
        assert root.correlation.correlation_path == ["langchain", "flowise"]

    def test_link_unknown_trace_is_noop(self, orchestrator):
        """Test linking against a trace that is not live."""
        orchestrator.link_external_trace("missing", "fw_trace", "flowise")


class TestFinalize:
    """Tests for trace finalization."""

    async def test_finalize_builds_completed_trace(self, orchestrator, backend):
        """Test spans in registration order, beat count, and eviction."""
        root = orchestrator.create_story_generation_root(
            "story_1", session_id="session_1", trace_id="trace_1"
        )
        beat_1 = orchestrator.create_beat_span("beat_1", "a", 1, "setup", root)
        analysis = orchestrator.create_analysis_span("emotional", root, beat_id="beat_1")
        beat_2 = orchestrator.create_beat_span("beat_2", "b", 2, "conflict", root)
        metrics = create_metrics()

        completed = await orchestrator.finalize_story_trace(
            "trace_1", final_story="The end.", metrics=metrics
        )

        assert [s.span_id for s in completed.spans] == [beat_1, analysis, beat_2]
        assert completed.beat_count == 2
        assert completed.metrics is metrics
        assert completed.story_content == "The end."
        assert completed.session_id == "session_1"
        assert completed.duration_ms >= 0
        assert completed.correlation.correlation_path == ["langchain"]

        assert orchestrator.active_trace_ids == []
        assert orchestrator.get_span(beat_1) is None
        assert backend.flush_count == 1

    async def test_completed_trace_detached_from_live_objects(self, orchestrator):
        """Test changes to held live objects do not reach the completed trace."""
        root = orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        span_id = orchestrator.create_analysis_span("emotional", root)
        span = orchestrator.get_span(span_id)

        completed = await orchestrator.finalize_story_trace("trace_1")
        add_child_trace(root.correlation, "foreign", "late_system")
        set_output(span, {"late": True})
        mark_error(span, "late")

        assert completed.correlation.correlation_path == ["langchain"]
        assert completed.correlation.child_trace_ids == {}
        assert completed.spans[0].output_data is None
        assert completed.spans[0].success is True

    async def test_finalize_updates_backend_trace(self, orchestrator, backend):
        """Test the backend receives a truncated story preview."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        await orchestrator.finalize_story_trace("trace_1", final_story="s" * 600)

        output = backend.traces["trace_1"]["output"]
        assert output["final_story_preview"] == "s" * 500 + "..."
        assert output["beat_count"] == 0
        assert output["metrics"] is None

    async def test_finalize_short_story_not_truncated(self, orchestrator, backend):
        """Test that short stories are previewed whole."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        await orchestrator.finalize_story_trace("trace_1", final_story="Short.")
        assert backend.traces["trace_1"]["output"]["final_story_preview"] == "Short."

    async def test_finalize_twice_raises(self, orchestrator):
        """Test that a finalized trace ID is unknown afterwards."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        await orchestrator.finalize_story_trace("trace_1")

        with pytest.raises(NotFoundError, match="trace_1"):
            await orchestrator.finalize_story_trace("trace_1")

    async def test_finalize_unknown_raises(self, orchestrator):
        """Test finalizing a trace that never existed."""
        with pytest.raises(NotFoundError):
            await orchestrator.finalize_story_trace("missing")

    async def test_span_on_finalized_trace_raises(self, orchestrator):
        """Test that a finalized trace accepts no new spans."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        await orchestrator.finalize_story_trace("trace_1")

        with pytest.raises(NotFoundError):
            orchestrator.create_beat_span("beat_1", "text", 1, "setup", "trace_1")

    async def test_finalize_leaves_other_traces_live(self, orchestrator):
        """Test that finalization only evicts its own trace."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        orchestrator.create_story_generation_root("story_2", trace_id="trace_2")
        other_span = orchestrator.create_analysis_span("emotional", "trace_2")

        await orchestrator.finalize_story_trace("trace_1")

        assert orchestrator.active_trace_ids == ["trace_2"]
        assert orchestrator.get_span(other_span) is not None

    async def test_flush_errors_propagate(self, settings):
        """Test that backend flush failures reach the caller."""

        class FailingBackend(InMemoryBackend):
            async def flush(self):
                raise ConnectionError("backend down")

        orchestrator = NarrativeTraceOrchestrator(backend=FailingBackend(), settings=settings)
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")

        with pytest.raises(ConnectionError):
            await orchestrator.finalize_story_trace("trace_1")
