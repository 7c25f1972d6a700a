"""Tests for HTTP correlation integrations."""

import httpx

from narrative_tracing.headers import ALL_CORRELATION_HEADERS, ORCHESTRATOR_HEADERS
from narrative_tracing.integrations import (
    CorrelationContext,
    extract_correlation_from_headers,
    make_correlation_hook,
)


class TestCorrelationContext:
    """Tests for CorrelationContext."""

    def test_is_valid_requires_trace_id(self):
        """Test that a context needs a trace ID."""
        assert CorrelationContext(trace_id="trace_1").is_valid
        assert not CorrelationContext(story_id="story_1").is_valid

    def test_to_headers_skips_unset(self):
        """Test only set values become headers."""
        context = CorrelationContext(trace_id="trace_1", beat_id="beat_1")
        assert context.to_headers() == {
            "X-Narrative-Trace-Id": "trace_1",
            "X-Beat-Id": "beat_1",
        }

    def test_header_round_trip(self):
        """Test headers extract back into an equal context."""
        context = CorrelationContext(
            trace_id="trace_1",
            story_id="story_1",
            session_id="session_1",
            parent_span_id="span_1",
            beat_id="beat_1",
            episode_id="ep_1",
        )
        assert extract_correlation_from_headers(context.to_headers()) == context

    def test_extract_from_case_insensitive_headers(self):
        """Test extraction from real request headers."""
        headers = httpx.Headers({"x-narrative-trace-id": "trace_1", "x-episode-id": "ep_2"})
        context = extract_correlation_from_headers(headers)
        assert context.trace_id == "trace_1"
        assert context.episode_id == "ep_2"
        assert context.story_id is None

    def test_extract_from_lower_cased_dict(self):
        """Test extraction from a plain dict with normalised header names."""
        context = extract_correlation_from_headers(
            {"x-narrative-trace-id": "trace_1", "x-beat-id": "beat_3"}
        )
        assert context.trace_id == "trace_1"
        assert context.beat_id == "beat_3"

    def test_header_sets(self):
        """Test the extended set adds beat and episode scope."""
        assert len(ORCHESTRATOR_HEADERS) == 4
        assert ALL_CORRELATION_HEADERS[4:] == ("X-Beat-Id", "X-Episode-Id")


class TestCorrelationHook:
    """Tests for the httpx request hook."""

    async def test_hook_stamps_outgoing_requests(self, orchestrator):
        """Test every outgoing request carries the trace identity."""
        root = orchestrator.create_story_generation_root(
            "story_1", session_id="session_1", trace_id="trace_1"
        )
        seen = []

        def respond(request: httpx.Request) -> httpx.Response:
            seen.append(extract_correlation_from_headers(request.headers))
            return httpx.Response(200, json={"ok": True})

        hook = make_correlation_hook(
            orchestrator, root.trace_id, parent_span_id="span_1", beat_id="beat_1"
        )
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(respond), event_hooks={"request": [hook]}
        ) as client:
            await client.post("http://flowise.local/api/v1/prediction/flow_1", json={})

        assert seen == [
            CorrelationContext(
                trace_id="trace_1",
                story_id="story_1",
                session_id="session_1",
                parent_span_id="span_1",
                beat_id="beat_1",
            )
        ]

    async def test_hook_skips_finalized_trace(self, orchestrator):
        """Test nothing is stamped once the trace is finalized."""
        orchestrator.create_story_generation_root("story_1", trace_id="trace_1")
        hook = make_correlation_hook(orchestrator, "trace_1", beat_id="beat_1")
        await orchestrator.finalize_story_trace("trace_1")
        seen = []

        def respond(request: httpx.Request) -> httpx.Response:
            seen.append(extract_correlation_from_headers(request.headers))
            return httpx.Response(204)

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(respond), event_hooks={"request": [hook]}
        ) as client:
            await client.get("http://langflow.local/health")

        assert seen == [CorrelationContext()]
