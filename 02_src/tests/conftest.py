"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest.fixture
def settings():
    """Settings isolated from the process environment."""
    from narrative_tracing.config import Settings

    return Settings(db_path=":memory:")


@pytest.fixture
def backend():
    """Create in-memory telemetry backend."""
    from narrative_tracing.backend import InMemoryBackend

    return InMemoryBackend()


@pytest_asyncio.fixture
async def sqlite_backend():
    """Create in-memory SQLite backend for testing."""
    from narrative_tracing.backend import SqliteBackend

    sb = SqliteBackend(":memory:")
    await sb.init()
    yield sb
    await sb.close()


@pytest.fixture
def orchestrator(backend, settings):
    """Create orchestrator on the in-memory backend."""
    from narrative_tracing.orchestrator import NarrativeTraceOrchestrator

    return NarrativeTraceOrchestrator(backend=backend, settings=settings)


@pytest.fixture
def handler(orchestrator, settings):
    """Create handler for a test story."""
    from narrative_tracing.tracker import NarrativeTracingHandler

    return NarrativeTracingHandler(
        orchestrator, story_id="story_1", session_id="session_1", settings=settings
    )


@pytest.fixture
def formatter():
    """Create formatter."""
    from narrative_tracing.formatting import NarrativeTraceFormatter

    return NarrativeTraceFormatter()


@pytest.fixture
def make_span():
    """Factory for standalone spans."""
    from narrative_tracing.models import create_span

    counter = {"n": 0}

    def _make(event_type, **kwargs):
        counter["n"] += 1
        return create_span(
            f"span_{counter['n']}",
            kwargs.pop("trace_id", "trace_1"),
            event_type,
            kwargs.pop("story_id", "story_1"),
            kwargs.pop("session_id", "session_1"),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_trace():
    """Factory for completed traces built from spans."""
    from narrative_tracing.models import CompletedTrace

    def _make(spans=(), **kwargs):
        values = {
            "trace_id": "trace_1",
            "story_id": "story_1",
            "session_id": "session_1",
            "spans": tuple(spans),
            "start_time": "2026-01-01T12:00:00.000Z",
            "end_time": "2026-01-01T12:00:10.000Z",
            "duration_ms": 10000,
        }
        values.update(kwargs)
        return CompletedTrace(**values)

    return _make
