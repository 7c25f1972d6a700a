"""Header-based correlation for HTTP integrations.

Carries trace identity, plus optional beat and episode scope, across service
boundaries: inject on outgoing requests, extract on incoming ones.
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass

import httpx

from ..headers import (
    HEADER_BEAT_ID,
    HEADER_EPISODE_ID,
    HEADER_PARENT_SPAN_ID,
    HEADER_SESSION_ID,
    HEADER_STORY_ID,
    HEADER_TRACE_ID,
    get_header,
)
from ..orchestrator import NarrativeTraceOrchestrator


@dataclass
class CorrelationContext:
    """Correlation values carried by a request."""

    trace_id: str | None = None
    story_id: str | None = None
    session_id: str | None = None
    parent_span_id: str | None = None
    beat_id: str | None = None
    episode_id: str | None = None

    @property
    def is_valid(self) -> bool:
        """A context is usable once it names a trace."""
        return self.trace_id is not None

    def to_headers(self) -> dict[str, str]:
        """Header dict with only the values that are set."""
        pairs = {
            HEADER_TRACE_ID: self.trace_id,
            HEADER_STORY_ID: self.story_id,
            HEADER_SESSION_ID: self.session_id,
            HEADER_PARENT_SPAN_ID: self.parent_span_id,
            HEADER_BEAT_ID: self.beat_id,
            HEADER_EPISODE_ID: self.episode_id,
        }
        return {name: value for name, value in pairs.items() if value is not None}


def extract_correlation_from_headers(headers: Mapping[str, str]) -> CorrelationContext:
    """Build a CorrelationContext from request headers (canonical or lower-cased names)."""
    return CorrelationContext(
        trace_id=get_header(headers, HEADER_TRACE_ID),
        story_id=get_header(headers, HEADER_STORY_ID),
        session_id=get_header(headers, HEADER_SESSION_ID),
        parent_span_id=get_header(headers, HEADER_PARENT_SPAN_ID),
        beat_id=get_header(headers, HEADER_BEAT_ID),
        episode_id=get_header(headers, HEADER_EPISODE_ID),
    )


def make_correlation_hook(
    orchestrator: NarrativeTraceOrchestrator,
    trace_id: str,
    parent_span_id: str | None = None,
    beat_id: str | None = None,
    episode_id: str | None = None,
) -> Callable[[httpx.Request], Awaitable[None]]:
    """httpx request hook that stamps correlation headers on every outgoing call.

    Usage::

        hook = make_correlation_hook(orchestrator, root.trace_id)
        async with httpx.AsyncClient(event_hooks={"request": [hook]}) as client:
            await client.post(flow_url, json=payload)
    """

    async def inject(request: httpx.Request) -> None:
        headers = orchestrator.inject_correlation_header({}, trace_id, parent_span_id)
        if not headers:
            return
        if beat_id:
            headers[HEADER_BEAT_ID] = beat_id
        if episode_id:
            headers[HEADER_EPISODE_ID] = episode_id
        request.headers.update(headers)

    return inject
