"""HTTP header names for cross-system trace correlation."""

from collections.abc import Mapping

HEADER_TRACE_ID = "X-Narrative-Trace-Id"
HEADER_STORY_ID = "X-Story-Id"
HEADER_SESSION_ID = "X-Session-Id"
HEADER_PARENT_SPAN_ID = "X-Parent-Span-Id"

# Beat/episode scope, used by integrations
HEADER_BEAT_ID = "X-Beat-Id"
HEADER_EPISODE_ID = "X-Episode-Id"

ORCHESTRATOR_HEADERS = (
    HEADER_TRACE_ID,
    HEADER_STORY_ID,
    HEADER_SESSION_ID,
    HEADER_PARENT_SPAN_ID,
)

ALL_CORRELATION_HEADERS = ORCHESTRATOR_HEADERS + (HEADER_BEAT_ID, HEADER_EPISODE_ID)


def get_header(headers: Mapping[str, str], name: str) -> str | None:
    """Header value by canonical name, falling back to the lower-cased name."""
    value = headers.get(name)
    return value if value is not None else headers.get(name.lower())
