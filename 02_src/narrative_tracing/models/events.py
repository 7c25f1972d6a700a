"""Narrative event kinds and their display glyphs."""

from enum import Enum


class NarrativeEventType(str, Enum):
    """Closed set of narrative events that can be traced."""

    # Beat lifecycle
    BEAT_CREATED = "narrative.beat.created"
    BEAT_ANALYZED = "narrative.beat.analyzed"
    BEAT_ENRICHED = "narrative.beat.enriched"

    # Story lifecycle
    STORY_GENERATION_START = "narrative.story.generation_start"
    STORY_GENERATION_END = "narrative.story.generation_end"
    STORY_QUALITY_METRICS = "narrative.story.quality_metrics"

    # Three-universe analysis
    THREE_UNIVERSE_ANALYSIS = "narrative.three_universe.analysis"
    UNIVERSE_PERSPECTIVE_SHIFT = "narrative.three_universe.perspective_shift"

    # Characters
    CHARACTER_ARC_UPDATED = "narrative.character.arc_updated"
    CHARACTER_RELATIONSHIP_CHANGED = "narrative.character.relationship_changed"

    # Themes
    THEME_INTRODUCED = "narrative.theme.introduced"
    THEME_REINFORCED = "narrative.theme.reinforced"
    THEME_RESOLVED = "narrative.theme.resolved"

    # Routing
    ROUTING_DECISION = "narrative.routing.decision"
    FLOW_EXECUTED = "narrative.routing.flow_executed"

    # Gap analysis
    GAP_IDENTIFIED = "narrative.gap.identified"
    GAP_REMEDIATED = "narrative.gap.remediated"

    # Checkpoints
    NARRATIVE_CHECKPOINT = "narrative.checkpoint"
    EPISODE_BOUNDARY = "narrative.episode.boundary"


THEME_EVENTS = (
    NarrativeEventType.THEME_INTRODUCED,
    NarrativeEventType.THEME_REINFORCED,
    NarrativeEventType.THEME_RESOLVED,
)


class Universe(str, Enum):
    """The three analytical perspectives."""

    ENGINEER = "engineer"
    CEREMONY = "ceremony"
    STORY_ENGINE = "story_engine"


EVENT_GLYPHS: dict[NarrativeEventType, str] = {
    NarrativeEventType.BEAT_CREATED: "📝",
    NarrativeEventType.BEAT_ANALYZED: "🔍",
    NarrativeEventType.BEAT_ENRICHED: "✨",
    NarrativeEventType.STORY_GENERATION_START: "📖",
    NarrativeEventType.STORY_GENERATION_END: "📕",
    NarrativeEventType.STORY_QUALITY_METRICS: "📊",
    NarrativeEventType.THREE_UNIVERSE_ANALYSIS: "🌌",
    NarrativeEventType.UNIVERSE_PERSPECTIVE_SHIFT: "🔄",
    NarrativeEventType.CHARACTER_ARC_UPDATED: "🎭",
    NarrativeEventType.CHARACTER_RELATIONSHIP_CHANGED: "💫",
    NarrativeEventType.THEME_INTRODUCED: "🎨",
    NarrativeEventType.THEME_REINFORCED: "🔗",
    NarrativeEventType.THEME_RESOLVED: "🎯",
    NarrativeEventType.ROUTING_DECISION: "🚀",
    NarrativeEventType.FLOW_EXECUTED: "⚡",
    NarrativeEventType.GAP_IDENTIFIED: "🕳️",
    NarrativeEventType.GAP_REMEDIATED: "🔧",
    NarrativeEventType.NARRATIVE_CHECKPOINT: "💾",
    NarrativeEventType.EPISODE_BOUNDARY: "📍",
}

# Glyphs for analysis span names, keyed by analysis type
ANALYSIS_GLYPHS: dict[str, str] = {
    "emotional": "🔍",
    "thematic": "🎨",
    "character_arc": "🎭",
    "three_universe": "🌌",
}
DEFAULT_ANALYSIS_GLYPH = "🔬"

NAMESPACE = "narrative"


def _check_glyph_table() -> None:
    missing = [kind.value for kind in NarrativeEventType if kind not in EVENT_GLYPHS]
    orphans = [key for key in EVENT_GLYPHS if not isinstance(key, NarrativeEventType)]
    if missing or orphans:
        raise RuntimeError(
            f"EVENT_GLYPHS out of sync: missing={missing} orphans={orphans}"
        )


_check_glyph_table()


def glyph_for(kind: NarrativeEventType) -> str:
    """Glyph for an event kind."""
    return EVENT_GLYPHS[NarrativeEventType(kind)]


def title_words(text: str) -> str:
    """'character_arc' -> 'Character Arc'."""
    return " ".join(word[:1].upper() + word[1:] for word in text.replace("_", " ").split())


def display_name(kind: NarrativeEventType) -> str:
    """Human name for an event kind, e.g. 'Beat Created' for narrative.beat.created."""
    segments = NarrativeEventType(kind).value.split(".")
    if segments[0] == NAMESPACE and len(segments) > 1:
        segments = segments[1:]
    return title_words(" ".join(segments))
