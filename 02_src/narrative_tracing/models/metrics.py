"""Narrative quality metrics.

Metrics are immutable snapshots. Every update is a pure function that returns a
new snapshot, so a CompletedTrace can safely hold the snapshot it was finalized
with while an accumulator keeps moving.
"""

from dataclasses import dataclass, field, replace
from typing import Any

NEUTRAL_SCORE = 0.5

# Smoothing factor for the universe alignment moving averages
ALIGNMENT_ALPHA = 0.1

QUALITY_WEIGHTS: dict[str, float] = {
    "coherence": 0.25,
    "emotional_arc": 0.20,
    "theme_clarity": 0.15,
    "cross_universe": 0.20,
    "character_arc": 0.20,
}

COUNTER_FIELDS = (
    "beats_generated",
    "enrichments_applied",
    "gaps_remediated",
    "routing_decisions",
)


@dataclass(frozen=True)
class NarrativeMetrics:
    """Rolling quality state for one trace."""

    # Counts
    beats_generated: int = 0
    enrichments_applied: int = 0
    gaps_remediated: int = 0
    routing_decisions: int = 0

    # Quality scores (0-1)
    coherence_score: float = NEUTRAL_SCORE
    emotional_arc_strength: float = NEUTRAL_SCORE
    theme_clarity: float = NEUTRAL_SCORE
    character_arc_completion: dict[str, float] = field(default_factory=dict)

    # Three-universe alignment (0-1)
    engineer_alignment: float = NEUTRAL_SCORE
    ceremony_alignment: float = NEUTRAL_SCORE
    story_engine_alignment: float = NEUTRAL_SCORE
    cross_universe_coherence: float = NEUTRAL_SCORE

    # Timing
    total_generation_time_ms: float = 0
    average_beat_time_ms: float = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape."""
        return {
            "beatsGenerated": self.beats_generated,
            "enrichmentsApplied": self.enrichments_applied,
            "gapsRemediated": self.gaps_remediated,
            "routingDecisions": self.routing_decisions,
            "coherenceScore": self.coherence_score,
            "emotionalArcStrength": self.emotional_arc_strength,
            "themeClarity": self.theme_clarity,
            "characterArcCompletion": dict(self.character_arc_completion),
            "engineerAlignment": self.engineer_alignment,
            "ceremonyAlignment": self.ceremony_alignment,
            "storyEngineAlignment": self.story_engine_alignment,
            "crossUniverseCoherence": self.cross_universe_coherence,
            "totalGenerationTimeMs": self.total_generation_time_ms,
            "averageBeatTimeMs": self.average_beat_time_ms,
        }


def create_metrics() -> NarrativeMetrics:
    """Fresh metrics: zero counts, neutral scores, no character arcs."""
    return NarrativeMetrics()


def increment(metrics: NarrativeMetrics, counter: str) -> NarrativeMetrics:
    """Add one to a counter."""
    if counter not in COUNTER_FIELDS:
        raise KeyError(counter)
    return replace(metrics, **{counter: getattr(metrics, counter) + 1})


def ema(score: float, observation: float, alpha: float = ALIGNMENT_ALPHA) -> float:
    """Exponential moving average step."""
    return score * (1 - alpha) + observation * alpha


def apply_three_universe(
    metrics: NarrativeMetrics,
    engineer_confidence: float,
    ceremony_confidence: float,
    story_engine_confidence: float,
    coherence_score: float,
) -> NarrativeMetrics:
    """Fold one three-universe analysis into the alignment averages."""
    return replace(
        metrics,
        engineer_alignment=ema(metrics.engineer_alignment, engineer_confidence),
        ceremony_alignment=ema(metrics.ceremony_alignment, ceremony_confidence),
        story_engine_alignment=ema(
            metrics.story_engine_alignment, story_engine_confidence
        ),
        cross_universe_coherence=ema(metrics.cross_universe_coherence, coherence_score),
    )


def with_character_arc(
    metrics: NarrativeMetrics, character_id: str, completion: float
) -> NarrativeMetrics:
    """Set a character's latest arc completion."""
    arcs = dict(metrics.character_arc_completion)
    arcs[character_id] = completion
    return replace(metrics, character_arc_completion=arcs)


def with_timing(metrics: NarrativeMetrics, total_ms: float) -> NarrativeMetrics:
    """Record total generation time and derive the per-beat average."""
    average = metrics.average_beat_time_ms
    if metrics.beats_generated > 0:
        average = total_ms / metrics.beats_generated
    return replace(metrics, total_generation_time_ms=total_ms, average_beat_time_ms=average)


def average_character_arc(metrics: NarrativeMetrics) -> float:
    """Mean arc completion; neutral when no characters are tracked."""
    values = list(metrics.character_arc_completion.values())
    if not values:
        return NEUTRAL_SCORE
    return sum(values) / len(values)


def calculate_overall_quality(metrics: NarrativeMetrics) -> float:
    """Weighted overall quality score in [0, 1]."""
    return (
        metrics.coherence_score * QUALITY_WEIGHTS["coherence"]
        + metrics.emotional_arc_strength * QUALITY_WEIGHTS["emotional_arc"]
        + metrics.theme_clarity * QUALITY_WEIGHTS["theme_clarity"]
        + metrics.cross_universe_coherence * QUALITY_WEIGHTS["cross_universe"]
        + average_character_arc(metrics) * QUALITY_WEIGHTS["character_arc"]
    )
