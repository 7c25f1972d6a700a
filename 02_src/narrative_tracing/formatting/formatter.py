"""Narrative trace formatter.

Formats completed traces for human understanding, not just machine parsing.
Every function here is pure: it reads a CompletedTrace (or metrics) and
returns text or data without touching the orchestrator or the backend.
"""

from dataclasses import dataclass, field, replace

from ..models import (
    CompletedTrace,
    NarrativeEventType,
    NarrativeMetrics,
    NarrativeSpan,
    calculate_overall_quality,
    create_metrics,
    display_name,
    glyph_for,
)
from ..models.events import THEME_EVENTS
from ..models.metrics import NEUTRAL_SCORE
from ..models.span import parse_timestamp

CHART_HEIGHT = 10
STORY_PREVIEW_CHARS = 1000


@dataclass
class StoryArcVisualization:
    """Character arc positions, emotional beats and theme mentions of a story."""

    character_arcs: dict[str, list[float]] = field(default_factory=dict)
    emotional_beats: list[str] = field(default_factory=list)
    theme_mentions: dict[str, int] = field(default_factory=dict)


def arc_to_ascii_chart(visualization: StoryArcVisualization, character_id: str) -> str:
    """Step chart of a character's arc, one column per sample, rows 1.0 down to 0.0."""
    if character_id not in visualization.character_arcs:
        return f"No arc data for {character_id}"

    positions = visualization.character_arcs[character_id]
    if not positions:
        return "Empty arc"

    lines = []
    for row in range(CHART_HEIGHT, -1, -1):
        threshold = row / CHART_HEIGHT
        cells = "".join("█" if pos >= threshold else "·" for pos in positions)
        lines.append(f"{threshold:.1f} │{cells}")

    lines.append("    └" + "─" * len(positions))
    lines.append("      " + "".join(str(i % 10) for i in range(len(positions))))

    return "\n".join(lines)


@dataclass
class FormattedSpan:
    """A span prepared for tree display: label, detail lines and nested children."""

    display_name: str
    details: list[str] = field(default_factory=list)
    children: list["FormattedSpan"] = field(default_factory=list)
    indent_level: int = 0


def formatted_span_to_string(span: FormattedSpan, indent: int = 0) -> str:
    """Render a FormattedSpan and its children as an indented tree."""
    prefix = "│  " * indent
    connector = "├─ " if indent > 0 else ""

    lines = [f"{prefix}{connector}{span.display_name}"]
    lines.extend(f"{prefix}│  └─ {detail}" for detail in span.details)
    lines.extend(formatted_span_to_string(child, indent + 1) for child in span.children)

    return "\n".join(lines)


def _event_label(span: NarrativeSpan) -> str:
    return f"{glyph_for(span.event_type)} {display_name(span.event_type)}"


class NarrativeTraceFormatter:
    """Formats narrative traces for human understanding."""

    # Display formatting
    def format_for_display(self, trace: CompletedTrace) -> str:
        """Human-readable trace grouped by beat, with final metrics."""
        lines = [
            f"📖 Story Generation: {trace.story_id}",
            f"   Session: {trace.session_id}",
            f"   Duration: {trace.duration_ms:.0f}ms",
            "",
        ]

        beats: dict[str, list[NarrativeSpan]] = {}
        other_spans: list[NarrativeSpan] = []
        for span in trace.spans:
            if span.beat_id:
                beats.setdefault(span.beat_id, []).append(span)
            else:
                other_spans.append(span)

        for beat_id, beat_spans in beats.items():
            creation = next(
                (s for s in beat_spans if s.event_type == NarrativeEventType.BEAT_CREATED),
                None,
            )
            if creation is None:
                continue

            lines.append(f"├─ 📝 Beat: {beat_id} ({creation.emotional_tone or 'neutral'})")
            for span in beat_spans:
                if span.span_id == creation.span_id:
                    continue
                lines.append(f"│  ├─ {_event_label(span)}")
                for key, value in (span.output_data or {}).items():
                    if isinstance(value, (str, int, float, bool)):
                        lines.append(f"│  │  └─ {key}: {value}")

        if other_spans:
            lines.append("│")
            for span in other_spans:
                context = f" (lead: {span.lead_universe})" if span.lead_universe else ""
                lines.append(f"├─ {_event_label(span)}{context}")

        if trace.metrics:
            metrics = trace.metrics
            lines.append("│")
            lines.append("└─ 📊 Final Metrics")
            lines.append(f"   ├─ coherence: {metrics.coherence_score:.2f}")
            lines.append(f"   ├─ emotional_arc: {metrics.emotional_arc_strength:.2f}")
            lines.append(f"   ├─ theme_clarity: {metrics.theme_clarity:.2f}")
            lines.append(f"   ├─ beats_generated: {metrics.beats_generated}")
            lines.append(
                f"   └─ overall_quality: {calculate_overall_quality(metrics):.2f}"
            )

        return "\n".join(lines)

    def format_as_timeline(self, trace: CompletedTrace) -> str:
        """Chronological view of every span."""
        lines = [
            f"📅 Timeline: {trace.story_id}",
            f"   {trace.start_time} → {trace.end_time}",
            "",
        ]

        # ISO-8601 UTC strings sort chronologically
        ordered = sorted(trace.spans, key=lambda s: s.start_time)

        for index, span in enumerate(ordered):
            try:
                time_str = parse_timestamp(span.start_time).strftime("%H:%M:%S.%f")[:12]
            except ValueError:
                time_str = "??:??:??"

            connector = "└─" if index == len(ordered) - 1 else "├─"
            lines.append(f"{time_str} {connector} {_event_label(span)}")

            if span.beat_id:
                lines.append(f"          │   beat: {span.beat_id}")
            if span.emotional_tone:
                lines.append(f"          │   emotion: {span.emotional_tone}")
            if span.lead_universe:
                lines.append(f"          │   universe: {span.lead_universe}")

        return "\n".join(lines)

    def format_as_arc_graph(self, trace: CompletedTrace) -> str:
        """Character-centric view: one arc chart per character, then the emotional journey."""
        lines = [f"🎭 Character Arcs: {trace.story_id}", ""]

        arc_data = self.extract_character_arcs(trace)

        if not arc_data.character_arcs:
            lines.append("No character arc data found")
            return "\n".join(lines)

        for character_id in arc_data.character_arcs:
            lines.append(f"Character: {character_id}")
            lines.append(arc_to_ascii_chart(arc_data, character_id))
            lines.append("")

        if arc_data.emotional_beats:
            lines.append("Emotional Journey:")
            for number, tone in enumerate(arc_data.emotional_beats, start=1):
                lines.append(f"  {number}. {tone}")

        if arc_data.theme_mentions:
            lines.append("Themes:")
            for theme, count in arc_data.theme_mentions.items():
                lines.append(f"  {theme}: {count}")

        return "\n".join(lines)

    def export_as_markdown(self, trace: CompletedTrace) -> str:
        """Documentation-ready markdown."""
        lines = [
            f"# Story Generation Trace: {trace.story_id}",
            "",
            "## Metadata",
            "",
            f"- **Story ID**: {trace.story_id}",
            f"- **Session ID**: {trace.session_id}",
            f"- **Duration**: {trace.duration_ms:.0f}ms",
            f"- **Beats Generated**: {trace.beat_count}",
            "",
        ]

        if trace.metrics:
            metrics = trace.metrics
            lines.extend(
                [
                    "## Quality Metrics",
                    "",
                    "| Metric | Value |",
                    "|--------|-------|",
                    f"| Coherence | {metrics.coherence_score:.2f} |",
                    f"| Emotional Arc | {metrics.emotional_arc_strength:.2f} |",
                    f"| Theme Clarity | {metrics.theme_clarity:.2f} |",
                    f"| Cross-Universe Coherence | {metrics.cross_universe_coherence:.2f} |",
                    f"| Overall Quality | {calculate_overall_quality(metrics):.2f} |",
                    "",
                ]
            )

        lines.extend(["## Beat Breakdown", ""])
        for span in trace.spans:
            if span.event_type != NarrativeEventType.BEAT_CREATED:
                continue
            lines.append(f"### Beat: {span.beat_id}")
            lines.append("")
            if span.emotional_tone:
                lines.append(f"- **Emotional Tone**: {span.emotional_tone}")
            if span.character_ids:
                lines.append(f"- **Characters**: {', '.join(span.character_ids)}")
            if span.lead_universe:
                lines.append(f"- **Lead Universe**: {span.lead_universe}")
            lines.append("")

        if trace.correlation and trace.correlation.correlation_path:
            lines.extend(
                [
                    "## System Correlation",
                    "",
                    f"Path: {' → '.join(trace.correlation.correlation_path)}",
                    "",
                ]
            )

        if trace.story_content:
            content = trace.story_content
            if len(content) > STORY_PREVIEW_CHARS:
                content = content[:STORY_PREVIEW_CHARS] + "..."
            lines.extend(["## Story Preview", "", "```", content, "```"])

        return "\n".join(lines)

    # Metrics extraction
    def extract_story_metrics(self, trace: CompletedTrace) -> NarrativeMetrics:
        """Metrics attached at finalization, or metrics derived from the spans."""
        if trace.metrics is not None:
            return trace.metrics

        def count(kind: NarrativeEventType) -> int:
            return sum(1 for span in trace.spans if span.event_type == kind)

        beats_generated = count(NarrativeEventType.BEAT_CREATED)

        cross_universe = NEUTRAL_SCORE
        coherences = [
            span.output_data.get("coherence_score", NEUTRAL_SCORE)
            for span in trace.spans
            if span.event_type == NarrativeEventType.THREE_UNIVERSE_ANALYSIS
            and span.output_data
        ]
        if coherences:
            cross_universe = sum(coherences) / len(coherences)

        average_beat_time = 0.0
        if beats_generated > 0:
            average_beat_time = trace.duration_ms / beats_generated

        return replace(
            create_metrics(),
            beats_generated=beats_generated,
            enrichments_applied=count(NarrativeEventType.BEAT_ENRICHED),
            gaps_remediated=count(NarrativeEventType.GAP_REMEDIATED),
            routing_decisions=count(NarrativeEventType.ROUTING_DECISION),
            cross_universe_coherence=cross_universe,
            total_generation_time_ms=trace.duration_ms,
            average_beat_time_ms=average_beat_time,
        )

    def extract_character_arcs(self, trace: CompletedTrace) -> StoryArcVisualization:
        """Arc positions per character, beat tones and theme mentions, in span order."""
        viz = StoryArcVisualization()

        for span in trace.spans:
            if span.event_type == NarrativeEventType.CHARACTER_ARC_UPDATED and span.character_ids:
                positions = viz.character_arcs.setdefault(span.character_ids[0], [])
                if span.output_data and "arc_position_after" in span.output_data:
                    positions.append(span.output_data["arc_position_after"])
            elif span.event_type == NarrativeEventType.BEAT_CREATED and span.emotional_tone:
                viz.emotional_beats.append(span.emotional_tone)
            elif span.event_type in THEME_EVENTS and span.output_data:
                theme = span.output_data.get("theme")
                if theme:
                    viz.theme_mentions[theme] = viz.theme_mentions.get(theme, 0) + 1

        return viz

    # Improvement suggestions
    def generate_improvement_suggestions(self, metrics: NarrativeMetrics) -> list[str]:
        """Suggestions for narrative improvement; rules are independent and ordered."""
        suggestions = []

        if metrics.coherence_score < 0.6:
            suggestions.append(
                "🔍 Low coherence detected. Consider adding transition beats "
                "to improve flow between scenes."
            )

        if metrics.emotional_arc_strength < 0.5:
            suggestions.append(
                "💓 Emotional arc is weak. Try adding beats with stronger "
                "emotional contrast or character reactions."
            )

        if metrics.theme_clarity < 0.6:
            suggestions.append(
                "🎨 Themes are unclear. Consider reinforcing thematic elements "
                "through dialogue or symbolic actions."
            )

        if metrics.cross_universe_coherence < 0.5:
            suggestions.append(
                "🌌 Three-universe alignment is low. Review if Engineer, Ceremony, "
                "and Story Engine perspectives are all represented."
            )

        if metrics.enrichments_applied < metrics.beats_generated * 0.3:
            suggestions.append(
                "✨ Few beats were enriched. Consider running more beats through "
                "specialized flows for quality improvement."
            )

        incomplete_arcs = [
            character_id
            for character_id, completion in metrics.character_arc_completion.items()
            if completion < 0.6
        ]
        if incomplete_arcs:
            suggestions.append(
                f"🎭 Characters with incomplete arcs: {', '.join(incomplete_arcs)}. "
                "Add beats that advance their personal journeys."
            )

        if metrics.average_beat_time_ms > 5000:
            suggestions.append(
                "⚡ Beat generation is slow. Consider optimizing prompts or "
                "using faster model variants for initial drafts."
            )

        if not suggestions:
            suggestions.append(
                "✅ Narrative metrics look healthy! The story maintains good "
                "coherence, emotional arc, and thematic clarity."
            )

        return suggestions
