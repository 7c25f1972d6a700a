"""Narrative event logging."""

from .handler import (
    ITracingHandler,
    NarrativeTracingHandler,
    validate_coherence_score,
    validate_lead_universe,
)

__all__ = [
    "ITracingHandler",
    "NarrativeTracingHandler",
    "validate_coherence_score",
    "validate_lead_universe",
]
