"""Root trace lifecycle management."""

from .orchestrator import NarrativeTraceOrchestrator

__all__ = ["NarrativeTraceOrchestrator"]
