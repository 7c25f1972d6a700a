"""Telemetry backends that receive trace and span records."""

from .backend import BACKEND_CAPABILITIES, InMemoryBackend, ITelemetryBackend
from .sqlite import SqliteBackend

__all__ = [
    "BACKEND_CAPABILITIES",
    "ITelemetryBackend",
    "InMemoryBackend",
    "SqliteBackend",
]
