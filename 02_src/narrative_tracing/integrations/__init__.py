"""Integrations that carry trace identity across HTTP boundaries."""

from .correlation import (
    CorrelationContext,
    extract_correlation_from_headers,
    make_correlation_hook,
)

__all__ = [
    "CorrelationContext",
    "extract_correlation_from_headers",
    "make_correlation_hook",
]
