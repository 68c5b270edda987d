"""Utility functions for pymargins."""

from .formatting import format_at, format_pvalue, format_short_repr, format_summary_header

__all__ = [
    "format_at",
    "format_pvalue",
    "format_short_repr",
    "format_summary_header",
]
