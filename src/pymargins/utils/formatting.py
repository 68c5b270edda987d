"""Summary formatting utilities for statsmodels-style output."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np


def format_pvalue(p: Optional[float]) -> str:
    """
    Format p-value for display.

    Args:
        p: p-value

    Returns:
        Formatted string (e.g., "0.000", "0.042", "nan")
    """
    if p is None or np.isnan(p):
        return "nan"
    if p < 0.001:
        return "0.000"
    return f"{p:.3f}"


def format_at(tag: Optional[Dict[str, Any]]) -> str:
    """Render a grid tag as 'x=1, g=b' (empty string for no tag)."""
    if not tag:
        return ""
    return ", ".join(f"{k}={_format_value(v)}" for k, v in tag.items())


def _format_value(value: Any) -> str:
    if isinstance(value, (float, np.floating)):
        return f"{value:.4g}"
    return str(value)


def format_summary_header(
    title: str,
    left: List[Tuple[str, str]],
    right: List[Tuple[str, str]],
    width: int = 78,
) -> str:
    """
    Format statsmodels-style header block.

    Args:
        title: Main title (e.g., "Average Marginal Effects")
        left: (label, value) pairs for the left column
        right: (label, value) pairs for the right column
        width: Total width of output

    Returns:
        Formatted header string
    """
    lines = []
    sep = "=" * width

    lines.append(sep)
    lines.append(f"{title:^{width}}")
    lines.append(sep)

    now = datetime.now()
    left = left + [("Date:", now.strftime("%a, %d %b %Y"))]
    right = right + [("Time:", now.strftime("%H:%M:%S"))]

    half_width = width // 2
    n_rows = max(len(left), len(right))
    for i in range(n_rows):
        left_str = ""
        if i < len(left):
            left_str = f"{left[i][0]:<18}{left[i][1]}"
        line = f"{left_str:<{half_width}}"
        if i < len(right):
            line += f"{right[i][0]:<18}{right[i][1]}"
        lines.append(line.rstrip())

    lines.append(sep)

    return "\n".join(lines)


def format_short_repr(
    class_name: str,
    n_terms: int,
    n_obs: int,
    vce: str,
) -> str:
    """
    Format short __repr__ string.

    Args:
        class_name: Name of result class
        n_terms: Number of AME records
        n_obs: Observations per grid point
        vce: Variance method

    Returns:
        Short repr string
    """
    return f"<{class_name}: {n_terms} effects, n_obs={n_obs}, vce='{vce}'>"
