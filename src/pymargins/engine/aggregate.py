"""
Aggregation of unit-level effects into average marginal effects.

AME_v = Σ w_i · effect_iv / Σ w_i   (w_i = 1 unless weights are given)

Each grid point is averaged on its own; nothing is pooled across points.
"""

from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd


def average_effects(
    effects: pd.DataFrame,
    weights: Optional[np.ndarray] = None,
) -> pd.Series:
    """
    Column means of a unit-level effect matrix.

    Args:
        effects: (n, n_effects) unit-level effects
        weights: Optional (n,) non-negative observation weights

    Returns:
        Series of AMEs indexed by effect name
    """
    values = effects.to_numpy(dtype=np.float64)
    if weights is None:
        means = values.mean(axis=0)
    else:
        w = np.asarray(weights, dtype=np.float64)
        means = w @ values / w.sum()
    return pd.Series(means, index=effects.columns)


def check_weights(weights, n: int) -> Optional[np.ndarray]:
    """Validate observation weights (None passes through)."""
    if weights is None:
        return None
    w = np.asarray(weights, dtype=np.float64).reshape(-1)
    if w.shape[0] != n:
        raise ValueError(f"weights has {w.shape[0]} entries, data has {n} rows")
    if not np.all(np.isfinite(w)) or (w < 0).any():
        raise ValueError("weights must be finite and non-negative")
    if w.sum() <= 0:
        raise ValueError("weights must not all be zero")
    return w


def stack_effects(
    frames: Sequence[pd.DataFrame],
    tags: Sequence[Optional[Dict[str, Any]]],
) -> pd.DataFrame:
    """
    Stack per-grid-point unit-level matrices into one frame.

    When grid points are tagged, the tag values are added as leading
    columns prefixed with "at_" so rows stay attributable.
    """
    parts: List[pd.DataFrame] = []
    for frame, tag in zip(frames, tags):
        part = frame.copy()
        if tag:
            for i, (name, value) in enumerate(tag.items()):
                part.insert(i, f"at_{name}", value)
        parts.append(part)
    return pd.concat(parts, axis=0)
