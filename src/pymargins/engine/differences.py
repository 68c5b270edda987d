"""
Finite-difference marginal effects.

Continuous (change="dydx"):
    dy/dx_i = (f(x_i + h) - f(x_i - h)) / ((x + h) - (x - h))
    with h = sqrt(eps) * max(max|x|, 1), error O(h²).

Binary / factor:
    effect_i = f(level) - f(baseline)

Only the named column is perturbed. Squares, interactions and other derived
terms are recomputed by the adapter, so the chain rule across them is
captured without any term-by-term rules.
"""

from typing import Any, Optional

import numpy as np
import pandas as pd

from ..adapters.base import PredictionAdapter
from ..config import ChangeSpec
from ..exceptions import PredictionFailure
from ..schema import VariableDescriptor, VariableKind
from .grid import fill_column


def setstep(values, eps: float = 1e-7) -> float:
    """
    Step size for central differences on values.

    h = sqrt(eps) * max(max|x|, 1), returned as (x + h) - x evaluated at the
    largest |x| so that x ± h is exactly representable there.

    Args:
        values: Scalar or array of variable values
        eps: Base tolerance (default 1e-7)

    Returns:
        Positive step h
    """
    x = np.asarray(values, dtype=np.float64)
    scale = max(float(np.nanmax(np.abs(x))) if x.size else 0.0, 1.0)
    h = np.sqrt(eps) * scale
    return float((scale + h) - scale)


def checked_predict(
    adapter: PredictionAdapter,
    data: pd.DataFrame,
    coefficients: np.ndarray,
    scale: str,
    variable: Optional[str],
    direction: str,
) -> np.ndarray:
    """
    Predict and verify the output: right length, all finite.

    Raises:
        PredictionFailure: the adapter raised or returned bad values
    """
    try:
        pred = adapter.predict(data, coefficients, scale=scale)
    except Exception as e:
        raise PredictionFailure(
            f"Prediction failed: {e}", variable=variable, direction=direction
        ) from e

    pred = np.asarray(pred, dtype=np.float64).reshape(-1)
    if pred.shape[0] != len(data):
        raise PredictionFailure(
            f"Adapter returned {pred.shape[0]} predictions for {len(data)} rows",
            variable=variable,
            direction=direction,
        )

    bad = np.flatnonzero(~np.isfinite(pred))
    if bad.size:
        raise PredictionFailure(
            f"Non-finite prediction ({pred[bad[0]]}) in {bad.size} of {len(pred)} rows",
            variable=variable,
            observation=int(bad[0]),
            direction=direction,
        )
    return pred


def change_points(column: pd.Series, change: ChangeSpec) -> tuple:
    """(x0, x1) for a discrete change in a continuous variable."""
    x = column.astype(np.float64)
    if change == "minmax":
        return float(x.min()), float(x.max())
    if change == "iqr":
        return float(x.quantile(0.25)), float(x.quantile(0.75))
    if change == "sd":
        mean, sd = float(x.mean()), float(x.std())
        return mean - sd, mean + sd
    x0, x1 = change
    return float(x0), float(x1)


def _contrast(
    adapter: PredictionAdapter,
    data: pd.DataFrame,
    coefficients: np.ndarray,
    name: str,
    low: Any,
    high: Any,
    scale: str,
) -> np.ndarray:
    column = data[name]
    d0 = data.assign(**{name: fill_column(column, low)})
    d1 = data.assign(**{name: fill_column(column, high)})
    p0 = checked_predict(adapter, d0, coefficients, scale, name, "low")
    p1 = checked_predict(adapter, d1, coefficients, scale, name, "high")
    return p1 - p0


def dydx(
    adapter: PredictionAdapter,
    data: pd.DataFrame,
    coefficients: np.ndarray,
    descriptor: VariableDescriptor,
    scale: str = "response",
    eps: float = 1e-7,
) -> np.ndarray:
    """
    Central-difference derivative of predictions w.r.t. a continuous variable.

    Args:
        adapter: Prediction adapter
        data: Observations
        coefficients: Coefficient vector
        descriptor: Continuous variable descriptor (descriptor.step, if set,
            is used as an absolute step)
        scale: Prediction scale
        eps: Base tolerance for setstep()

    Returns:
        (n,) derivatives
    """
    name = descriptor.name
    x = data[name].to_numpy(dtype=np.float64)
    h = descriptor.step if descriptor.step is not None else setstep(x, eps)

    x_minus = x - h
    x_plus = x + h
    d0 = data.assign(**{name: x_minus})
    d1 = data.assign(**{name: x_plus})

    p0 = checked_predict(adapter, d0, coefficients, scale, name, "minus")
    p1 = checked_predict(adapter, d1, coefficients, scale, name, "plus")

    return (p1 - p0) / (x_plus - x_minus)


def unit_effects(
    adapter: PredictionAdapter,
    data: pd.DataFrame,
    coefficients: np.ndarray,
    descriptor: VariableDescriptor,
    scale: str = "response",
    eps: float = 1e-7,
    change: ChangeSpec = "dydx",
) -> pd.DataFrame:
    """
    Per-observation marginal effects of one variable.

    Args:
        adapter: Prediction adapter
        data: Observations (one grid point)
        coefficients: Coefficient vector
        descriptor: Variable to differentiate
        scale: Prediction scale
        eps: Base tolerance for continuous steps
        change: Continuous effect type ("dydx", "minmax", "iqr", "sd", (x0, x1))

    Returns:
        DataFrame (n, n_effects) indexed like data, columns = descriptor.effect_names()
    """
    coefficients = np.asarray(coefficients, dtype=np.float64)
    names = descriptor.effect_names()

    if descriptor.kind is VariableKind.CONTINUOUS:
        if isinstance(change, str) and change == "dydx":
            values = dydx(adapter, data, coefficients, descriptor, scale, eps)
        else:
            x0, x1 = change_points(data[descriptor.name], change)
            values = _contrast(adapter, data, coefficients, descriptor.name, x0, x1, scale)
        return pd.DataFrame({names[0]: values}, index=data.index)

    # Baseline predictions are shared by every contrast
    name = descriptor.name
    column = data[name]
    d0 = data.assign(**{name: fill_column(column, descriptor.baseline)})
    p0 = checked_predict(adapter, d0, coefficients, scale, name, "baseline")

    columns = {}
    for label, level in zip(names, descriptor.contrast_levels()):
        d1 = data.assign(**{name: fill_column(column, level)})
        p1 = checked_predict(adapter, d1, coefficients, scale, name, f"level={level}")
        columns[label] = p1 - p0
    return pd.DataFrame(columns, index=data.index)
