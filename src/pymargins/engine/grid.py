"""
Counterfactual grid construction ("at" specification).

Each grid point is a copy of the (optionally subset) data with some
variables fixed to constants. Substituted columns are new objects; the base
frame is never written to.
"""

import itertools
import warnings
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..exceptions import InvalidSpecification
from ..schema import VariableDescriptor, describe_column


@dataclass(frozen=True)
class GridPoint:
    """One counterfactual copy of the data and the values that produced it."""

    tag: Optional[Dict[str, Any]]
    data: pd.DataFrame

    @property
    def n_obs(self) -> int:
        return len(self.data)


def normalize_at(at: Optional[Mapping[str, Any]]) -> Dict[str, Tuple[Any, ...]]:
    """Turn scalar values into one-element tuples."""
    if not at:
        return {}
    normalized = {}
    for name, values in at.items():
        if isinstance(values, (str, bytes)) or np.ndim(values) == 0:
            values = (values,)
        values = tuple(values)
        if not values:
            raise InvalidSpecification(f"No values given for 'at' variable {name!r}")
        normalized[name] = values
    return normalized


def resolve_subset(data: pd.DataFrame, subset) -> pd.DataFrame:
    """Apply a boolean mask or predicate to data (returns data unchanged if None)."""
    mask = subset_mask(data, subset)
    if mask is None:
        return data
    return data.loc[mask]


def subset_mask(data: pd.DataFrame, subset) -> Optional[np.ndarray]:
    """
    Validated boolean row mask for subset (None if subset is None).

    Raises:
        InvalidSpecification: non-boolean, wrong length, or empty selection
    """
    if subset is None:
        return None
    mask = subset(data) if callable(subset) else subset
    mask = np.asarray(mask)
    if mask.dtype != np.bool_:
        raise InvalidSpecification(f"subset must be boolean, got dtype {mask.dtype}")
    if mask.shape != (len(data),):
        raise InvalidSpecification(
            f"subset mask has shape {mask.shape}, data has {len(data)} rows"
        )
    if not mask.any():
        raise InvalidSpecification("subset selects no rows")
    return mask


def validate_at(
    data: pd.DataFrame,
    at: Dict[str, Tuple[Any, ...]],
    schema: Optional[Sequence[VariableDescriptor]] = None,
) -> None:
    """
    Check every "at" variable exists and every value is admissible.

    Raises:
        InvalidSpecification: unknown variable, or a value outside a
            discrete variable's level set
    """
    descriptors = {d.name: d for d in (schema or [])}
    for name, values in at.items():
        if name not in data.columns:
            raise InvalidSpecification(
                f"'at' variable {name!r} not found in data. "
                f"Available: {list(data.columns)}"
            )
        descriptor = descriptors.get(name) or describe_column(name, data[name])
        bad = [v for v in values if not descriptor.accepts(v)]
        if bad:
            if descriptor.is_discrete:
                raise InvalidSpecification(
                    f"'at' values {bad} for {name!r} are not among its levels {descriptor.levels}"
                )
            raise InvalidSpecification(f"'at' values {bad} for {name!r} are not finite numbers")

        if not descriptor.is_discrete:
            lo, hi = data[name].min(), data[name].max()
            outside = [v for v in values if v < lo or v > hi]
            if outside:
                warnings.warn(
                    f"'at' values {outside} for {name!r} are outside the observed "
                    f"range [{lo:.4g}, {hi:.4g}]; effects are extrapolated.",
                    UserWarning,
                )


def fill_column(column: pd.Series, value: Any) -> pd.Series:
    """
    Constant column shaped like column, keeping categorical categories.

    Returns a new Series; column is not modified.
    """
    if isinstance(column.dtype, pd.CategoricalDtype):
        values = pd.Categorical([value] * len(column), dtype=column.dtype)
        return pd.Series(values, index=column.index, name=column.name)
    return pd.Series(np.full(len(column), value), index=column.index, name=column.name)


def with_values(data: pd.DataFrame, values: Mapping[str, Any]) -> pd.DataFrame:
    """Copy of data with the given columns set to constants."""
    return data.assign(**{name: fill_column(data[name], v) for name, v in values.items()})


def build_grid(
    data: pd.DataFrame,
    at: Optional[Mapping[str, Any]] = None,
    subset=None,
    schema: Optional[Sequence[VariableDescriptor]] = None,
) -> Iterator[GridPoint]:
    """
    Expand data into counterfactual grid points.

    Validation happens immediately; the returned iterator is lazy.

    Args:
        data: Base data (never modified)
        at: Mapping variable -> value or sequence of values; the grid is the
            Cartesian product in mapping order
        subset: Boolean mask or predicate selecting the rows to use
        schema: Descriptors used to validate discrete level sets

    Returns:
        Iterator of GridPoint. With no "at" spec, a single untagged point
        holding the subset data.
    """
    spec = normalize_at(at)
    validate_at(data, spec, schema)
    base = resolve_subset(data, subset)
    return _iter_grid(base, spec)


def _iter_grid(base: pd.DataFrame, spec: Dict[str, Tuple[Any, ...]]) -> Iterator[GridPoint]:
    if not spec:
        yield GridPoint(tag=None, data=base)
        return

    names = list(spec)
    for combo in itertools.product(*(spec[n] for n in names)):
        tag = dict(zip(names, combo))
        yield GridPoint(tag=tag, data=with_values(base, tag))

