"""
Variable descriptors and schema inference.

A descriptor's kind selects the differentiation rule:
- CONTINUOUS: central finite difference (or a discrete change, see config.change)
- BINARY: contrast high level minus low level
- FACTOR: one contrast per non-baseline level against levels[0]
"""

import numbers
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from pandas.api import types as ptypes


class VariableKind(Enum):
    """How a covariate enters the effect computation."""

    CONTINUOUS = "continuous"
    BINARY = "binary"
    FACTOR = "factor"


@dataclass(frozen=True)
class VariableDescriptor:
    """Name, kind and (for discrete kinds) the level set of one covariate."""

    name: str
    kind: VariableKind = VariableKind.CONTINUOUS
    levels: Tuple[Any, ...] = ()
    step: Optional[float] = None

    def __post_init__(self):
        if not isinstance(self.kind, VariableKind):
            object.__setattr__(self, "kind", VariableKind(self.kind))
        object.__setattr__(self, "levels", tuple(self.levels))

        if self.kind is VariableKind.CONTINUOUS:
            if self.levels:
                raise ValueError(f"Continuous variable {self.name!r} cannot have levels")
            if self.step is not None and not self.step > 0:
                raise ValueError(f"step for {self.name!r} must be positive, got {self.step}")
        else:
            if self.step is not None:
                raise ValueError(f"Discrete variable {self.name!r} cannot have a step")
            if self.kind is VariableKind.BINARY and not self.levels:
                object.__setattr__(self, "levels", (0, 1))
            if self.kind is VariableKind.BINARY and len(self.levels) != 2:
                raise ValueError(
                    f"Binary variable {self.name!r} needs exactly 2 levels, got {self.levels}"
                )
            if self.kind is VariableKind.FACTOR and len(self.levels) < 2:
                raise ValueError(
                    f"Factor {self.name!r} needs at least 2 levels, got {self.levels}"
                )
            if len(set(self.levels)) != len(self.levels):
                raise ValueError(f"Duplicate levels for {self.name!r}: {self.levels}")

    @property
    def is_discrete(self) -> bool:
        return self.kind is not VariableKind.CONTINUOUS

    @property
    def baseline(self) -> Any:
        """Reference level for contrasts (discrete kinds only)."""
        if not self.is_discrete:
            raise AttributeError(f"Continuous variable {self.name!r} has no baseline")
        return self.levels[0]

    def contrast_levels(self) -> Tuple[Any, ...]:
        """Levels compared against the baseline."""
        if self.kind is VariableKind.BINARY:
            return (self.levels[1],)
        if self.kind is VariableKind.FACTOR:
            return self.levels[1:]
        return ()

    def effect_names(self) -> List[str]:
        """Labels of the effect columns this variable produces."""
        if self.kind is VariableKind.FACTOR:
            return [f"{self.name}[{level}]" for level in self.contrast_levels()]
        return [self.name]

    def accepts(self, value: Any) -> bool:
        """True if value is a valid setting for this variable."""
        if self.is_discrete:
            return any(_same_level(value, level) for level in self.levels)
        if isinstance(value, (str, bytes)) or not isinstance(value, numbers.Real):
            return False
        return bool(np.isfinite(value))


def _same_level(a: Any, b: Any) -> bool:
    # 1 == True and 1.0 == 1 should match, "1" == 1 should not
    try:
        return bool(a == b) and (isinstance(a, str) == isinstance(b, str))
    except (TypeError, ValueError):
        return False


def describe_column(name: str, column: pd.Series) -> VariableDescriptor:
    """Infer a descriptor from a column's dtype."""
    if ptypes.is_bool_dtype(column):
        return VariableDescriptor(name, VariableKind.BINARY, levels=(False, True))

    if isinstance(column.dtype, pd.CategoricalDtype):
        levels = tuple(column.cat.categories)
        kind = VariableKind.BINARY if len(levels) == 2 else VariableKind.FACTOR
        return VariableDescriptor(name, kind, levels=levels)

    if ptypes.is_numeric_dtype(column):
        return VariableDescriptor(name, VariableKind.CONTINUOUS)

    levels = tuple(sorted(column.dropna().unique(), key=str))
    kind = VariableKind.BINARY if len(levels) == 2 else VariableKind.FACTOR
    return VariableDescriptor(name, kind, levels=levels)


def infer_schema(
    frame: pd.DataFrame,
    names: Optional[Iterable[str]] = None,
) -> List[VariableDescriptor]:
    """
    Build descriptors for the given columns (all columns by default).

    bool -> BINARY; categorical/object -> BINARY when two levels, else FACTOR;
    numeric -> CONTINUOUS.

    Args:
        frame: Data to inspect
        names: Column names, in the order descriptors should be returned

    Returns:
        List of VariableDescriptor
    """
    names = list(frame.columns) if names is None else list(names)
    missing = [n for n in names if n not in frame.columns]
    if missing:
        raise KeyError(f"Columns not found in data: {missing}")
    return [describe_column(n, frame[n]) for n in names]


_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")


def variables_in_formula(formula: str, columns: Sequence[str]) -> List[str]:
    """
    Data columns referenced by a formula's right-hand side.

    Transformations (np.log(x), I(x**2), x:z, C(g)) resolve to their
    underlying columns, returned in column order.
    """
    rhs = formula.split("~")[-1]
    # Backtick-quoted names may contain anything
    quoted = set(re.findall(r"`([^`]+)`", rhs))
    tokens = set(_IDENTIFIER.findall(re.sub(r"`[^`]+`", " ", rhs))) | quoted
    return [c for c in columns if c in tokens]


_FACTOR_CALL = re.compile(r"\bC\(\s*`?([A-Za-z_][A-Za-z0-9_.]*)`?")


def formula_schema(formula: str, frame: pd.DataFrame) -> List[VariableDescriptor]:
    """
    Descriptors for the columns a formula uses.

    Columns wrapped in C(...) are factors regardless of dtype.
    """
    names = variables_in_formula(formula, list(frame.columns))
    forced = set(_FACTOR_CALL.findall(formula.split("~")[-1]))
    schema = []
    for name in names:
        descriptor = describe_column(name, frame[name])
        if name in forced and not descriptor.is_discrete:
            levels = tuple(sorted(frame[name].dropna().unique()))
            descriptor = VariableDescriptor(name, VariableKind.FACTOR, levels=levels)
        schema.append(descriptor)
    return schema
