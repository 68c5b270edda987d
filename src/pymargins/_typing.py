"""Type definitions for pymargins.

This module provides type aliases using numpy.typing for clear,
consistent type annotations throughout the package.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray

# Core numeric types
Float64Array = NDArray[np.float64]
BoolArray = NDArray[np.bool_]

# Anything pandas.DataFrame(...) accepts as a data set
DataLike = Union[pd.DataFrame, Mapping[str, Sequence[Any]], Sequence[Mapping[str, Any]]]

# Coefficients may arrive named (Series) or positional (array)
CoefficientsLike = Union[pd.Series, Float64Array, Sequence[float]]

# "at" specification: variable -> values to fix
AtSpec = Mapping[str, Any]

# Row subset: boolean mask or predicate on the frame
SubsetLike = Union[pd.Series, BoolArray, Sequence[bool], Callable[[pd.DataFrame], Any]]
