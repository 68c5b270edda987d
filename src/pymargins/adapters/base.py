"""
Base protocol and classes for prediction adapters.

A PredictionAdapter is the only way the engine talks to a fitted model:
"given a data set and a coefficient vector, produce predictions".
"""

from typing import Callable, List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
import pandas as pd

from ..schema import VariableDescriptor, infer_schema


@runtime_checkable
class PredictionAdapter(Protocol):
    """
    Protocol for prediction adapters.

    An adapter defines:
    - predict(data, coefficients, scale): predictions, one per row
    - coefficients(): the fitted coefficient vector (named)
    - covariance(): its variance-covariance matrix
    - schema(): descriptors of the covariates effects are computed for
    - df_resid: residual degrees of freedom, or None for large-sample models

    predict must be deterministic and free of side effects: the engine calls
    it with perturbed data and perturbed coefficients, possibly from several
    threads at once.
    """

    df_resid: Optional[float]

    def predict(
        self,
        data: pd.DataFrame,
        coefficients: np.ndarray,
        scale: str = "response",
    ) -> np.ndarray:
        """
        Predict for every row of data at the given coefficients.

        Args:
            data: Covariates, one row per observation
            coefficients: (k,) coefficient vector aligned with coefficients()
            scale: "response" or "link"

        Returns:
            (n,) predictions
        """
        ...

    def coefficients(self) -> pd.Series:
        ...

    def covariance(self) -> np.ndarray:
        ...

    def schema(self) -> List[VariableDescriptor]:
        ...


def coerce_coefficients(
    coefficients,
    names: Optional[Sequence[str]] = None,
) -> pd.Series:
    """Return coefficients as a float Series, naming positional input b0, b1, ..."""
    if isinstance(coefficients, pd.Series):
        series = coefficients.astype(np.float64)
        if names is not None:
            missing = [n for n in names if n not in series.index]
            if missing:
                raise ValueError(f"Coefficients missing for columns: {missing}")
            series = series.loc[list(names)]
        return series

    values = np.asarray(coefficients, dtype=np.float64).ravel()
    if names is None:
        names = [f"b{i}" for i in range(values.shape[0])]
    if len(names) != values.shape[0]:
        raise ValueError(
            f"Got {values.shape[0]} coefficients for {len(names)} names"
        )
    return pd.Series(values, index=list(names), dtype=np.float64)


def coerce_covariance(covariance, k: int) -> np.ndarray:
    """Return covariance as a (k, k) float array, checking shape and symmetry."""
    if isinstance(covariance, pd.DataFrame):
        covariance = covariance.values
    vcov = np.asarray(covariance, dtype=np.float64)
    if vcov.shape != (k, k):
        raise ValueError(f"Covariance must be ({k}, {k}), got {vcov.shape}")
    scale = max(np.abs(vcov).max(), 1.0)
    if not np.allclose(vcov, vcov.T, atol=1e-10 * scale):
        raise ValueError("Covariance matrix must be symmetric")
    return vcov


class BaseAdapter:
    """
    Base class for adapters.

    Stores coefficients, covariance, schema and df_resid; subclasses
    implement the prediction itself.
    """

    df_resid: Optional[float] = None
    data: Optional[pd.DataFrame] = None

    def __init__(
        self,
        coefficients: pd.Series,
        covariance: np.ndarray,
        schema: Sequence[VariableDescriptor],
        df_resid: Optional[float] = None,
        data: Optional[pd.DataFrame] = None,
    ):
        self._coefficients = coefficients
        self._covariance = coerce_covariance(covariance, len(coefficients))
        self._schema = list(schema)
        self.df_resid = df_resid
        # Default data for margins() when none is passed
        self.data = data

    def predict(
        self,
        data: pd.DataFrame,
        coefficients: np.ndarray,
        scale: str = "response",
    ) -> np.ndarray:
        """Must be implemented by subclasses."""
        raise NotImplementedError("Subclasses must implement predict()")

    def coefficients(self) -> pd.Series:
        return self._coefficients.copy()

    def covariance(self) -> np.ndarray:
        return self._covariance.copy()

    def schema(self) -> List[VariableDescriptor]:
        return list(self._schema)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(n_coef={len(self._coefficients)}, "
            f"variables={[d.name for d in self._schema]})"
        )


class CallableAdapter(BaseAdapter):
    """
    Wrapper for user-provided prediction functions.

    Enables marginal effects for any model that can be written as
    f(data, coefficients) -> predictions.
    """

    def __init__(
        self,
        predict_fn: Callable[[pd.DataFrame, np.ndarray], np.ndarray],
        coefficients,
        covariance=None,
        schema: Optional[Sequence[VariableDescriptor]] = None,
        data: Optional[pd.DataFrame] = None,
        link_fn: Optional[Callable[[pd.DataFrame, np.ndarray], np.ndarray]] = None,
        df_resid: Optional[float] = None,
    ):
        """
        Create an adapter from a function.

        Args:
            predict_fn: Response-scale prediction (data, coefficients) -> (n,)
            coefficients: Fitted coefficients (Series or array)
            covariance: (k, k) coefficient covariance; zeros if omitted
            schema: Variable descriptors; inferred from data if omitted
            data: Frame used to infer the schema
            link_fn: Optional link-scale prediction (data, coefficients) -> (n,)
            df_resid: Residual degrees of freedom, if any
        """
        coefs = coerce_coefficients(coefficients)
        if covariance is None:
            covariance = np.zeros((len(coefs), len(coefs)))
        if schema is None:
            if data is None:
                raise ValueError("Must provide either 'schema' or 'data'")
            schema = infer_schema(pd.DataFrame(data))
        if data is not None:
            data = pd.DataFrame(data)
        super().__init__(coefs, covariance, schema, df_resid, data)
        self._predict_fn = predict_fn
        self._link_fn = link_fn

    def predict(
        self,
        data: pd.DataFrame,
        coefficients: np.ndarray,
        scale: str = "response",
    ) -> np.ndarray:
        if scale == "link":
            if self._link_fn is None:
                raise ValueError("No link_fn supplied; cannot predict on the link scale")
            return np.asarray(self._link_fn(data, coefficients), dtype=np.float64)
        return np.asarray(self._predict_fn(data, coefficients), dtype=np.float64)
