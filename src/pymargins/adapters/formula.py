"""
Formula-based adapter.

Rebuilds the model matrix from a formula with formulaic, so squared terms,
interactions and factor encodings are recomputed from the underlying
columns whenever the engine perturbs them.

Prediction: eta = X(data) @ b, response = g^{-1}(eta).
"""

from typing import Optional

import numpy as np
import pandas as pd

from .base import BaseAdapter, coerce_coefficients
from .links import get_inverse_link
from ..schema import formula_schema, variables_in_formula


class FormulaAdapter(BaseAdapter):
    """
    Linear-predictor model described by a formula and its coefficients.

    Examples:
        adapter = FormulaAdapter(
            "y ~ x1 * x2 + I(x1 ** 2) + C(region)",
            data=df,
            coefficients=beta_hat,   # Series indexed by model-matrix columns
            covariance=vcov_hat,
            link="logit",
        )
    """

    def __init__(
        self,
        formula: str,
        data: pd.DataFrame,
        coefficients,
        covariance=None,
        link: str = "identity",
        df_resid: Optional[float] = None,
    ):
        """
        Initialize formula adapter.

        Args:
            formula: R-style formula; only the right-hand side is used
            data: Training frame (fixes factor levels and transform state);
                rows with missing formula variables are left out of the
                default margins data
            coefficients: Series indexed by model-matrix column names, or an
                array in model-matrix column order
            covariance: (k, k) coefficient covariance; zeros if omitted
            link: Inverse link applied on the response scale
            df_resid: Residual degrees of freedom, if any
        """
        import formulaic

        frame = pd.DataFrame(data)
        self.formula = formula
        self.rhs = formula.split("~")[-1].strip()
        self.link = link
        self._inverse_link = get_inverse_link(link)

        matrix = formulaic.model_matrix(self.rhs, frame, na_action="ignore")
        self._spec = matrix.model_spec
        self.columns = list(matrix.columns)

        coefs = coerce_coefficients(coefficients, self.columns)
        if covariance is None:
            covariance = np.zeros((len(coefs), len(coefs)))
        elif isinstance(covariance, pd.DataFrame):
            covariance = covariance.loc[self.columns, self.columns]

        # Rows missing any formula variable cannot be predicted
        used = variables_in_formula(self.rhs, list(frame.columns))
        frame = frame.loc[frame[used].notna().all(axis=1)]

        super().__init__(coefs, covariance, formula_schema(self.rhs, frame), df_resid, frame)

    def design_matrix(self, data: pd.DataFrame) -> np.ndarray:
        """Model matrix for new data, columns aligned with coefficients()."""
        matrix = pd.DataFrame(self._spec.get_model_matrix(data))
        return np.asarray(matrix.loc[:, self.columns], dtype=np.float64)

    def predict(
        self,
        data: pd.DataFrame,
        coefficients: np.ndarray,
        scale: str = "response",
    ) -> np.ndarray:
        eta = self.design_matrix(data) @ np.asarray(coefficients, dtype=np.float64)
        if scale == "link":
            return eta
        return np.asarray(self._inverse_link(eta), dtype=np.float64)
