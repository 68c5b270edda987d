"""
Adapter for statsmodels results fitted through the formula API.

The design matrix for perturbed data is rebuilt with the model's own
formula state (patsy design info, or a formulaic model spec where
statsmodels uses that engine), so factor codings and stateful transforms
match the fit.
"""

from typing import Optional

import numpy as np
import pandas as pd
from patsy import DesignInfo, build_design_matrices

from .base import BaseAdapter, coerce_coefficients
from ..schema import formula_schema


def design_spec(model):
    """
    Formula state a statsmodels model keeps for rebuilding its exog.

    Older releases store the patsy DesignInfo on model.data; newer ones
    attach it to model.data.orig_exog, or keep a formulaic ModelSpec.
    """
    data = model.data
    for owner in (data, getattr(data, "orig_exog", None)):
        info = getattr(owner, "design_info", None)
        if info is not None:
            return info
    spec = getattr(data, "model_spec", None)
    if spec is not None:
        return spec
    raise ValueError(
        f"Cannot find formula design information on {type(model).__name__}; "
        "refit the model with statsmodels.formula.api"
    )


def estimation_frame(model) -> Optional[pd.DataFrame]:
    """Rows of the formula data the fit actually used (missing rows dropped)."""
    frame = getattr(model.data, "frame", None)
    if frame is None:
        return None
    rows = getattr(model.data, "row_labels", None)
    if rows is None:
        return frame
    return frame.loc[rows]


class StatsmodelsAdapter(BaseAdapter):
    """
    Wrap a fitted statsmodels results object.

    Supports any model whose predict(params, exog) returns the response
    mean: OLS/WLS, GLM, Logit, Probit, Poisson, ...

    Residual degrees of freedom are exposed only when the results use
    t-based inference (results.use_t), so 'auto' picks the same reference
    distribution statsmodels itself reports.

    Without explicit data, margins are computed over the rows of the fit;
    rows statsmodels dropped for missing values are left out.

    Examples:
        import statsmodels.formula.api as smf
        fit = smf.logit("y ~ x1 + I(x1**2) + C(g)", data=df).fit(disp=0)
        adapter = StatsmodelsAdapter(fit)
    """

    def __init__(self, results, data: Optional[pd.DataFrame] = None):
        model = results.model
        if getattr(model, "formula", None) is None:
            raise ValueError(
                "StatsmodelsAdapter requires a model fitted with the formula API "
                "(statsmodels.formula.api)"
            )

        self.results = results
        self._model = model
        self._design_spec = design_spec(model)
        self.formula = model.formula

        frame = estimation_frame(model) if data is None else pd.DataFrame(data)
        if frame is None:
            raise ValueError("Model carries no formula data; pass data explicitly")
        names = list(self._design_spec.column_names)
        coefs = coerce_coefficients(pd.Series(np.asarray(results.params), index=names))
        covariance = np.asarray(results.cov_params(), dtype=np.float64)
        df_resid = float(results.df_resid) if getattr(results, "use_t", False) else None

        super().__init__(coefs, covariance, formula_schema(self.formula, frame), df_resid, frame)

    def design_matrix(self, data: pd.DataFrame) -> np.ndarray:
        if isinstance(self._design_spec, DesignInfo):
            (exog,) = build_design_matrices(
                [self._design_spec], data, NA_action="raise", return_type="dataframe"
            )
        else:
            exog = self._design_spec.get_model_matrix(data, na_action="raise")
        return np.asarray(exog, dtype=np.float64)

    def predict(
        self,
        data: pd.DataFrame,
        coefficients: np.ndarray,
        scale: str = "response",
    ) -> np.ndarray:
        exog = self.design_matrix(data)
        params = np.asarray(coefficients, dtype=np.float64)
        if scale == "link":
            return exog @ params
        return np.asarray(self._model.predict(params, exog=exog), dtype=np.float64)
