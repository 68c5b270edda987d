"""
Variance estimation for average marginal effects.

Delta method:
    J_j = (AME(b + h_j e_j) - AME(b - h_j e_j)) / (2 h_j)
    V_AME = J V_b Jᵗ

Simulation:
    b⁽ʳ⁾ ~ N(b, V_b),  V_AME = Cov_r[AME(b⁽ʳ⁾)]

Inference:
    SE = √diag(V_AME),  z = AME / SE,  CI = AME ± q · SE
"""

import warnings
from typing import Callable, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from ..exceptions import IllConditionedVariance, PredictionFailure, ReferenceDistributionError
from .differences import setstep
from .parallel import run_tasks


def coefficient_steps(coefficients: np.ndarray, eps: float = 1e-7) -> np.ndarray:
    """Per-coefficient step h_j = sqrt(eps) * max(|b_j|, 1)."""
    return np.array([setstep(b, eps) for b in np.asarray(coefficients, dtype=np.float64)])


def numeric_jacobian(
    fn: Callable[[np.ndarray], np.ndarray],
    coefficients: np.ndarray,
    eps: float = 1e-7,
    n_jobs: int = 1,
    verbose: bool = False,
    names: Optional[Sequence[str]] = None,
) -> np.ndarray:
    """
    Central-difference Jacobian of fn w.r.t. the coefficients.

    Args:
        fn: Map from (k,) coefficients to (m,) outputs
        coefficients: (k,) point of evaluation
        eps: Base tolerance for the coefficient steps
        n_jobs: Worker count for the k independent columns
        verbose: Show progress
        names: Coefficient labels used in error context (positions if None)

    Returns:
        (m, k) Jacobian

    Raises:
        PredictionFailure: fn failed at a perturbed coefficient vector; the
            direction names the coefficient and the sign of the step
    """
    b = np.asarray(coefficients, dtype=np.float64)
    steps = coefficient_steps(b, eps)
    labels = [str(n) for n in names] if names is not None else [f"b[{j}]" for j in range(len(b))]

    def evaluate(j: int, sign: int) -> np.ndarray:
        perturbed = b.copy()
        perturbed[j] += sign * steps[j]
        try:
            return np.asarray(fn(perturbed), dtype=np.float64)
        except PredictionFailure as e:
            step = f"{labels[j]}{'+' if sign > 0 else '-'}h"
            direction = step if e.direction is None else f"{step}: {e.direction}"
            raise PredictionFailure(
                e.reason, variable=e.variable, observation=e.observation, direction=direction
            ) from e

    def column(j: int) -> np.ndarray:
        f0 = evaluate(j, -1)
        f1 = evaluate(j, 1)
        return (f1 - f0) / ((b[j] + steps[j]) - (b[j] - steps[j]))

    columns = run_tasks(column, range(b.shape[0]), n_jobs, "Jacobian", verbose)
    return np.column_stack(columns)


def delta_method_vcov(jacobian: np.ndarray, covariance: np.ndarray) -> np.ndarray:
    """
    Covariance of a function of the coefficients: J V Jᵗ.

    Args:
        jacobian: (m, k) Jacobian
        covariance: (k, k) coefficient covariance

    Returns:
        (m, m) covariance
    """
    return jacobian @ covariance @ jacobian.T


def unit_variances(jacobian: np.ndarray, covariance: np.ndarray) -> np.ndarray:
    """
    Row-wise delta-method variances: diag(J V Jᵗ) without forming the n x n matrix.

    Args:
        jacobian: (n, k) Jacobian of unit-level effects
        covariance: (k, k) coefficient covariance

    Returns:
        (n,) variances
    """
    return np.einsum("ij,jk,ik->i", jacobian, covariance, jacobian)


def simulation_vcov(
    fn: Callable[[np.ndarray], np.ndarray],
    coefficients: np.ndarray,
    covariance: np.ndarray,
    iterations: int = 50,
    random_state: Optional[int] = None,
    n_jobs: int = 1,
    verbose: bool = False,
) -> np.ndarray:
    """
    Covariance of fn(b) under b ~ N(coefficients, covariance).

    Args:
        fn: Map from (k,) coefficients to (m,) outputs
        coefficients: (k,) mean of the draws
        covariance: (k, k) covariance of the draws
        iterations: Number of draws
        random_state: Seed
        n_jobs: Worker count
        verbose: Show progress

    Returns:
        (m, m) empirical covariance of the outputs
    """
    rng = np.random.default_rng(random_state)
    draws = rng.multivariate_normal(
        np.asarray(coefficients, dtype=np.float64), covariance, size=iterations,
        method="eigh",
    )
    outputs = run_tasks(fn, list(draws), n_jobs, "Simulation", verbose)
    return np.atleast_2d(np.cov(np.vstack(outputs), rowvar=False))


def resolve_distribution(distribution: str, df_resid: Optional[float]) -> Optional[float]:
    """
    Degrees of freedom for the reference distribution (None = normal).

    Raises:
        ReferenceDistributionError: "t" requested without residual df
    """
    if distribution == "normal":
        return None
    if distribution == "t":
        if df_resid is None:
            raise ReferenceDistributionError(
                "distribution='t' requires residual degrees of freedom, "
                "but the model supplies none (df_resid is None). "
                "Use distribution='normal' or an adapter that sets df_resid."
            )
        return _check_df(df_resid)
    if distribution == "auto":
        return None if df_resid is None else _check_df(df_resid)
    raise ValueError(f"Unknown distribution: {distribution}")


def _check_df(df_resid: float) -> float:
    df = float(df_resid)
    if not df > 0:
        raise ReferenceDistributionError(f"Residual degrees of freedom must be positive, got {df}")
    return df


def critical_value(level: float, df: Optional[float] = None) -> float:
    """Two-sided critical value for the given confidence level."""
    q = 1 - (1 - level) / 2
    if df is None:
        return float(stats.norm.ppf(q))
    return float(stats.t.ppf(q, df=df))


def inference_table(
    estimates: pd.Series,
    vcov: np.ndarray,
    level: float = 0.95,
    df: Optional[float] = None,
) -> pd.DataFrame:
    """
    Standard errors, test statistics, p-values and confidence intervals.

    Non-positive variances are reported unchanged (SE is 0 for a zero
    variance and NaN for a negative one; statistic and p-value are NaN),
    and an IllConditionedVariance warning names the affected terms.

    Args:
        estimates: Point estimates indexed by term
        vcov: (m, m) covariance of the estimates
        level: Confidence level
        df: Degrees of freedom (None = normal reference)

    Returns:
        DataFrame with columns estimate, variance, std_error, statistic,
        p_value, ci_lower, ci_upper
    """
    est = estimates.to_numpy(dtype=np.float64)
    variance = np.diag(vcov).astype(np.float64)

    flagged = ~(variance > 0)
    if flagged.any():
        terms = [str(t) for t in np.asarray(estimates.index)[flagged]]
        warnings.warn(
            f"Non-positive AME variance for {terms}. Standard errors may reflect "
            "finite-difference noise; consider a different coef_eps.",
            IllConditionedVariance,
            stacklevel=2,
        )

    with np.errstate(invalid="ignore", divide="ignore"):
        se = np.sqrt(variance)
        statistic = np.where(se > 0, est / se, np.nan)

    if df is None:
        p_value = 2 * stats.norm.sf(np.abs(statistic))
    else:
        p_value = 2 * stats.t.sf(np.abs(statistic), df=df)

    q = critical_value(level, df)
    return pd.DataFrame(
        {
            "estimate": est,
            "variance": variance,
            "std_error": se,
            "statistic": statistic,
            "p_value": p_value,
            "ci_lower": est - q * se,
            "ci_upper": est + q * se,
        },
        index=estimates.index,
    )

