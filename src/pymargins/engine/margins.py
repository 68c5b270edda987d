"""
Marginal effects orchestration.

The pipeline, closed over fixed data and evaluated at any coefficient
vector b:

    grid points -> unit-level effects (per variable) -> AMEs

Point estimates evaluate it once at b̂. The delta method re-evaluates it at
b̂ ± h_j e_j for every coefficient (2k extra passes); vce='none' skips that.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .._typing import AtSpec, DataLike, SubsetLike
from ..adapters import PredictionAdapter, as_adapter
from ..config import MarginsConfig
from ..exceptions import InvalidSpecification
from ..results import AMEResult, MarginsResult
from ..schema import VariableDescriptor
from .aggregate import average_effects, check_weights, stack_effects
from .differences import unit_effects
from .grid import GridPoint, build_grid, subset_mask
from .parallel import run_tasks
from .variance import (
    delta_method_vcov,
    inference_table,
    numeric_jacobian,
    resolve_distribution,
    simulation_vcov,
    unit_variances,
)


@dataclass
class MarginsPlan:
    """Validated inputs of one margins() call."""

    adapter: PredictionAdapter
    points: List[GridPoint]
    variables: List[VariableDescriptor]
    weights: Optional[np.ndarray]
    config: MarginsConfig

    @property
    def effect_names(self) -> List[str]:
        return [name for d in self.variables for name in d.effect_names()]

    @property
    def n_obs(self) -> int:
        return self.points[0].n_obs

    def unit_matrices(
        self,
        coefficients: np.ndarray,
        n_jobs: int = 1,
        verbose: bool = False,
    ) -> List[pd.DataFrame]:
        """
        Unit-level effect matrix of every grid point at the given coefficients.

        Returns:
            One (n_obs, n_effects) DataFrame per grid point
        """
        cfg = self.config
        tasks = [(g, d) for g in range(len(self.points)) for d in range(len(self.variables))]

        def run(task) -> pd.DataFrame:
            g, d = task
            return unit_effects(
                self.adapter,
                self.points[g].data,
                coefficients,
                self.variables[d],
                scale=cfg.scale,
                eps=cfg.eps,
                change=cfg.change,
            )

        frames = run_tasks(run, tasks, n_jobs, "Effects", verbose)

        n_vars = len(self.variables)
        return [
            pd.concat(frames[g * n_vars:(g + 1) * n_vars], axis=1)
            for g in range(len(self.points))
        ]

    def averages(self, matrices: Sequence[pd.DataFrame]) -> np.ndarray:
        """AMEs of every grid point, concatenated in grid order."""
        return np.concatenate(
            [average_effects(m, self.weights).to_numpy() for m in matrices]
        )

    def ame_of(self, coefficients: np.ndarray) -> np.ndarray:
        """AME vector at arbitrary coefficients."""
        return self.averages(self.unit_matrices(coefficients))

    def ame_and_units_of(self, coefficients: np.ndarray) -> np.ndarray:
        """AME vector followed by every unit-level effect (row-major per grid point)."""
        matrices = self.unit_matrices(coefficients)
        return np.concatenate(
            [self.averages(matrices)] + [m.to_numpy().ravel() for m in matrices]
        )


def resolve_variables(
    schema: Sequence[VariableDescriptor],
    data: pd.DataFrame,
    variables: Optional[Sequence[str]] = None,
) -> List[VariableDescriptor]:
    """
    Descriptors to compute effects for, in schema order unless named explicitly.

    Raises:
        InvalidSpecification: unknown variable, or a model variable absent from data
    """
    by_name = {d.name: d for d in schema}

    missing = [name for name in by_name if name not in data.columns]
    if missing:
        raise InvalidSpecification(f"Model variables missing from data: {missing}")

    if variables is None:
        return list(schema)
    if isinstance(variables, str):
        variables = [variables]

    unknown = [v for v in variables if v not in by_name]
    if unknown:
        raise InvalidSpecification(
            f"Unknown variables: {unknown}. Available: {list(by_name)}"
        )
    if not variables:
        raise InvalidSpecification("No variables selected")
    return [by_name[v] for v in variables]


def plan_margins(
    model,
    data: Optional[DataLike] = None,
    variables: Optional[Sequence[str]] = None,
    at: Optional[AtSpec] = None,
    subset: Optional[SubsetLike] = None,
    weights=None,
    config: Optional[MarginsConfig] = None,
) -> MarginsPlan:
    """
    Validate a margins request without running any predictions.

    Raises:
        InvalidSpecification: bad variables, "at" spec or subset
    """
    config = config or MarginsConfig()
    adapter = as_adapter(model)

    if data is None:
        data = getattr(adapter, "data", None)
        if data is None:
            raise ValueError("data is required: the adapter does not carry its own data")
    data = pd.DataFrame(data)

    schema = adapter.schema()
    descriptors = resolve_variables(schema, data, variables)

    mask = subset_mask(data, subset)
    points = list(build_grid(data, at, mask, schema))

    w = check_weights(weights, len(data))
    if w is not None and mask is not None:
        w = w[mask]
    if w is not None and not w.sum() > 0:
        raise InvalidSpecification("weights of the selected rows sum to zero")

    return MarginsPlan(
        adapter=adapter,
        points=points,
        variables=descriptors,
        weights=w,
        config=config,
    )


def compute_margins(plan: MarginsPlan) -> MarginsResult:
    """
    Run a validated plan: point estimates, then variance unless vce='none'.

    Args:
        plan: Output of plan_margins()

    Returns:
        MarginsResult
    """
    cfg = plan.config
    adapter = plan.adapter
    verbose = cfg.verbose

    # Fail fast on t without df before any prediction work
    df = resolve_distribution(cfg.distribution, adapter.df_resid) if cfg.vce != "none" else None

    coefs = adapter.coefficients()
    b = coefs.to_numpy(dtype=np.float64)
    timing: Dict[str, float] = {}

    if verbose:
        print(
            f"Margins: {len(plan.variables)} variables x {len(plan.points)} grid points, "
            f"{plan.n_obs} observations, {len(b)} coefficients"
        )

    start = time.time()
    matrices = plan.unit_matrices(b, cfg.n_jobs, verbose)
    estimates = plan.averages(matrices)
    timing["effects"] = time.time() - start

    tags = [p.tag for p in plan.points]
    names = plan.effect_names
    record_tags = [tag for tag in tags for _ in names]
    record_terms = [name for _ in tags for name in names]

    vcov = None
    unit_var_frame = None
    table = None

    if cfg.vce != "none":
        covariance = adapter.covariance()
        start = time.time()

        if cfg.vce == "delta":
            if verbose:
                print(f"Delta method: Jacobian over {len(b)} coefficients")
            fn = plan.ame_and_units_of if cfg.unit_ses else plan.ame_of
            jacobian = numeric_jacobian(
                fn, b, cfg.coef_eps, cfg.n_jobs, verbose, names=list(coefs.index)
            )
            m = len(estimates)
            vcov = delta_method_vcov(jacobian[:m], covariance)
            if cfg.unit_ses:
                unit_var_frame = _unit_variance_frame(
                    jacobian[m:], covariance, matrices, tags
                )
        else:
            if verbose:
                print(f"Simulation: {cfg.iterations} coefficient draws")
            vcov = simulation_vcov(
                plan.ame_of, b, covariance, cfg.iterations, cfg.random_state,
                cfg.n_jobs, verbose,
            )

        timing["variance"] = time.time() - start
        labels = [
            f"{term} @ {tag}" if tag else term for term, tag in zip(record_terms, record_tags)
        ]
        table = inference_table(pd.Series(estimates, index=labels), vcov, cfg.level, df)

    results = []
    for i, (term, tag) in enumerate(zip(record_terms, record_tags)):
        if table is None:
            results.append(AMEResult(term=term, estimate=float(estimates[i]), at=tag))
        else:
            row = table.iloc[i]
            results.append(
                AMEResult(
                    term=term,
                    estimate=float(estimates[i]),
                    at=tag,
                    variance=float(row["variance"]),
                    std_error=float(row["std_error"]),
                    statistic=float(row["statistic"]),
                    p_value=float(row["p_value"]),
                    ci_lower=float(row["ci_lower"]),
                    ci_upper=float(row["ci_upper"]),
                )
            )

    return MarginsResult(
        results=results,
        vcov=vcov,
        unit_effects=stack_effects(matrices, tags),
        config=cfg,
        n_obs=plan.n_obs,
        df=df,
        unit_variances=unit_var_frame,
        coefficients=coefs,
        timing=timing,
    )


def _unit_variance_frame(
    unit_jacobian: np.ndarray,
    covariance: np.ndarray,
    matrices: Sequence[pd.DataFrame],
    tags: Sequence[Optional[Dict[str, Any]]],
) -> pd.DataFrame:
    variances = unit_variances(unit_jacobian, covariance)
    frames = []
    offset = 0
    for m in matrices:
        size = m.size
        block = variances[offset:offset + size].reshape(m.shape)
        frames.append(pd.DataFrame(block, index=m.index, columns=m.columns))
        offset += size
    return stack_effects(frames, tags)


def margins(
    model,
    data: Optional[DataLike] = None,
    *,
    variables: Optional[Sequence[str]] = None,
    at: Optional[AtSpec] = None,
    subset: Optional[SubsetLike] = None,
    weights=None,
    config: Optional[MarginsConfig] = None,
    **overrides,
) -> MarginsResult:
    """
    Average marginal effects with delta-method (or simulation) inference.

    Args:
        model: PredictionAdapter, or a formula-fitted statsmodels results object
        data: Observations; defaults to the adapter's own data
        variables: Variables to compute effects for (default: all in the schema)
        at: Counterfactual grid {variable: value(s)}; one set of AMEs per
            combination
        subset: Boolean mask or predicate selecting rows
        weights: Observation weights for the averages
        config: MarginsConfig; keyword overrides (eps, vce, level, ...) are
            applied on top

    Returns:
        MarginsResult

    Raises:
        InvalidSpecification: bad variables, "at" spec or subset
        ReferenceDistributionError: distribution='t' without residual df
        PredictionFailure: the adapter failed at a perturbed input

    Examples:
        result = margins(adapter, df)
        print(result.summary())

        # AMEs at x2 = 0 and x2 = 1, point estimates only
        result = margins(adapter, df, at={"x2": [0, 1]}, vce="none")
    """
    config = config or MarginsConfig()
    if overrides:
        config = config.replace(**overrides)
    plan = plan_margins(model, data, variables, at, subset, weights, config)
    return compute_margins(plan)


def marginal_effects(
    model,
    data: Optional[DataLike] = None,
    *,
    variables: Optional[Sequence[str]] = None,
    at: Optional[AtSpec] = None,
    subset: Optional[SubsetLike] = None,
    config: Optional[MarginsConfig] = None,
    **overrides,
) -> pd.DataFrame:
    """
    Unit-level marginal effects (no averaging, no variance).

    Returns:
        DataFrame with one row per observation per grid point and one column
        per effect; grid values appear as at_<name> columns
    """
    config = config or MarginsConfig()
    if overrides:
        config = config.replace(**overrides)
    plan = plan_margins(model, data, variables, at, subset, None, config)
    b = plan.adapter.coefficients().to_numpy(dtype=np.float64)
    matrices = plan.unit_matrices(b, config.n_jobs, config.verbose)
    return stack_effects(matrices, [p.tag for p in plan.points])
