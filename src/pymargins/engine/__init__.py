"""
Numerical core: counterfactual grids, finite differences, aggregation and
variance estimation.

The orchestration entry points (margins, marginal_effects) live in
engine.margins and are re-exported from the package root.
"""

from .grid import GridPoint, build_grid, normalize_at, subset_mask, validate_at
from .differences import setstep, checked_predict, dydx, unit_effects
from .aggregate import average_effects, check_weights, stack_effects
from .parallel import run_tasks
from .variance import (
    coefficient_steps,
    numeric_jacobian,
    delta_method_vcov,
    unit_variances,
    simulation_vcov,
    resolve_distribution,
    critical_value,
    inference_table,
)

__all__ = [
    # Grid
    "GridPoint",
    "build_grid",
    "normalize_at",
    "subset_mask",
    "validate_at",
    # Finite differences
    "setstep",
    "checked_predict",
    "dydx",
    "unit_effects",
    # Aggregation
    "average_effects",
    "check_weights",
    "stack_effects",
    # Execution
    "run_tasks",
    # Variance
    "coefficient_steps",
    "numeric_jacobian",
    "delta_method_vcov",
    "unit_variances",
    "simulation_vcov",
    "resolve_distribution",
    "critical_value",
    "inference_table",
]
