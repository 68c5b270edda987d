"""
Configuration for marginal effects computation.

A run is fully described by its MarginsConfig; there are no module-level
tolerances.
"""

from dataclasses import dataclass, asdict, replace as dc_replace
from typing import Literal, Optional, Sequence, Tuple, Union

# Recognized option values
VCE_METHODS = ("delta", "simulation", "none")
DISTRIBUTIONS = ("auto", "normal", "t")
SCALES = ("response", "link")
CHANGE_TYPES = ("dydx", "minmax", "iqr", "sd")

ChangeSpec = Union[str, Tuple[float, float]]


@dataclass(frozen=True)
class MarginsConfig:
    """
    Options controlling effect estimation and inference.

    Continuous-variable steps and coefficient steps are independent: the
    first drives the marginal effects themselves, the second only the
    delta-method Jacobian.
    """

    eps: float = 1e-7
    """Continuous-variable step: h = sqrt(eps) * max(max|x|, 1)."""

    coef_eps: float = 1e-7
    """Coefficient step for the Jacobian: h_j = sqrt(coef_eps) * max(|b_j|, 1)."""

    level: float = 0.95
    """Confidence level for intervals."""

    distribution: Literal["auto", "normal", "t"] = "auto"
    """'auto' uses Student-t when the model supplies residual df, else normal."""

    vce: Literal["delta", "simulation", "none"] = "delta"
    """Variance method; 'none' returns point estimates only."""

    iterations: int = 50
    """Number of coefficient draws for vce='simulation'."""

    scale: Literal["response", "link"] = "response"
    """Prediction scale passed to the adapter."""

    change: ChangeSpec = "dydx"
    """Continuous effect: 'dydx', 'minmax', 'iqr', 'sd' or an explicit (x0, x1)."""

    unit_ses: bool = False
    """Also compute delta-method variances of the unit-level effects."""

    n_jobs: int = 1
    """Worker count; 1 runs sequentially, -1 uses all cores."""

    verbose: bool = False
    """Print progress and show progress bars."""

    random_state: Optional[int] = None
    """Seed for vce='simulation'."""

    def __post_init__(self):
        if not self.eps > 0:
            raise ValueError(f"eps must be positive, got {self.eps}")
        if not self.coef_eps > 0:
            raise ValueError(f"coef_eps must be positive, got {self.coef_eps}")
        if not 0 < self.level < 1:
            raise ValueError(f"level must be in (0, 1), got {self.level}")
        if self.distribution not in DISTRIBUTIONS:
            raise ValueError(
                f"Unknown distribution: {self.distribution}. Available: {list(DISTRIBUTIONS)}"
            )
        if self.vce not in VCE_METHODS:
            raise ValueError(f"Unknown vce: {self.vce}. Available: {list(VCE_METHODS)}")
        if self.scale not in SCALES:
            raise ValueError(f"Unknown scale: {self.scale}. Available: {list(SCALES)}")
        if self.iterations < 2:
            raise ValueError(f"iterations must be at least 2, got {self.iterations}")
        if self.n_jobs == 0:
            raise ValueError("n_jobs must be non-zero")
        if self.unit_ses and self.vce != "delta":
            raise ValueError("unit_ses requires vce='delta'")
        _check_change(self.change)

    def replace(self, **overrides) -> "MarginsConfig":
        """Return a copy with the given fields replaced."""
        return dc_replace(self, **overrides)

    def to_dict(self) -> dict:
        return asdict(self)


def _check_change(change) -> None:
    if isinstance(change, str):
        if change not in CHANGE_TYPES:
            raise ValueError(f"Unknown change: {change}. Available: {list(CHANGE_TYPES)}")
        return
    if not isinstance(change, Sequence) or len(change) != 2:
        raise ValueError(
            "change must be one of "
            f"{list(CHANGE_TYPES)} or a two-element sequence (x0, x1), got {change!r}"
        )
    if change[0] == change[1]:
        raise ValueError(f"change endpoints must differ, got {change!r}")

