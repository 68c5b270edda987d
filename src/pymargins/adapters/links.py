"""Inverse link functions for linear-predictor models."""

from typing import Callable, Dict

import numpy as np
from scipy import special, stats


def _cloglog_inverse(eta: np.ndarray) -> np.ndarray:
    return -np.expm1(-np.exp(eta))


INVERSE_LINKS: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "identity": lambda eta: eta,
    "logit": special.expit,
    "probit": stats.norm.cdf,
    "log": np.exp,
    "cloglog": _cloglog_inverse,
    "inverse": lambda eta: 1.0 / eta,
}


def get_inverse_link(name: str) -> Callable[[np.ndarray], np.ndarray]:
    """
    Get inverse link function by name.

    Args:
        name: Link name

    Returns:
        Function mapping the linear predictor to the response scale
    """
    if name not in INVERSE_LINKS:
        raise ValueError(f"Unknown link: {name}. Available: {list(INVERSE_LINKS.keys())}")
    return INVERSE_LINKS[name]
