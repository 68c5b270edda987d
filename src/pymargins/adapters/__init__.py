"""
Prediction adapters: one implementation per supported model family.

New model families are supported by implementing PredictionAdapter,
not by extending the engine.
"""

from .base import (
    PredictionAdapter,
    BaseAdapter,
    CallableAdapter,
    coerce_coefficients,
    coerce_covariance,
)
from .links import INVERSE_LINKS, get_inverse_link
from .formula import FormulaAdapter
from .statsmodels import StatsmodelsAdapter
from .torch import TorchAdapter


def as_adapter(model) -> PredictionAdapter:
    """
    Coerce a model object to a PredictionAdapter.

    Args:
        model: An adapter, or a statsmodels results object fitted with a formula

    Returns:
        PredictionAdapter
    """
    if isinstance(model, PredictionAdapter):
        return model
    if hasattr(model, "model") and hasattr(model, "params") and hasattr(model, "cov_params"):
        return StatsmodelsAdapter(model)
    raise TypeError(
        f"Cannot compute margins for {type(model).__name__}. "
        "Pass a PredictionAdapter (e.g. CallableAdapter, FormulaAdapter) "
        "or a statsmodels results object."
    )


__all__ = [
    # Protocol and base classes
    "PredictionAdapter",
    "BaseAdapter",
    "CallableAdapter",
    "coerce_coefficients",
    "coerce_covariance",
    # Built-in adapters
    "FormulaAdapter",
    "StatsmodelsAdapter",
    "TorchAdapter",
    # Links
    "INVERSE_LINKS",
    "get_inverse_link",
    "as_adapter",
]
