"""
pymargins: Numeric Average Marginal Effects with Delta-Method Inference

Marginal effects for any model that can predict from data and a coefficient
vector. Derivatives are taken by finite differences on the data, standard
errors by finite differences on the coefficients, so no model-specific
derivative code is needed.

Usage:
    # Any prediction function
    from pymargins import CallableAdapter, margins

    def predict(data, b):
        return b[0] + b[1] * data["x1"] + b[2] * data["x2"] ** 2

    adapter = CallableAdapter(predict, coefficients=b_hat, covariance=V, data=df)
    result = margins(adapter)
    print(result.summary())

    # Formula-fitted statsmodels results
    import statsmodels.formula.api as smf
    fit = smf.logit("y ~ x1 + C(g)", data=df).fit()
    result = margins(fit, at={"g": ["a", "b"]})

    # Access results
    ame = result.get("x1")
    print(f"AME: {ame.estimate:.4f} +/- {ame.std_error:.4f}")
    print(f"95% CI: [{ame.ci_lower:.4f}, {ame.ci_upper:.4f}]")
"""

from .config import MarginsConfig
from .exceptions import (
    MarginsError,
    InvalidSpecification,
    PredictionFailure,
    ReferenceDistributionError,
    IllConditionedVariance,
)
from .schema import VariableDescriptor, VariableKind, infer_schema
from .adapters import (
    PredictionAdapter,
    BaseAdapter,
    CallableAdapter,
    FormulaAdapter,
    StatsmodelsAdapter,
    TorchAdapter,
    as_adapter,
)
from .results import AMEResult, MarginsResult
from .engine.margins import margins, marginal_effects
from .logging import create_report, save_report

__version__ = "0.1.0"

__all__ = [
    # Main API
    "margins",
    "marginal_effects",
    "MarginsConfig",
    # Results
    "AMEResult",
    "MarginsResult",
    # Variables
    "VariableDescriptor",
    "VariableKind",
    "infer_schema",
    # Adapters
    "PredictionAdapter",
    "BaseAdapter",
    "CallableAdapter",
    "FormulaAdapter",
    "StatsmodelsAdapter",
    "TorchAdapter",
    "as_adapter",
    # Errors
    "MarginsError",
    "InvalidSpecification",
    "PredictionFailure",
    "ReferenceDistributionError",
    "IllConditionedVariance",
    # Reports
    "create_report",
    "save_report",
]
