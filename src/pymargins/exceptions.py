"""
Error taxonomy for marginal effects computation.

- InvalidSpecification: malformed request (unknown variable, value outside
  a level set). Raised before any prediction work.
- PredictionFailure: the prediction adapter raised or returned non-finite
  values at a perturbed input.
- ReferenceDistributionError: requested reference distribution cannot be
  honoured by the fitted model.
- IllConditionedVariance: warning category for non-positive AME variances.
"""

from typing import Optional


class MarginsError(Exception):
    """Base class for all pymargins errors."""


class InvalidSpecification(MarginsError, ValueError):
    """Malformed variable selection, counterfactual grid or subset."""


class ReferenceDistributionError(MarginsError, ValueError):
    """Reference distribution incompatible with the fitted model."""


class PredictionFailure(MarginsError, RuntimeError):
    """
    Prediction adapter failed at a perturbed input.

    Attributes:
        reason: Failure message without the context details
        variable: Variable being perturbed
        observation: Row position of the first offending prediction, or None
            when the adapter raised before returning anything
        direction: Which evaluation failed ("plus", "minus", "low", "high", ...),
            prefixed with the coefficient step when the failure happened
            inside the Jacobian (e.g. "b1+h: plus")
    """

    def __init__(
        self,
        message: str,
        variable: Optional[str] = None,
        observation: Optional[int] = None,
        direction: Optional[str] = None,
    ):
        self.reason = message
        self.variable = variable
        self.observation = observation
        self.direction = direction
        details = []
        if variable is not None:
            details.append(f"variable={variable!r}")
        if observation is not None:
            details.append(f"observation={observation}")
        if direction is not None:
            details.append(f"direction={direction!r}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


class IllConditionedVariance(UserWarning):
    """AME variance is zero or negative; finite-difference steps may be unstable."""


__all__ = [
    "MarginsError",
    "InvalidSpecification",
    "ReferenceDistributionError",
    "PredictionFailure",
    "IllConditionedVariance",
]
