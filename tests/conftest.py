"""Pytest configuration and fixtures for pymargins tests."""

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def seed():
    """Random seed for reproducibility."""
    return 42


@pytest.fixture
def linear_data(seed):
    """Covariates for y = 2 + 3 * x1 - 1 * x2 (no noise)."""
    np.random.seed(seed)
    n = 200
    return pd.DataFrame({
        "x1": np.random.randn(n),
        "x2": np.random.randn(n),
    })


@pytest.fixture
def linear_coefs():
    """True coefficients [intercept, x1, x2]."""
    return np.array([2.0, 3.0, -1.0])


@pytest.fixture
def linear_cov():
    """A non-trivial coefficient covariance."""
    return np.array([
        [0.04, 0.01, 0.00],
        [0.01, 0.09, 0.02],
        [0.00, 0.02, 0.16],
    ])


def linear_predict(data, b):
    return b[0] + b[1] * data["x1"].to_numpy() + b[2] * data["x2"].to_numpy()


@pytest.fixture
def linear_adapter(linear_data, linear_coefs, linear_cov):
    """CallableAdapter for the linear model with covariance linear_cov."""
    from pymargins import CallableAdapter

    return CallableAdapter(
        linear_predict,
        coefficients=linear_coefs,
        covariance=linear_cov,
        data=linear_data,
    )


@pytest.fixture
def interaction_adapter(linear_data):
    """y = 1 + 2 * x1 + 0.5 * x1 * x2, so dy/dx1 = 2 + 0.5 * x2."""
    from pymargins import CallableAdapter

    def predict(data, b):
        x1 = data["x1"].to_numpy()
        x2 = data["x2"].to_numpy()
        return b[0] + b[1] * x1 + b[2] * x1 * x2

    return CallableAdapter(
        predict,
        coefficients=np.array([1.0, 2.0, 0.5]),
        covariance=np.eye(3) * 0.01,
        data=linear_data,
    )


@pytest.fixture
def binary_data(seed):
    """Binary indicator d in {0, 1} plus a continuous covariate."""
    np.random.seed(seed)
    n = 100
    return pd.DataFrame({
        "d": np.random.binomial(1, 0.4, n),
        "x": np.random.randn(n),
    })


@pytest.fixture
def factor_data(seed):
    """Three-level factor g plus a continuous covariate."""
    np.random.seed(seed)
    n = 150
    return pd.DataFrame({
        "g": np.random.choice(["a", "b", "c"], n),
        "x": np.random.randn(n),
    })


@pytest.fixture
def logit_dgp(seed):
    """Generate logit DGP: P(y=1) = expit(-0.5 + 1.0 * x1 - 0.7 * x2)."""
    np.random.seed(seed)
    n = 1000
    x1 = np.random.randn(n)
    x2 = np.random.randn(n)
    eta = -0.5 + 1.0 * x1 - 0.7 * x2
    y = np.random.binomial(1, 1 / (1 + np.exp(-eta)))
    return pd.DataFrame({"y": y, "x1": x1, "x2": x2})


@pytest.fixture
def ols_dgp(seed):
    """Generate linear DGP with a factor: y = 1 + 2 x1 + g effect + noise."""
    np.random.seed(seed)
    n = 300
    g = np.random.choice(["a", "b", "c"], n)
    x1 = np.random.randn(n)
    shift = pd.Series(g).map({"a": 0.0, "b": 1.0, "c": -0.5}).to_numpy()
    y = 1 + 2 * x1 + shift + np.random.randn(n) * 0.5
    return pd.DataFrame({"y": y, "x1": x1, "g": g})
