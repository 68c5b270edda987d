"""Tests for delta-method and simulation variance estimation."""

import numpy as np
import pandas as pd
import pytest
from scipy import stats


class TestNumericJacobian:
    """Central differences over the coefficients."""

    def test_linear_map(self):
        from pymargins.engine import numeric_jacobian

        A = np.array([[1.0, 2.0, 0.0], [0.0, -1.0, 3.0]])
        J = numeric_jacobian(lambda b: A @ b, np.array([0.5, -2.0, 10.0]))

        assert J.shape == (2, 3)
        np.testing.assert_allclose(J, A, rtol=1e-7, atol=1e-9)

    def test_nonlinear(self):
        from pymargins.engine import numeric_jacobian

        b = np.array([1.2, 0.3])
        J = numeric_jacobian(lambda v: np.array([np.exp(v[0]) * v[1]]), b)

        expected = [[np.exp(1.2) * 0.3, np.exp(1.2)]]
        np.testing.assert_allclose(J, expected, rtol=1e-6)

    def test_parallel_columns(self):
        from pymargins.engine import numeric_jacobian

        fn = lambda b: np.array([b[0] ** 2, b[0] * b[1], np.sin(b[2])])
        b = np.array([0.4, 1.5, -0.7])

        np.testing.assert_allclose(
            numeric_jacobian(fn, b, n_jobs=1),
            numeric_jacobian(fn, b, n_jobs=2),
            rtol=0,
            atol=0,
        )


    def test_failure_names_coefficient(self):
        from pymargins import PredictionFailure
        from pymargins.engine import numeric_jacobian

        def fn(b):
            if b[1] < 2.0:
                raise PredictionFailure("Non-finite prediction", variable="x", observation=4, direction="plus")
            return b

        with pytest.raises(PredictionFailure) as err:
            numeric_jacobian(fn, np.array([1.0, 2.0]), names=["Intercept", "x"])

        assert err.value.direction == "x-h: plus"
        assert err.value.variable == "x"
        assert err.value.observation == 4
        assert err.value.reason == "Non-finite prediction"
        assert isinstance(err.value.__cause__, PredictionFailure)

    def test_failure_positional_label(self):
        from pymargins import PredictionFailure
        from pymargins.engine import numeric_jacobian

        def fn(b):
            if b[0] > 0.0:
                raise PredictionFailure("boom")
            return b

        with pytest.raises(PredictionFailure, match=r"b\[0\]\+h"):
            numeric_jacobian(fn, np.array([0.0]))


class TestDeltaMethod:
    """V = J Σ Jᵗ."""

    def test_zero_covariance(self):
        from pymargins.engine import delta_method_vcov

        J = np.random.RandomState(0).randn(4, 3)
        vcov = delta_method_vcov(J, np.zeros((3, 3)))
        np.testing.assert_array_equal(vcov, np.zeros((4, 4)))

    def test_quadratic_form(self):
        from pymargins.engine import delta_method_vcov

        J = np.array([[1.0, 2.0]])
        V = np.array([[1.0, 0.5], [0.5, 2.0]])
        # 1 + 2 * 2 * 0.5 + 4 * 2
        assert delta_method_vcov(J, V)[0, 0] == pytest.approx(11.0)

    def test_unit_variances_match_diagonal(self):
        from pymargins.engine import delta_method_vcov, unit_variances

        rng = np.random.RandomState(1)
        J = rng.randn(6, 3)
        L = rng.randn(3, 3)
        V = L @ L.T

        np.testing.assert_allclose(unit_variances(J, V), np.diag(delta_method_vcov(J, V)))


class TestSimulation:
    """Coefficient-draw covariance."""

    def test_identity_map_recovers_covariance(self):
        from pymargins.engine import simulation_vcov

        V = np.array([[0.5, 0.1], [0.1, 0.2]])
        vcov = simulation_vcov(lambda b: b, np.zeros(2), V, iterations=20000, random_state=0)

        np.testing.assert_allclose(vcov, V, atol=0.02)

    def test_reproducible(self):
        from pymargins.engine import simulation_vcov

        V = np.eye(2)
        a = simulation_vcov(lambda b: b * 2, np.zeros(2), V, iterations=50, random_state=3)
        b = simulation_vcov(lambda b: b * 2, np.zeros(2), V, iterations=50, random_state=3)
        np.testing.assert_array_equal(a, b)


class TestReferenceDistribution:
    """Resolving normal vs Student-t."""

    def test_auto(self):
        from pymargins.engine import resolve_distribution

        assert resolve_distribution("auto", None) is None
        assert resolve_distribution("auto", 40) == 40.0

    def test_normal_ignores_df(self):
        from pymargins.engine import resolve_distribution

        assert resolve_distribution("normal", 40) is None

    def test_t_without_df_fails(self):
        from pymargins import ReferenceDistributionError
        from pymargins.engine import resolve_distribution

        with pytest.raises(ReferenceDistributionError, match="degrees of freedom"):
            resolve_distribution("t", None)

    def test_non_positive_df(self):
        from pymargins import ReferenceDistributionError
        from pymargins.engine import resolve_distribution

        with pytest.raises(ReferenceDistributionError):
            resolve_distribution("t", 0)

    def test_critical_values(self):
        from pymargins.engine import critical_value

        assert critical_value(0.95) == pytest.approx(1.959964, rel=1e-6)
        assert critical_value(0.95, df=10) == pytest.approx(stats.t.ppf(0.975, 10))


class TestInferenceTable:
    """SE, statistics, p-values and intervals."""

    def test_normal(self):
        from pymargins.engine import inference_table

        est = pd.Series([1.0, -0.5], index=["a", "b"])
        vcov = np.array([[0.04, 0.0], [0.0, 0.25]])
        table = inference_table(est, vcov)

        np.testing.assert_allclose(table["std_error"], [0.2, 0.5])
        np.testing.assert_allclose(table["statistic"], [5.0, -1.0])
        np.testing.assert_allclose(table["p_value"], 2 * stats.norm.sf([5.0, 1.0]))
        np.testing.assert_allclose(table["ci_lower"], [1.0 - 1.959964 * 0.2, -0.5 - 1.959964 * 0.5], rtol=1e-6)
        assert list(table.index) == ["a", "b"]

    def test_student_t(self):
        from pymargins.engine import inference_table

        table = inference_table(pd.Series([1.0], index=["a"]), np.array([[0.25]]), level=0.9, df=12)

        q = stats.t.ppf(0.95, 12)
        assert table.loc["a", "p_value"] == pytest.approx(2 * stats.t.sf(2.0, 12))
        assert table.loc["a", "ci_upper"] == pytest.approx(1.0 + q * 0.5)

    def test_zero_variance_warns(self):
        from pymargins import IllConditionedVariance
        from pymargins.engine import inference_table

        with pytest.warns(IllConditionedVariance, match="'a'"):
            table = inference_table(pd.Series([3.0], index=["a"]), np.zeros((1, 1)))

        assert table.loc["a", "std_error"] == 0.0
        assert np.isnan(table.loc["a", "statistic"])
        assert np.isnan(table.loc["a", "p_value"])

    def test_negative_variance_reported(self):
        from pymargins import IllConditionedVariance
        from pymargins.engine import inference_table

        with pytest.warns(IllConditionedVariance):
            table = inference_table(pd.Series([3.0], index=["a"]), np.array([[-1e-12]]))

        assert table.loc["a", "variance"] == -1e-12
        assert np.isnan(table.loc["a", "std_error"])
