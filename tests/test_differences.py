"""Tests for finite-difference marginal effects."""

import numpy as np
import pandas as pd
import pytest


def _cubic_adapter(data):
    from pymargins import CallableAdapter

    return CallableAdapter(
        lambda d, b: b[0] * d["x"].to_numpy() ** 3,
        coefficients=[1.0],
        data=data,
    )


class TestSetstep:
    """Test suite for the continuous step rule."""

    def test_scales_with_magnitude(self):
        from pymargins.engine import setstep

        small = setstep(np.array([0.1, -0.5]), eps=1e-6)
        large = setstep(np.array([100.0, -250.0]), eps=1e-6)

        assert small == pytest.approx(1e-3, rel=1e-8)
        assert large == pytest.approx(250 * 1e-3, rel=1e-8)

    def test_step_is_representable(self):
        from pymargins.engine import setstep

        x = np.array([3.7])
        h = setstep(x)
        assert (3.7 + h) - 3.7 == h

    def test_constant_column(self):
        from pymargins.engine import setstep

        assert setstep(np.zeros(5)) > 0


class TestContinuousEffects:
    """Central differences on continuous variables."""

    @pytest.mark.parametrize("eps", [1e-4, 1e-6, 1e-7, 1e-9])
    def test_linear_derivative_exact(self, linear_adapter, linear_data, linear_coefs, eps):
        """dy/dx of a + b x equals b for every row, at any reasonable step."""
        from pymargins import VariableDescriptor
        from pymargins.engine import unit_effects

        effects = unit_effects(
            linear_adapter, linear_data, linear_coefs, VariableDescriptor("x1"), eps=eps
        )

        assert list(effects.columns) == ["x1"]
        assert effects.index.equals(linear_data.index)
        np.testing.assert_allclose(effects["x1"], 3.0, rtol=1e-6)

    def test_quadratic_convergence(self):
        """Halving the step divides the error by four."""
        from pymargins import VariableDescriptor
        from pymargins.engine import unit_effects

        np.random.seed(0)
        data = pd.DataFrame({"x": np.random.uniform(0.5, 2.0, 50)})
        adapter = _cubic_adapter(data)
        truth = 3 * data["x"].to_numpy() ** 2

        errors = []
        for h in [1e-2, 5e-3]:
            descriptor = VariableDescriptor("x", step=h)
            effects = unit_effects(adapter, data, np.array([1.0]), descriptor)
            errors.append(np.abs(effects["x"].to_numpy() - truth).mean())

        assert errors[0] / errors[1] == pytest.approx(4.0, rel=1e-3)

    def test_chain_rule_through_derived_terms(self, linear_data):
        """Squares are recomputed from the perturbed column."""
        from pymargins import CallableAdapter, VariableDescriptor
        from pymargins.engine import unit_effects

        adapter = CallableAdapter(
            lambda d, b: b[0] * d["x1"].to_numpy() + b[1] * d["x1"].to_numpy() ** 2,
            coefficients=[1.5, 0.25],
            data=linear_data,
        )
        effects = unit_effects(adapter, linear_data, np.array([1.5, 0.25]), VariableDescriptor("x1"))

        expected = 1.5 + 0.5 * linear_data["x1"].to_numpy()
        np.testing.assert_allclose(effects["x1"], expected, rtol=1e-6, atol=1e-8)

    def test_input_not_modified(self, linear_adapter, linear_data, linear_coefs):
        from pymargins import VariableDescriptor
        from pymargins.engine import unit_effects

        before = linear_data.copy()
        unit_effects(linear_adapter, linear_data, linear_coefs, VariableDescriptor("x1"))
        pd.testing.assert_frame_equal(linear_data, before)


class TestDiscreteChange:
    """Continuous variables with change other than 'dydx'."""

    @pytest.mark.parametrize(
        "change, width",
        [
            ("minmax", lambda x: x.max() - x.min()),
            ("iqr", lambda x: x.quantile(0.75) - x.quantile(0.25)),
            ("sd", lambda x: 2 * x.std()),
            ((0.0, 2.0), lambda x: 2.0),
        ],
    )
    def test_linear_change(self, linear_adapter, linear_data, linear_coefs, change, width):
        from pymargins import VariableDescriptor
        from pymargins.engine import unit_effects

        effects = unit_effects(
            linear_adapter, linear_data, linear_coefs, VariableDescriptor("x1"), change=change
        )

        expected = 3.0 * width(linear_data["x1"])
        np.testing.assert_allclose(effects["x1"], expected, rtol=1e-10)


class TestContrasts:
    """Binary and factor contrasts."""

    def test_binary_contrast(self, binary_data):
        """Prediction 5 at d=0 and 8 at d=1 gives an effect of 3 everywhere."""
        from pymargins import CallableAdapter, VariableDescriptor, VariableKind
        from pymargins.engine import unit_effects

        descriptor = VariableDescriptor("d", VariableKind.BINARY, levels=(0, 1))
        adapter = CallableAdapter(
            lambda d, b: np.where(d["d"].to_numpy() == 1, 8.0, 5.0),
            coefficients=[0.0],
            schema=[descriptor],
        )

        effects = unit_effects(adapter, binary_data, np.array([0.0]), descriptor)
        np.testing.assert_array_equal(effects["d"].to_numpy(), 3.0)

    def test_factor_contrasts(self, factor_data):
        from pymargins import CallableAdapter, VariableDescriptor, VariableKind
        from pymargins.engine import unit_effects

        shift = {"a": 0.0, "b": 1.5, "c": -2.0}
        descriptor = VariableDescriptor("g", VariableKind.FACTOR, levels=("a", "b", "c"))
        adapter = CallableAdapter(
            lambda d, b: d["g"].map(shift).to_numpy() + b[0] * d["x"].to_numpy(),
            coefficients=[0.7],
            schema=[descriptor, VariableDescriptor("x")],
        )

        effects = unit_effects(adapter, factor_data, np.array([0.7]), descriptor)

        assert list(effects.columns) == ["g[b]", "g[c]"]
        np.testing.assert_allclose(effects["g[b]"], 1.5)
        np.testing.assert_allclose(effects["g[c]"], -2.0)

    def test_categorical_dtype_preserved(self, factor_data):
        from pymargins import CallableAdapter, VariableDescriptor, VariableKind
        from pymargins.engine import unit_effects

        data = factor_data.assign(g=pd.Categorical(factor_data["g"], categories=["a", "b", "c"]))
        seen = []

        def predict(d, b):
            seen.append(d["g"].dtype)
            return d["g"].cat.codes.to_numpy().astype(float)

        descriptor = VariableDescriptor("g", VariableKind.FACTOR, levels=("a", "b", "c"))
        adapter = CallableAdapter(predict, coefficients=[0.0], schema=[descriptor])
        effects = unit_effects(adapter, data, np.array([0.0]), descriptor)

        assert all(isinstance(dtype, pd.CategoricalDtype) for dtype in seen)
        np.testing.assert_allclose(effects["g[c]"], 2.0)


class TestPredictionFailure:
    """Adapter failures surface as PredictionFailure."""

    def test_non_finite_prediction(self, linear_data):
        from pymargins import CallableAdapter, PredictionFailure, VariableDescriptor
        from pymargins.engine import unit_effects

        def predict(d, b):
            out = b[0] * d["x1"].to_numpy()
            out[3] = np.nan
            return out

        adapter = CallableAdapter(predict, coefficients=[1.0], data=linear_data)

        with pytest.raises(PredictionFailure) as err:
            unit_effects(adapter, linear_data, np.array([1.0]), VariableDescriptor("x1"))

        assert err.value.variable == "x1"
        assert err.value.observation == 3
        assert err.value.direction == "minus"

    def test_adapter_exception_is_chained(self, linear_data):
        from pymargins import CallableAdapter, PredictionFailure, VariableDescriptor
        from pymargins.engine import unit_effects

        def predict(d, b):
            raise KeyError("missing column")

        adapter = CallableAdapter(predict, coefficients=[1.0], data=linear_data)

        with pytest.raises(PredictionFailure) as err:
            unit_effects(adapter, linear_data, np.array([1.0]), VariableDescriptor("x2"))

        assert isinstance(err.value.__cause__, KeyError)
        assert err.value.observation is None
        assert isinstance(err.value, RuntimeError)

    def test_wrong_length(self, linear_data):
        from pymargins import CallableAdapter, PredictionFailure, VariableDescriptor
        from pymargins.engine import unit_effects

        adapter = CallableAdapter(lambda d, b: np.zeros(3), coefficients=[1.0], data=linear_data)

        with pytest.raises(PredictionFailure, match="3 predictions"):
            unit_effects(adapter, linear_data, np.array([1.0]), VariableDescriptor("x1"))
