"""Tests for the activation registry."""

import numpy as np
import pytest

from fluid_mlp.activations import (
    ACTIVATION_FUNCTIONS,
    ActivationType,
    ReLU,
    Sigmoid,
    Tanh,
    get_activation,
    to_activation_type,
)
from fluid_mlp.errors import ConfigurationError


class TestRegistry:
    def test_every_type_is_registered(self) -> None:
        assert set(ACTIVATION_FUNCTIONS) == set(ActivationType)

    def test_integer_ids_are_stable(self) -> None:
        assert [int(a) for a in ActivationType] == [0, 1, 2, 3]

    @pytest.mark.parametrize("identifier", [ActivationType.RELU, 2, np.int64(2), "relu", "ReLU"])
    def test_lookup_forms(self, identifier) -> None:
        assert isinstance(get_activation(identifier), ReLU)
        assert to_activation_type(identifier) is ActivationType.RELU

    @pytest.mark.parametrize("identifier", [4, -1, "softmax", True, 1.0, None])
    def test_unknown_identifier_raises(self, identifier) -> None:
        with pytest.raises(ConfigurationError):
            get_activation(identifier)


class TestFormulas:
    def test_identity(self) -> None:
        x = np.array([[-2.0, 0.0, 3.5]])
        fn = get_activation(ActivationType.IDENTITY)
        np.testing.assert_array_equal(fn.forward(x), x)
        np.testing.assert_array_equal(fn.backward(x), np.ones_like(x))

    def test_relu(self) -> None:
        x = np.array([[-2.0, 0.0, 3.5]])
        fn = get_activation(ActivationType.RELU)
        np.testing.assert_array_equal(fn.forward(x), [[0.0, 0.0, 3.5]])
        np.testing.assert_array_equal(fn.backward(x), [[0.0, 0.0, 1.0]])

    def test_sigmoid_values(self) -> None:
        fn = Sigmoid()
        np.testing.assert_allclose(fn.forward(np.array([0.0])), [0.5])
        np.testing.assert_allclose(fn.backward(np.array([0.0])), [0.25])

    def test_sigmoid_saturates_without_overflow(self) -> None:
        with np.errstate(over="raise"):
            result = Sigmoid().forward(np.array([-1e4, 1e4]))
        np.testing.assert_allclose(result, [0.0, 1.0], atol=1e-12)

    @pytest.mark.parametrize("activation", list(ActivationType))
    def test_derivative_matches_finite_difference(self, activation) -> None:
        fn = get_activation(activation)
        # Avoid the ReLU kink at zero
        x = np.array([[-1.7, -0.3, 0.4, 2.2]])
        eps = 1e-6
        numeric = (fn.forward(x + eps) - fn.forward(x - eps)) / (2 * eps)
        np.testing.assert_allclose(fn.backward(x), numeric, rtol=1e-6, atol=1e-9)

    @pytest.mark.parametrize("activation", list(ActivationType))
    def test_forward_in_place(self, activation) -> None:
        fn = get_activation(activation)
        x = np.array([[-1.0, 0.5, 2.0]])
        expected = fn.forward(x)
        buf = x.copy()
        result = fn.forward(buf, out=buf)
        assert result is buf
        np.testing.assert_allclose(buf, expected)

    def test_forward_does_not_modify_input(self) -> None:
        x = np.array([[-1.0, 0.5]])
        Tanh().forward(x)
        get_activation("identity").forward(x)[0, 0] = 42.0
        np.testing.assert_array_equal(x, [[-1.0, 0.5]])
