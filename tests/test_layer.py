"""Tests for a single fully-connected layer."""

import numpy as np
import pytest

from fluid_mlp.activations import ActivationType
from fluid_mlp.errors import ConfigurationError, NotReadyError
from fluid_mlp.layer import Layer


@pytest.fixture
def scalar_layer() -> Layer:
    """1 -> 1 identity layer with w = 1, b = 0."""
    layer = Layer(1, 1, ActivationType.IDENTITY, rng=np.random.default_rng(0))
    layer.set_parameters(np.array([[1.0]]), np.array([0.0]), ActivationType.IDENTITY)
    return layer


class TestConstruction:
    def test_shapes(self, rng) -> None:
        layer = Layer(4, 3, "tanh", rng=rng)
        assert layer.input_size == 4
        assert layer.output_size == 3
        assert layer.weights.shape == (3, 4)
        assert layer.bias.shape == (3,)
        assert layer.activation is ActivationType.TANH

    def test_sizes_are_read_only(self, rng) -> None:
        layer = Layer(2, 2, rng=rng)
        with pytest.raises(AttributeError):
            layer.input_size = 5

    def test_unknown_activation_fails_at_construction(self, rng) -> None:
        with pytest.raises(ConfigurationError):
            Layer(2, 2, 99, rng=rng)

    @pytest.mark.parametrize("sizes", [(0, 2), (2, -1), (2.5, 2)])
    def test_bad_sizes(self, rng, sizes) -> None:
        with pytest.raises(ConfigurationError):
            Layer(*sizes, rng=rng)

    def test_unknown_weight_init(self, rng) -> None:
        with pytest.raises(ConfigurationError):
            Layer(2, 2, weight_init="orthogonal", rng=rng)

    @pytest.mark.parametrize("weight_init", ["xavier", "he", "random"])
    def test_init_breaks_symmetry(self, rng, weight_init) -> None:
        layer = Layer(8, 6, weight_init=weight_init, rng=rng)
        assert len(np.unique(layer.weights)) == layer.weights.size
        assert abs(layer.weights.mean()) < 0.5

    def test_init_is_seeded_by_rng(self) -> None:
        a = Layer(3, 2, rng=np.random.default_rng(5))
        b = Layer(3, 2, rng=np.random.default_rng(5))
        np.testing.assert_array_equal(a.weights, b.weights)
        np.testing.assert_array_equal(a.bias, b.bias)


class TestParameters:
    def test_round_trip_copies(self, rng) -> None:
        layer = Layer(3, 2, rng=rng)
        W = rng.normal(size=(2, 3))
        b = rng.normal(size=2)
        layer.set_parameters(W, b, ActivationType.RELU)

        W_out, b_out, act = layer.get_parameters()
        np.testing.assert_array_equal(W_out, W)
        np.testing.assert_array_equal(b_out, b)
        assert act == int(ActivationType.RELU)

        W[0, 0] = 100.0
        W_out[0, 1] = 100.0
        assert layer.weights[0, 0] != 100.0
        assert layer.weights[0, 1] != 100.0

    @pytest.mark.parametrize("W_shape, b_shape", [((3, 2), (2,)), ((2, 3), (3,)), ((2, 3), (2, 1))])
    def test_shape_mismatch(self, rng, W_shape, b_shape) -> None:
        layer = Layer(3, 2, rng=rng)
        with pytest.raises(ConfigurationError):
            layer.set_parameters(np.zeros(W_shape), np.zeros(b_shape), 0)


class TestForwardBackward:
    def test_forward_formula(self, rng) -> None:
        layer = Layer(3, 2, ActivationType.SIGMOID, rng=rng)
        X = rng.normal(size=(4, 3))
        z = X @ layer.weights.T + layer.bias
        np.testing.assert_allclose(layer.forward(X), 1.0 / (1.0 + np.exp(-z)))

    def test_single_sample_is_one_row(self, rng) -> None:
        layer = Layer(3, 2, rng=rng)
        assert layer.forward(np.ones(3)).shape == (1, 2)

    def test_forward_width_mismatch(self, rng) -> None:
        layer = Layer(3, 2, rng=rng)
        with pytest.raises(ConfigurationError):
            layer.forward(np.ones((4, 2)))

    def test_backward_before_forward(self, rng) -> None:
        layer = Layer(3, 2, rng=rng)
        with pytest.raises(NotReadyError):
            layer.backward(np.ones((1, 2)))

    def test_backward_shape_mismatch(self, rng) -> None:
        layer = Layer(3, 2, rng=rng)
        layer.forward(np.ones((4, 3)))
        with pytest.raises(ConfigurationError):
            layer.backward(np.ones((3, 2)))

    def test_backward_formulas(self, rng) -> None:
        layer = Layer(3, 2, ActivationType.TANH, rng=rng)
        X = rng.normal(size=(5, 3))
        G = rng.normal(size=(5, 2))
        layer.forward(X)
        grad_input = layer.backward(G)

        delta = G * (1.0 - np.tanh(X @ layer.weights.T + layer.bias) ** 2)
        dW, db = layer.get_gradients()
        np.testing.assert_allclose(dW, delta.T @ X)
        np.testing.assert_allclose(db, delta.sum(axis=0))
        np.testing.assert_allclose(grad_input, delta @ layer.weights)

    def test_gradients_accumulate(self, scalar_layer) -> None:
        for _ in range(2):
            scalar_layer.forward(np.array([[2.0]]))
            scalar_layer.backward(np.array([[1.0]]))
        dW, db = scalar_layer.get_gradients()
        np.testing.assert_allclose(dW, [[4.0]])
        np.testing.assert_allclose(db, [2.0])

    def test_infer_into_leaves_cache_alone(self, rng) -> None:
        layer = Layer(3, 2, ActivationType.RELU, rng=rng)
        X = rng.normal(size=(4, 3))
        expected = layer.forward(X)
        cached_inputs = layer.inputs

        out = np.empty((1, 2))
        layer.infer_into(np.ones((1, 3)), out)
        assert layer.inputs is cached_inputs
        np.testing.assert_allclose(out, layer.forward(np.ones((1, 3))))
        np.testing.assert_allclose(layer.forward(X), expected)


class TestUpdate:
    def test_momentum_steps(self, scalar_layer) -> None:
        # dW = 2, db = 1 on every pass
        expected = [(0.8, -0.1), (0.5, -0.25)]
        for w_expected, b_expected in expected:
            scalar_layer.forward(np.array([[2.0]]))
            scalar_layer.backward(np.array([[1.0]]))
            scalar_layer.update(learning_rate=0.1, momentum=0.5)
            W, b, _ = scalar_layer.get_parameters()
            np.testing.assert_allclose(W, [[w_expected]])
            np.testing.assert_allclose(b, [b_expected])

    def test_update_clears_gradients(self, scalar_layer) -> None:
        scalar_layer.forward(np.array([[2.0]]))
        scalar_layer.backward(np.array([[1.0]]))
        scalar_layer.update(0.1, 0.0)
        dW, db = scalar_layer.get_gradients()
        assert not dW.any()
        assert not db.any()

    def test_init_resets_velocity(self, scalar_layer) -> None:
        scalar_layer.forward(np.array([[2.0]]))
        scalar_layer.backward(np.array([[1.0]]))
        scalar_layer.update(0.1, 0.9)
        scalar_layer.init()
        before = scalar_layer.weights.copy()
        scalar_layer.update(0.1, 0.9)
        np.testing.assert_array_equal(scalar_layer.weights, before)
