import numpy as np
from typing import Optional, Tuple, Union
import logging

from fluid_mlp.activations import ActivationType, get_activation, to_activation_type
from fluid_mlp.errors import ConfigurationError, NotReadyError

WEIGHT_INITS = ('xavier', 'he', 'random')


class Layer:
    """
    A single fully-connected layer: an affine map followed by an element-wise activation.

    The layer owns its parameters exclusively. Nothing outside the layer mutates them
    except through ``init()``, ``set_parameters()`` and ``update()``; the getters hand
    out copies.

    Key Attributes:
        weights (np.ndarray): Weight matrix of shape (output_size, input_size).
        bias (np.ndarray): Bias vector of shape (output_size,).
        activation (ActivationType): Identifier of the activation function.
        weight_gradients (np.ndarray): Weight gradients accumulated since the last
                                       ``update()``. Shape: (output_size, input_size).
        bias_gradients (np.ndarray): Bias gradients accumulated since the last
                                     ``update()``. Shape: (output_size,).

    Forward cache:
        ``forward()`` stores its input and pre-activation values for the next
        ``backward()``. The cache is only valid until the next ``forward()`` call, so
        ``backward()`` must run before the next forward pass if the gradients of the
        current pass are needed.
    """

    def __init__(
        self,
        input_size: int,
        output_size: int,
        activation: Union[ActivationType, int, str] = ActivationType.IDENTITY,
        weight_init: str = 'xavier',
        rng: Optional[np.random.Generator] = None,
        id: int = 0,
    ):
        """
        Creates the layer and randomly initializes its parameters.

        Args:
            input_size: Number of input features (size of the previous layer).
            output_size: Number of output features.
            activation: Activation identifier (``ActivationType``, its int value or its name).
            weight_init: Weight initialization strategy ('xavier', 'he' or 'random').
            rng: Random generator used by ``init()``. Defaults to a fresh unseeded generator.
            id: Position of the layer in its network, used in log and error messages.

        Raises:
            ConfigurationError: On non-positive sizes, an unknown activation or an
                                unknown weight initialization.
        """
        for name, size in (('input_size', input_size), ('output_size', output_size)):
            if isinstance(size, bool) or not isinstance(size, (int, np.integer)) or size <= 0:
                raise ConfigurationError(f"Layer {id}: {name} must be a positive integer, got {size!r}")
        if weight_init not in WEIGHT_INITS:
            raise ConfigurationError(
                f"Layer {id}: Unknown weight_init '{weight_init}'. Available: {list(WEIGHT_INITS)}"
            )

        self._input_size = int(input_size)
        self._output_size = int(output_size)
        self.id = id
        self.weight_init = weight_init
        self.rng = rng if rng is not None else np.random.default_rng()

        # Resolving here makes an unknown id fail at construction, not at call time
        self.activation = to_activation_type(activation)
        self.activation_fn = get_activation(self.activation)

        self.weights = np.zeros((self._output_size, self._input_size), dtype=float)
        self.bias = np.zeros(self._output_size, dtype=float)
        self.init()

        logging.debug(
            f"Layer #{self.id} created: input_size={self._input_size}, "
            f"output_size={self._output_size}, activation={self.activation.name}, "
            f"weight_init={self.weight_init}"
        )

    @property
    def input_size(self) -> int:
        return self._input_size

    @property
    def output_size(self) -> int:
        return self._output_size

    def init(self):
        """Randomly re-initializes weights and biases and resets all training state.

        Draws are zero-mean and scaled by the layer's fan-in (and fan-out for
        'xavier') so that units start out distinct.
        """
        shape = (self._output_size, self._input_size)
        if self.weight_init == 'xavier':
            # Xavier/Glorot uniform: limit = sqrt(6 / (fan_in + fan_out))
            limit = np.sqrt(6.0 / (self._input_size + self._output_size))
            self.weights = self.rng.uniform(-limit, limit, shape)
            self.bias = self.rng.uniform(-0.1 * limit, 0.1 * limit, self._output_size)
        elif self.weight_init == 'he':
            std = np.sqrt(2.0 / self._input_size)
            self.weights = self.rng.normal(0.0, std, shape)
            self.bias = self.rng.normal(0.0, 0.1 * std, self._output_size)
        else:
            self.weights = self.rng.normal(0.0, 0.01, shape)
            self.bias = self.rng.normal(0.0, 0.001, self._output_size)
        logging.debug(f"Layer #{self.id}: Initialized parameters with '{self.weight_init}'.")
        self._reset_training_state()

    def set_parameters(
        self,
        weights: np.ndarray,
        bias: np.ndarray,
        activation: Union[ActivationType, int, str],
    ):
        """
        Replaces the layer's parameters and activation, e.g. when loading a trained network.

        Args:
            weights: Weight matrix of shape (output_size, input_size).
            bias: Bias vector of shape (output_size,).
            activation: Activation identifier.

        Raises:
            ConfigurationError: If a shape does not match the layer's fixed sizes or the
                                activation is unknown.
        """
        weights = np.asarray(weights, dtype=float)
        bias = np.asarray(bias, dtype=float)
        if weights.shape != (self._output_size, self._input_size):
            raise ConfigurationError(
                f"Layer {self.id}: Weights shape {weights.shape} does not match "
                f"expected shape ({self._output_size}, {self._input_size})"
            )
        if bias.shape != (self._output_size,):
            raise ConfigurationError(
                f"Layer {self.id}: Bias shape {bias.shape} does not match "
                f"expected shape ({self._output_size},)"
            )
        activation = to_activation_type(activation)

        self.weights = weights.copy()
        self.bias = bias.copy()
        self.activation = activation
        self.activation_fn = get_activation(activation)
        self._reset_training_state()
        logging.debug(f"Layer #{self.id}: Loaded parameters, activation={activation.name}.")

    def get_parameters(self) -> Tuple[np.ndarray, np.ndarray, int]:
        """Returns copies of the weights and bias, and the activation id."""
        return self.weights.copy(), self.bias.copy(), int(self.activation)

    def _reset_training_state(self):
        self.weight_gradients = np.zeros_like(self.weights)
        self.bias_gradients = np.zeros_like(self.bias)
        self.weight_velocity = np.zeros_like(self.weights)
        self.bias_velocity = np.zeros_like(self.bias)
        self.inputs = None  # Shape: (batch_size, input_size)
        self.z_values = None  # Shape: (batch_size, output_size)

    def _check_inputs(self, inputs) -> np.ndarray:
        inputs = np.asarray(inputs, dtype=float)
        if inputs.ndim == 1:
            inputs = inputs.reshape(1, -1)
        if inputs.ndim != 2:
            raise ConfigurationError(
                f"Layer {self.id}: Unexpected input dimensions: {inputs.shape}. Expected 1D or 2D array."
            )
        if inputs.shape[1] != self._input_size:
            raise ConfigurationError(
                f"Layer {self.id}: Expected input features {self._input_size}, got {inputs.shape[1]}"
            )
        return inputs

    def forward(self, inputs: np.ndarray) -> np.ndarray:
        """
        Performs the forward pass and caches what ``backward()`` needs.

        Computes Z = X @ W.T + b, followed by A = activation(Z).

        Args:
            inputs: Input matrix of shape (batch_size, input_size), or a single sample
                    of shape (input_size,).

        Returns:
            Output matrix of shape (batch_size, output_size).

        Raises:
            ConfigurationError: If the input width does not match ``input_size``.
        """
        inputs = self._check_inputs(inputs)
        self.inputs = inputs
        # bias (output_size,) broadcasts across the batch rows
        self.z_values = np.dot(inputs, self.weights.T) + self.bias
        return self.activation_fn.forward(self.z_values)

    def infer_into(self, inputs: np.ndarray, out: np.ndarray) -> np.ndarray:
        """Forward pass into a preallocated ``out`` of shape (batch_size, output_size).

        Leaves the training cache untouched and allocates nothing, so it is safe to
        call from a real-time callback. Shapes are the caller's responsibility.
        """
        np.dot(inputs, self.weights.T, out=out)
        out += self.bias
        return self.activation_fn.forward(out, out=out)

    def backward(self, gradients: np.ndarray) -> np.ndarray:
        """
        Performs the backward pass for the most recent forward pass.

        Computes delta = dL/dA * f'(Z), then accumulates
            dL/dW += delta.T @ X   and   dL/db += sum_rows(delta),
        and returns dL/dX = delta @ W for the previous layer. Gradients are summed
        over the batch; any averaging is expected in the incoming ``gradients``.

        Args:
            gradients: Gradient of the loss w.r.t. this layer's output.
                       Shape: (batch_size, output_size).

        Returns:
            Gradient of the loss w.r.t. this layer's input. Shape: (batch_size, input_size).

        Raises:
            NotReadyError: If ``forward()`` has not been called since the last reset.
            ConfigurationError: If the gradient shape does not match the cached pass.
        """
        if self.z_values is None or self.inputs is None:
            raise NotReadyError(f"Layer {self.id}: Must call forward() before backward().")

        gradients = np.asarray(gradients, dtype=float)
        if gradients.ndim == 1:
            gradients = gradients.reshape(1, -1)
        if gradients.shape != self.z_values.shape:
            raise ConfigurationError(
                f"Layer {self.id}: Expected gradient shape {self.z_values.shape}, got {gradients.shape}"
            )

        delta = gradients * self.activation_fn.backward(self.z_values)
        self.weight_gradients += np.dot(delta.T, self.inputs)
        self.bias_gradients += np.sum(delta, axis=0)
        return np.dot(delta, self.weights)

    def update(self, learning_rate: float, momentum: float):
        """
        Applies one momentum step with the accumulated gradients, then clears them.

            v = momentum * v - learning_rate * dL/dW
            W = W + v
        (and likewise for the bias). The velocities persist across calls.
        """
        grad_norm = np.linalg.norm(self.weight_gradients)
        if grad_norm > 1e6:
            logging.warning(f"Layer {self.id}: Large gradient norm detected ({grad_norm:.2e}) before update.")

        self.weight_velocity *= momentum
        self.weight_velocity -= learning_rate * self.weight_gradients
        self.bias_velocity *= momentum
        self.bias_velocity -= learning_rate * self.bias_gradients

        self.weights += self.weight_velocity
        self.bias += self.bias_velocity
        self.zero_grad()

    def zero_grad(self):
        """Resets the accumulated gradients for weights and biases to zero."""
        self.weight_gradients.fill(0.0)
        self.bias_gradients.fill(0.0)

    def get_gradients(self) -> Tuple[np.ndarray, np.ndarray]:
        """Returns the current accumulated gradients for weights and biases."""
        return self.weight_gradients.copy(), self.bias_gradients.copy()

    def __repr__(self):
        return (f"Layer(id={self.id}, input_size={self._input_size}, "
                f"output_size={self._output_size}, "
                f"activation={self.activation.name})")
