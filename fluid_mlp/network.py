import numpy as np
from typing import Dict, List, Optional, Sequence, Tuple, Union
import logging

from fluid_mlp.activations import ActivationType
from fluid_mlp.errors import ConfigurationError, NotReadyError
from fluid_mlp.layer import Layer

# --- Loss Function ---

def mse_loss(outputs: np.ndarray, targets: np.ndarray) -> Tuple[float, np.ndarray]:
    """
    Computes the squared-error training objective and its gradient w.r.t. outputs.

    Loss = (1/N) * Σ_rows Σ_cols (output - target)^2
    Gradient (dL/dOutput) = (2/N) * (output - target)

    The 1/N batch average lives here, so the summed layer gradients produced by
    ``Network.backward`` are exactly the gradients of this loss.

    Args:
        outputs: Predicted values (batch_size, output_dim).
        targets: True values (batch_size, output_dim).

    Returns:
        Tuple containing:
            - loss (float): Mean over rows of the per-row sum of squared errors.
            - gradient (np.ndarray): Gradient of the loss w.r.t. outputs.
    """
    outputs = np.asarray(outputs, dtype=float)
    targets = np.asarray(targets, dtype=float)
    if outputs.shape != targets.shape:
        raise ConfigurationError(f"MSE Loss: Output shape {outputs.shape} must match target shape {targets.shape}")
    if outputs.ndim == 1:
        outputs = outputs.reshape(1, -1)
        targets = targets.reshape(1, -1)
    num_samples = outputs.shape[0]
    if num_samples == 0:
        return 0.0, np.zeros_like(outputs)

    error = outputs - targets
    loss = np.sum(error ** 2) / num_samples
    gradient = 2.0 * error / num_samples
    return float(loss), gradient


class Network:
    """
    A feed-forward network (multilayer perceptron) built as an ordered stack of Layers.

    The network exposes single-pass primitives (forward, backward, update) and per-layer
    parameter access; epoch loops and convergence checks belong to the caller (see
    ``fluid_mlp.trainer``).

    Lifecycle:
        unbuilt --init()--> initialized --clear()/init()--> initialized
        initialized --set_trained(True)--> trained

    Not thread-safe: forward, backward and update share layer-owned caches and gradient
    buffers, so concurrent calls on one instance need external locking.
    """

    def __init__(self, weight_init: str = 'xavier', rng: Optional[np.random.Generator] = None):
        """
        Creates an empty, unbuilt network.

        Args:
            weight_init: Weight initialization strategy passed to every layer.
            rng: Random generator shared by the layers. Defaults to an unseeded generator.
        """
        self.weight_init = weight_init
        self.rng = rng if rng is not None else np.random.default_rng()
        self.layers: List[Layer] = []
        self._initialized = False
        self._trained = False
        # end_layer of the most recent forward(); backward() needs the full chain
        self._last_end_layer: Optional[int] = None
        # Per-layer (1, size) rows reused by process_frame
        self._frame_buffers: List[np.ndarray] = []

    # --- Construction ---

    def init(
        self,
        input_size: int,
        output_size: int,
        hidden_sizes: Sequence[int] = (),
        hidden_activation: Union[ActivationType, int, str] = ActivationType.SIGMOID,
        output_activation: Union[ActivationType, int, str] = ActivationType.IDENTITY,
    ):
        """
        Rebuilds the whole layer stack from scratch; all prior parameters are discarded.

        Produces ``len(hidden_sizes) + 1`` layers sized ``[input_size, *hidden_sizes, output_size]``.
        Hidden layers use ``hidden_activation``, the last layer uses ``output_activation``.

        Raises:
            ConfigurationError: On non-positive sizes or unknown activations. The network
                                is left unchanged in that case.
        """
        sizes = [input_size, *hidden_sizes, output_size]
        activations = [hidden_activation] * len(hidden_sizes) + [output_activation]

        layers = [
            Layer(
                input_size  = sizes[i],
                output_size = sizes[i + 1],
                activation  = activations[i],
                weight_init = self.weight_init,
                rng         = self.rng,
                id          = i,
            )
            for i in range(len(sizes) - 1)
        ]

        self.layers = layers
        self._last_end_layer = None
        self._allocate_frame_buffers()
        self._initialized = True
        self._trained = False

        logging.info(f"Created neural network with architecture: {sizes}")
        logging.info(f"Layer activations: {[l.activation.name for l in self.layers]}")

    def _allocate_frame_buffers(self):
        self._frame_buffers = [np.zeros((1, self.dims()), dtype=float)]
        self._frame_buffers += [np.zeros((1, l.output_size), dtype=float) for l in self.layers]

    def clear(self):
        """Re-initializes every layer's parameters, keeping the topology. Resets ``trained``."""
        self._require_built()
        for layer in self.layers:
            layer.init()
        self._last_end_layer = None
        self._trained = False
        logging.info("Network parameters re-initialized.")

    # --- State and introspection ---

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def trained(self) -> bool:
        return self._trained

    def set_trained(self, value: bool = True):
        """Marks the network as trained; set by the external training loop."""
        self._trained = bool(value)

    @property
    def layer_count(self) -> int:
        return len(self.layers)

    def __len__(self) -> int:
        return len(self.layers)

    def dims(self) -> int:
        """Input dimensionality of the network, 0 when unbuilt."""
        return self.layers[0].input_size if self.layers else 0

    def input_size(self, layer: int) -> int:
        """Input size of a layer, 0 for an out-of-range index."""
        return self.layers[layer].input_size if 0 <= layer < len(self.layers) else 0

    def output_size(self, layer: int) -> int:
        """Output size of a layer, 0 for an out-of-range index."""
        return self.layers[layer].output_size if 0 <= layer < len(self.layers) else 0

    def topology(self) -> Dict[str, object]:
        """
        Describes the network shape, enough to rebuild an untrained copy with
        ``Network().init(**topology)``.
        """
        self._require_built()
        return {
            'input_size': self.layers[0].input_size,
            'output_size': self.layers[-1].output_size,
            'hidden_sizes': [l.output_size for l in self.layers[:-1]],
            'hidden_activation': int(self.layers[0].activation) if len(self.layers) > 1 else int(ActivationType.SIGMOID),
            'output_activation': int(self.layers[-1].activation),
        }

    def _require_built(self):
        if not self.layers:
            raise NotReadyError("Network has no layers; call init() first.")

    def _check_layer_index(self, layer: int):
        self._require_built()
        if isinstance(layer, bool) or not isinstance(layer, (int, np.integer)):
            raise ConfigurationError(f"Layer index must be an integer, got {layer!r}")
        if not 0 <= layer < len(self.layers):
            raise ConfigurationError(f"Layer index {layer} out of range [0, {len(self.layers)})")

    # --- Parameters ---

    def get_parameters(self, layer: int) -> Tuple[np.ndarray, np.ndarray, int]:
        """
        Returns copies of one layer's weights and bias, and its activation id.

        Raises:
            NotReadyError: If the network is unbuilt.
            ConfigurationError: If ``layer`` is outside ``[0, layer_count)``.
        """
        self._check_layer_index(layer)
        return self.layers[layer].get_parameters()

    def set_parameters(
        self,
        layer: int,
        weights: np.ndarray,
        bias: np.ndarray,
        activation: Union[ActivationType, int, str],
    ):
        """
        Replaces one layer's weights, bias and activation (copied in).

        Raises:
            NotReadyError: If the network is unbuilt.
            ConfigurationError: If ``layer`` is out of range or the shapes do not match.
        """
        self._check_layer_index(layer)
        self.layers[layer].set_parameters(weights, bias, activation)

    def get_gradients(self, layer: int) -> Tuple[np.ndarray, np.ndarray]:
        """Returns copies of one layer's accumulated weight and bias gradients."""
        self._check_layer_index(layer)
        return self.layers[layer].get_gradients()

    # --- Inference ---

    def _resolve_range(self, start_layer: int, end_layer: Optional[int]) -> int:
        last = len(self.layers) - 1
        if end_layer is None:
            end_layer = last
        for name, index in (('start_layer', start_layer), ('end_layer', end_layer)):
            if isinstance(index, bool) or not isinstance(index, (int, np.integer)):
                raise ConfigurationError(f"{name} must be an integer, got {index!r}")
            if not 0 <= index <= last:
                raise ConfigurationError(f"{name} {index} out of range [0, {last}]")
        if start_layer > end_layer:
            raise ConfigurationError(f"start_layer {start_layer} is after end_layer {end_layer}")
        return int(end_layer)

    def forward(self, inputs: np.ndarray, start_layer: int = 0, end_layer: Optional[int] = None) -> np.ndarray:
        """
        Runs layers ``0..end_layer`` (inclusive) on a batch.

        ``start_layer`` is validated but computation always begins at layer 0; to run a
        true partial chain, pass the intermediate activation of the earlier layers as
        ``inputs`` to a network built from the later ones.

        Args:
            inputs: Input matrix of shape (batch_size, dims()), or one sample of shape (dims(),).
            start_layer: First layer of the requested range.
            end_layer: Last layer to run; ``None`` means the output layer.

        Returns:
            Output of ``end_layer``, shape (batch_size, output_size(end_layer)).

        Raises:
            NotReadyError: If the network is unbuilt.
            ConfigurationError: On an invalid range or a mismatched input width.
        """
        self._require_built()
        end_layer = self._resolve_range(start_layer, end_layer)

        current_output = inputs
        for i in range(end_layer + 1):
            current_output = self.layers[i].forward(current_output)
            logging.debug(f"Forward pass - Layer {i} output shape: {current_output.shape}")
        self._last_end_layer = end_layer
        return current_output

    def process(self, inputs: np.ndarray, start_layer: int = 0, end_layer: Optional[int] = None) -> np.ndarray:
        """Batch inference entry point for hosts; same contract as ``forward``."""
        return self.forward(inputs, start_layer, end_layer)

    def process_frame(
        self,
        frame: np.ndarray,
        start_layer: int = 0,
        end_layer: Optional[int] = None,
        out: Optional[np.ndarray] = None,
        clamp: bool = False,
    ) -> np.ndarray:
        """
        Single-frame inference for real-time callers.

        Equivalent to row 0 of ``forward`` on a one-row batch, but runs through scratch
        rows allocated by ``init()`` and leaves the training caches alone.

        Args:
            frame: Vector of length ``dims()``.
            start_layer: First layer of the requested range (validated only).
            end_layer: Last layer to run; ``None`` means the output layer.
            out: Optional vector of length ``output_size(end_layer)`` to write into.
                 Without it a copy of the result is returned.
            clamp: When True never raise: layer indices are clamped into range, a frame of
                   the wrong length is truncated or zero-padded, and an unbuilt network
                   returns an empty (or untouched ``out``) result.

        Returns:
            The output vector of ``end_layer``.
        """
        if clamp:
            if not self.layers:
                return out if out is not None else np.zeros(0)
            last = len(self.layers) - 1
            try:
                end_layer = last if end_layer is None else min(max(int(end_layer), 0), last)
            except (TypeError, ValueError, OverflowError):
                end_layer = last
        else:
            self._require_built()
            end_layer = self._resolve_range(start_layer, end_layer)

        frame = np.asarray(frame)
        row = self._frame_buffers[0]
        dims = row.shape[1]
        if frame.ndim != 1 or frame.shape[0] != dims:
            if not clamp:
                raise ConfigurationError(f"Expected a frame of shape ({dims},), got {frame.shape}")
            frame = frame.reshape(-1)
            n = min(frame.shape[0], dims)
            row[0, n:] = 0.0
            row[0, :n] = frame[:n]
        else:
            row[0, :] = frame

        current = row
        for i in range(end_layer + 1):
            current = self.layers[i].infer_into(current, self._frame_buffers[i + 1])

        if out is None:
            return current[0].copy()
        if clamp:
            n = min(out.shape[0], current.shape[1])
            out[:n] = current[0, :n]
        elif out.shape != (current.shape[1],):
            raise ConfigurationError(f"Expected out of shape ({current.shape[1]},), got {out.shape}")
        else:
            out[:] = current[0]
        return out

    # --- Training primitives ---

    def loss(self, predicted: np.ndarray, target: np.ndarray) -> float:
        """Mean over rows of the per-row sum of squared errors."""
        return mse_loss(predicted, target)[0]

    def backward(self, output_gradient: np.ndarray):
        """
        Backpropagates ``output_gradient`` (dL/d output of the last forward pass) through
        every layer in reverse order, accumulating each layer's gradients.

        Raises:
            NotReadyError: If the network is unbuilt, no forward pass has been made, or the
                           last forward pass stopped before the output layer.
            ConfigurationError: If the gradient shape does not match the last forward pass.
        """
        self._require_built()
        last = len(self.layers) - 1
        if self._last_end_layer is None:
            raise NotReadyError("Must call forward() before backward().")
        if self._last_end_layer != last:
            # Layers past end_layer still hold caches from an older pass
            raise NotReadyError(
                f"Last forward() stopped at layer {self._last_end_layer}; backward() needs a "
                f"forward pass through the output layer ({last})."
            )
        current_gradient = output_gradient
        for layer in reversed(self.layers):
            current_gradient = layer.backward(current_gradient)
            logging.debug(f"Backward pass - Layer {layer.id} passing gradient shape: {current_gradient.shape}")
        # The gradient w.r.t. the network input has no consumer

    def update(self, learning_rate: float, momentum: float = 0.0):
        """Applies one momentum step to every layer with the same hyperparameters."""
        self._require_built()
        for layer in self.layers:
            layer.update(learning_rate, momentum)

    def zero_grad(self):
        """Resets the accumulated gradients of all layers."""
        for layer in self.layers:
            layer.zero_grad()

    def summary(self) -> str:
        """
        Generates a text summary of the network architecture and parameters.

        Returns:
            A string containing the network summary.
        """
        summary_str = "\n" + "="*50 + "\n"
        summary_str += "Neural Network Summary\n"
        summary_str += "="*50 + "\n"
        total_params = 0
        for i, layer in enumerate(self.layers):
            layer_params = layer.weights.size + layer.bias.size
            total_params += layer_params
            summary_str += f"Layer {i}: {layer.input_size} -> {layer.output_size}\n"
            summary_str += f"  Activation: {layer.activation.name} ({int(layer.activation)})\n"
            summary_str += f"  Weight Shape: {layer.weights.shape}\n"
            summary_str += f"  Parameters: {layer_params}\n"
            summary_str += "-"*50 + "\n"

        summary_str += f"Total Parameters: {total_params}\n"
        summary_str += f"Trained: {self._trained}\n"
        summary_str += "="*50 + "\n"
        return summary_str
