import numpy as np
from enum import IntEnum
from typing import Dict, Optional, Union

from fluid_mlp.errors import ConfigurationError


class ActivationType(IntEnum):
    """Identifiers exchanged with hosts when layer parameters are saved or loaded."""

    IDENTITY = 0
    SIGMOID = 1
    RELU = 2
    TANH = 3


class Activation:
    """Base class for all activation functions."""

    def forward(self, x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Compute the activation function value.

        Args:
            x: Pre-activation values (numpy array).
            out: Optional array of the same shape to write the result into.
                 May be ``x`` itself.

        Returns:
            Activated output (``out`` when it was given).
        """
        raise NotImplementedError

    def backward(self, x: np.ndarray) -> np.ndarray:
        """Compute the derivative of the activation function with respect to its input 'x'.
           Note: 'x' here is the *input* to the activation function (often denoted 'z').

        Args:
            x: Pre-activation values where the derivative is evaluated.

        Returns:
            Derivative of the activation function evaluated at x.
        """
        raise NotImplementedError


class Identity(Activation):
    """Identity activation function.

    Mathematical form:
        forward: f(x) = x
        backward: f'(x) = 1
    """

    def forward(self, x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        if out is None:
            return np.array(x, dtype=float)
        if out is not x:
            np.copyto(out, x)
        return out

    def backward(self, x: np.ndarray) -> np.ndarray:
        return np.ones_like(x, dtype=float)


class Sigmoid(Activation):
    """Logistic sigmoid activation function.

    Mathematical form:
        forward: f(x) = 1 / (1 + e^-x)
        backward: f'(x) = f(x) * (1 - f(x))
    """

    def forward(self, x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Compute sigmoid activation with clipping for numerical stability."""
        # exp(-x) overflows float64 for x below about -709
        out = np.clip(x, -500, 500, out=out)
        np.negative(out, out=out)
        np.exp(out, out=out)
        out += 1.0
        np.reciprocal(out, out=out)
        return out

    def backward(self, x: np.ndarray) -> np.ndarray:
        sig = self.forward(x)
        return sig * (1.0 - sig)


class ReLU(Activation):
    """Rectified Linear Unit activation function.

    Mathematical form:
        forward: f(x) = max(0, x)
        backward: f'(x) = 1 if x > 0 else 0
    """

    def forward(self, x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        return np.maximum(x, 0.0, out=out)

    def backward(self, x: np.ndarray) -> np.ndarray:
        return np.where(x > 0, 1.0, 0.0)


class Tanh(Activation):
    """Hyperbolic tangent activation function.

    Mathematical form:
        forward: f(x) = tanh(x)
        backward: f'(x) = 1 - tanh^2(x)
    """

    def forward(self, x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        return np.tanh(x, out=out)

    def backward(self, x: np.ndarray) -> np.ndarray:
        return 1.0 - np.tanh(x) ** 2


# Stateless instances, shared by every layer
ACTIVATION_FUNCTIONS: Dict[ActivationType, Activation] = {
    ActivationType.IDENTITY: Identity(),
    ActivationType.SIGMOID: Sigmoid(),
    ActivationType.RELU: ReLU(),
    ActivationType.TANH: Tanh(),
}


def to_activation_type(identifier: Union[ActivationType, int, str]) -> ActivationType:
    """Normalize an activation identifier to an ``ActivationType``.

    Args:
        identifier: An ``ActivationType``, its integer value, or its name
                    (case-insensitive, e.g. 'relu').

    Returns:
        The matching ``ActivationType``.

    Raises:
        ConfigurationError: If the identifier is not recognized.
    """
    if isinstance(identifier, ActivationType):
        return identifier
    if isinstance(identifier, str):
        try:
            return ActivationType[identifier.upper()]
        except KeyError:
            raise ConfigurationError(
                f"Unknown activation function '{identifier}'. "
                f"Available functions: {[a.name.lower() for a in ActivationType]}"
            ) from None
    # bool is an int subclass but never a meaningful identifier
    if isinstance(identifier, (int, np.integer)) and not isinstance(identifier, bool):
        try:
            return ActivationType(int(identifier))
        except ValueError:
            raise ConfigurationError(
                f"Unknown activation id {identifier}. "
                f"Valid ids: {[int(a) for a in ActivationType]}"
            ) from None
    raise ConfigurationError(f"Invalid activation identifier type '{type(identifier).__name__}'")


def get_activation(identifier: Union[ActivationType, int, str]) -> Activation:
    """Look up the activation function registered for an identifier.

    Raises:
        ConfigurationError: If the identifier is not recognized.
    """
    return ACTIVATION_FUNCTIONS[to_activation_type(identifier)]
