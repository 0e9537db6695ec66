from fluid_mlp.activations import (
    ACTIVATION_FUNCTIONS,
    Activation,
    ActivationType,
    get_activation,
)
from fluid_mlp.errors import ConfigurationError, NotReadyError
from fluid_mlp.layer import Layer
from fluid_mlp.network import Network, mse_loss
from fluid_mlp.trainer import train

__all__ = [
    "ACTIVATION_FUNCTIONS",
    "Activation",
    "ActivationType",
    "ConfigurationError",
    "Layer",
    "Network",
    "NotReadyError",
    "get_activation",
    "mse_loss",
    "train",
]
