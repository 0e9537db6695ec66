"""Shared fixtures for the fluid_mlp test suite."""

import numpy as np
import pytest

from fluid_mlp import ActivationType, Network


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def network(rng) -> Network:
    """A built [3, 5, 4, 2] network with tanh hidden layers and a sigmoid output."""
    net = Network(rng=rng)
    net.init(
        input_size=3,
        output_size=2,
        hidden_sizes=[5, 4],
        hidden_activation=ActivationType.TANH,
        output_activation=ActivationType.SIGMOID,
    )
    return net


@pytest.fixture
def batch(rng) -> np.ndarray:
    return rng.normal(size=(6, 3))
