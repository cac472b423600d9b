"""
Activation functions for the feed-forward engine.

Each activation is registered under a string tag. The tag is what gets
written into serialized weights, so a network restored from storage uses
exactly the same non-linearity it was trained with.
"""

import numpy as np
from typing import Callable, Dict, Tuple

LEAKY_SLOPE = 0.01


def sigmoid(z: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(z, -500.0, 500.0)))


def _sigmoid_grad(z: np.ndarray, a: np.ndarray) -> np.ndarray:
    return a * (1.0 - a)


def _tanh(z: np.ndarray) -> np.ndarray:
    return np.tanh(z)


def _tanh_grad(z: np.ndarray, a: np.ndarray) -> np.ndarray:
    return 1.0 - a * a


def _relu(z: np.ndarray) -> np.ndarray:
    return np.maximum(z, 0.0)


def _relu_grad(z: np.ndarray, a: np.ndarray) -> np.ndarray:
    return (z > 0).astype(z.dtype)


def _leaky_relu(z: np.ndarray) -> np.ndarray:
    return np.where(z > 0, z, z * LEAKY_SLOPE)


def _leaky_relu_grad(z: np.ndarray, a: np.ndarray) -> np.ndarray:
    return np.where(z > 0, 1.0, LEAKY_SLOPE)


# tag -> (function, derivative(pre_activation, activation))
ACTIVATIONS: Dict[str, Tuple[Callable, Callable]] = {
    'sigmoid': (sigmoid, _sigmoid_grad),
    'tanh': (_tanh, _tanh_grad),
    'relu': (_relu, _relu_grad),
    'leaky_relu': (_leaky_relu, _leaky_relu_grad),
}


def get_activation(tag: str) -> Tuple[Callable, Callable]:
    """Look up an activation pair by tag."""
    try:
        return ACTIVATIONS[tag]
    except KeyError:
        raise ValueError(
            f"Unknown activation '{tag}' (expected one of {sorted(ACTIVATIONS)})"
        )
