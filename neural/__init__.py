"""
Neural - the numeric engine behind the agents.

- FeedForwardNetwork: small NumPy MLP with backprop, momentum and
  divergence rollback
- NetworkWeights: explicit, versioned weight format shared by every store
"""

from neural.activations import ACTIVATIONS, get_activation
from neural.network import FeedForwardNetwork, TrainingResult
from neural.weights import (
    LayerWeights, NetworkWeights, WEIGHTS_FORMAT, WEIGHTS_FORMAT_VERSION,
)

__all__ = [
    "ACTIVATIONS",
    "get_activation",
    "FeedForwardNetwork",
    "TrainingResult",
    "LayerWeights",
    "NetworkWeights",
    "WEIGHTS_FORMAT",
    "WEIGHTS_FORMAT_VERSION",
]
