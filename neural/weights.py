"""
Versioned weight format for feed-forward networks.

The format is deliberately plain so that any implementation can read it:

    {
      "format": "feedforward-weights",
      "format_version": 1,
      "activation": "sigmoid",          # hidden layers
      "output_activation": "sigmoid",
      "layers": [
        {"weights": [[...], ...],       # rows = inputs, cols = outputs
         "biases": [...]},
        ...
      ]
    }

Layers are ordered from the input side to the output side.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List

import numpy as np

from neural.activations import ACTIVATIONS

WEIGHTS_FORMAT = "feedforward-weights"
WEIGHTS_FORMAT_VERSION = 1


@dataclass
class LayerWeights:
    """One dense layer: weight matrix (inputs x outputs) and bias vector."""
    weights: np.ndarray
    biases: np.ndarray

    @property
    def input_size(self) -> int:
        return int(self.weights.shape[0])

    @property
    def output_size(self) -> int:
        return int(self.weights.shape[1])


@dataclass
class NetworkWeights:
    """Serialized form of a whole network."""
    layers: List[LayerWeights]
    activation: str = "sigmoid"
    output_activation: str = "sigmoid"
    format_version: int = WEIGHTS_FORMAT_VERSION
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def layer_sizes(self) -> List[int]:
        if not self.layers:
            return []
        return [self.layers[0].input_size] + [l.output_size for l in self.layers]

    def is_finite(self) -> bool:
        return all(
            np.all(np.isfinite(l.weights)) and np.all(np.isfinite(l.biases))
            for l in self.layers
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'format': WEIGHTS_FORMAT,
            'format_version': self.format_version,
            'activation': self.activation,
            'output_activation': self.output_activation,
            'layers': [
                {
                    'weights': layer.weights.tolist(),
                    'biases': layer.biases.tolist(),
                }
                for layer in self.layers
            ],
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NetworkWeights':
        if data.get('format') != WEIGHTS_FORMAT:
            raise ValueError(f"Not a weights document: format={data.get('format')!r}")
        version = data.get('format_version')
        if version != WEIGHTS_FORMAT_VERSION:
            raise ValueError(f"Unsupported weights format version: {version!r}")

        layers = []
        prev_out = None
        for i, raw in enumerate(data.get('layers', [])):
            w = np.asarray(raw['weights'], dtype=np.float64)
            b = np.asarray(raw['biases'], dtype=np.float64)
            if w.ndim != 2 or b.ndim != 1 or w.shape[1] != b.shape[0]:
                raise ValueError(f"Layer {i} has inconsistent shapes {w.shape} / {b.shape}")
            if prev_out is not None and w.shape[0] != prev_out:
                raise ValueError(f"Layer {i} expects {w.shape[0]} inputs, previous layer gives {prev_out}")
            prev_out = w.shape[1]
            layers.append(LayerWeights(weights=w, biases=b))

        if not layers:
            raise ValueError("Weights document has no layers")

        activation = data.get('activation', 'sigmoid')
        output_activation = data.get('output_activation', 'sigmoid')
        for tag in (activation, output_activation):
            if not isinstance(tag, str) or tag not in ACTIVATIONS:
                raise ValueError(f"Unknown activation {tag!r} (expected one of {sorted(ACTIVATIONS)})")

        return cls(
            layers=layers,
            activation=activation,
            output_activation=output_activation,
            format_version=version,
            metadata=dict(data.get('metadata', {})),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: str) -> 'NetworkWeights':
        return cls.from_dict(json.loads(text))
