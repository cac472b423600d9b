"""
Feed-Forward Network - small multilayer perceptron implemented in pure NumPy.

The agents in this project only need networks with tens of inputs and a
handful of outputs, so a dependency-light MLP is enough:

  Hidden layers: dense -> activation (sigmoid / tanh / relu / leaky_relu)
  Output layer:  dense -> sigmoid (every output lies in [0, 1])

Training is plain mean-squared-error backpropagation with momentum and
gradient-norm clipping. An update that produces non-finite loss or weights
is rolled back and reported as diverged instead of raising.
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from neural.activations import get_activation
from neural.weights import LayerWeights, NetworkWeights

logger = logging.getLogger(__name__)


@dataclass
class TrainingResult:
    """Outcome of a call to FeedForwardNetwork.train()."""
    error: float
    iterations: int
    diverged: bool = False


class FeedForwardNetwork:
    """
    Dense feed-forward network.

    Weight matrices are stored input-major (shape: inputs x outputs) so a
    forward pass over a batch is simply `x @ W + b` per layer.
    """

    def __init__(self, layer_sizes: Sequence[int], activation: str = 'sigmoid',
                 output_activation: str = 'sigmoid', learning_rate: float = 0.1,
                 momentum: float = 0.1, max_grad_norm: float = 5.0,
                 seed: Optional[int] = None):
        if len(layer_sizes) < 2:
            raise ValueError("A network needs at least an input and an output layer")
        if any(int(s) <= 0 for s in layer_sizes):
            raise ValueError(f"Layer sizes must be positive: {list(layer_sizes)}")

        self.layer_sizes = [int(s) for s in layer_sizes]
        self.activation = activation
        self.output_activation = output_activation
        self.learning_rate = learning_rate
        self.momentum = momentum
        self.max_grad_norm = max_grad_norm

        self._hidden_fn, self._hidden_grad = get_activation(activation)
        self._output_fn, self._output_grad = get_activation(output_activation)
        self._rng = np.random.default_rng(seed)

        self._init_weights()

    def _init_weights(self):
        """He initialization for rectifiers, Xavier otherwise."""
        self.weights: List[np.ndarray] = []
        self.biases: List[np.ndarray] = []
        rectifier = self.activation in ('relu', 'leaky_relu')

        for fan_in, fan_out in zip(self.layer_sizes[:-1], self.layer_sizes[1:]):
            scale = np.sqrt(2.0 / fan_in) if rectifier else np.sqrt(1.0 / fan_in)
            self.weights.append(self._rng.standard_normal((fan_in, fan_out)) * scale)
            self.biases.append(np.zeros(fan_out))

        self._reset_velocity()

    def _reset_velocity(self):
        self._velocity_w = [np.zeros_like(w) for w in self.weights]
        self._velocity_b = [np.zeros_like(b) for b in self.biases]

    @property
    def input_size(self) -> int:
        return self.layer_sizes[0]

    @property
    def output_size(self) -> int:
        return self.layer_sizes[-1]

    @property
    def num_parameters(self) -> int:
        return sum(w.size + b.size for w, b in zip(self.weights, self.biases))

    # ── Inference ─────────────────────────────────────────────────────

    def _forward_trace(self, x: np.ndarray):
        """Forward pass keeping every pre-activation and activation."""
        pre_activations = []
        activations = [x]
        a = x
        last = len(self.weights) - 1

        for i, (w, b) in enumerate(zip(self.weights, self.biases)):
            z = a @ w + b
            a = self._output_fn(z) if i == last else self._hidden_fn(z)
            pre_activations.append(z)
            activations.append(a)

        return pre_activations, activations

    def forward(self, x) -> np.ndarray:
        """
        Run the network.

        Args:
            x: (input_size,) vector or (batch, input_size) matrix

        Returns:
            (output_size,) or (batch, output_size) array
        """
        arr = np.asarray(x, dtype=np.float64)
        single = arr.ndim == 1
        if single:
            arr = arr[None, :]
        if arr.ndim != 2 or arr.shape[1] != self.input_size:
            raise ValueError(
                f"Expected input with {self.input_size} features, got shape {np.shape(x)}"
            )

        with np.errstate(over='ignore', invalid='ignore'):
            _, activations = self._forward_trace(arr)

        out = activations[-1]
        return out[0] if single else out

    __call__ = forward

    # ── Training ──────────────────────────────────────────────────────

    def train(self, inputs, targets, iterations: int = 1,
              learning_rate: Optional[float] = None,
              error_threshold: float = 0.0,
              sample_weights=None) -> TrainingResult:
        """
        Fit the network to (inputs, targets) with full-batch gradient descent.

        Stops early once the weighted mean squared error falls below
        `error_threshold`. If the update produces NaN/inf anywhere, all
        parameters are restored to their state before this call.
        """
        x = np.atleast_2d(np.asarray(inputs, dtype=np.float64))
        t = np.atleast_2d(np.asarray(targets, dtype=np.float64))
        if x.shape[0] != t.shape[0]:
            raise ValueError(f"{x.shape[0]} inputs but {t.shape[0]} targets")
        if x.shape[1] != self.input_size or t.shape[1] != self.output_size:
            raise ValueError(
                f"Shapes {x.shape} / {t.shape} do not match network "
                f"{self.input_size} -> {self.output_size}"
            )
        if x.shape[0] == 0:
            return TrainingResult(error=0.0, iterations=0)

        n = x.shape[0]
        if sample_weights is None:
            sw = np.ones(n)
        else:
            sw = np.asarray(sample_weights, dtype=np.float64).reshape(n)
            total = sw.sum()
            sw = sw * (n / total) if total > 0 else np.ones(n)

        lr = self.learning_rate if learning_rate is None else learning_rate
        snapshot = self._snapshot()
        done = 0
        diverged = False

        with np.errstate(all='ignore'):
            for _ in range(max(1, int(iterations))):
                pre, acts = self._forward_trace(x)
                diff = acts[-1] - t
                error = float(np.mean(sw[:, None] * diff ** 2))
                if not np.isfinite(error):
                    diverged = True
                    break
                if error < error_threshold:
                    break

                grads_w, grads_b = self._backward(pre, acts, diff, sw)
                self._apply_gradients(grads_w, grads_b, lr)
                done += 1

                if not self._parameters_finite():
                    diverged = True
                    break

            if not diverged:
                _, acts = self._forward_trace(x)
                error = float(np.mean(sw[:, None] * (acts[-1] - t) ** 2))
                diverged = not np.isfinite(error)

        if diverged:
            self._restore(snapshot)
            logger.warning(
                f"Training diverged after {done} iteration(s) (lr={lr}); "
                f"update discarded, previous weights kept"
            )
            return TrainingResult(error=float('nan'), iterations=done, diverged=True)

        return TrainingResult(error=error, iterations=done)

    def _backward(self, pre, acts, diff, sw):
        n = diff.shape[0]
        scale = 2.0 / (n * self.output_size)
        delta = diff * self._output_grad(pre[-1], acts[-1]) * sw[:, None] * scale

        grads_w = [None] * len(self.weights)
        grads_b = [None] * len(self.biases)
        for i in reversed(range(len(self.weights))):
            grads_w[i] = acts[i].T @ delta
            grads_b[i] = delta.sum(axis=0)
            if i > 0:
                delta = (delta @ self.weights[i].T) * self._hidden_grad(pre[i - 1], acts[i])

        return grads_w, grads_b

    def _apply_gradients(self, grads_w, grads_b, lr: float):
        norm = np.sqrt(
            sum(float(np.sum(g * g)) for g in grads_w)
            + sum(float(np.sum(g * g)) for g in grads_b)
        )
        if self.max_grad_norm and norm > self.max_grad_norm:
            factor = self.max_grad_norm / norm
            grads_w = [g * factor for g in grads_w]
            grads_b = [g * factor for g in grads_b]

        for i in range(len(self.weights)):
            self._velocity_w[i] = self.momentum * self._velocity_w[i] - lr * grads_w[i]
            self._velocity_b[i] = self.momentum * self._velocity_b[i] - lr * grads_b[i]
            self.weights[i] = self.weights[i] + self._velocity_w[i]
            self.biases[i] = self.biases[i] + self._velocity_b[i]

    def _parameters_finite(self) -> bool:
        return all(np.all(np.isfinite(w)) for w in self.weights) and \
            all(np.all(np.isfinite(b)) for b in self.biases)

    def _snapshot(self):
        return (
            [w.copy() for w in self.weights],
            [b.copy() for b in self.biases],
            [v.copy() for v in self._velocity_w],
            [v.copy() for v in self._velocity_b],
        )

    def _restore(self, snapshot):
        weights, biases, vel_w, vel_b = snapshot
        self.weights = weights
        self.biases = biases
        self._velocity_w = vel_w
        self._velocity_b = vel_b

    # ── Parameters and serialization ──────────────────────────────────

    def get_params(self) -> Dict[str, np.ndarray]:
        """Get all parameters as a dict."""
        params = {}
        for i, (w, b) in enumerate(zip(self.weights, self.biases)):
            params[f'w{i}'] = w.copy()
            params[f'b{i}'] = b.copy()
        return params

    def set_params(self, params: Dict[str, np.ndarray]):
        """Set parameters from a dict."""
        for i in range(len(self.weights)):
            if f'w{i}' in params:
                self.weights[i] = np.array(params[f'w{i}'], dtype=np.float64)
            if f'b{i}' in params:
                self.biases[i] = np.array(params[f'b{i}'], dtype=np.float64)
        self._reset_velocity()

    def to_weights(self) -> NetworkWeights:
        return NetworkWeights(
            layers=[
                LayerWeights(weights=w.copy(), biases=b.copy())
                for w, b in zip(self.weights, self.biases)
            ],
            activation=self.activation,
            output_activation=self.output_activation,
            metadata={
                'learning_rate': self.learning_rate,
                'momentum': self.momentum,
            },
        )

    @classmethod
    def from_weights(cls, weights: NetworkWeights,
                     learning_rate: Optional[float] = None,
                     momentum: Optional[float] = None,
                     seed: Optional[int] = None) -> 'FeedForwardNetwork':
        meta = weights.metadata or {}
        net = cls(
            weights.layer_sizes,
            activation=weights.activation,
            output_activation=weights.output_activation,
            learning_rate=learning_rate if learning_rate is not None
            else meta.get('learning_rate', 0.1),
            momentum=momentum if momentum is not None else meta.get('momentum', 0.1),
            seed=seed,
        )
        net.weights = [l.weights.astype(np.float64).copy() for l in weights.layers]
        net.biases = [l.biases.astype(np.float64).copy() for l in weights.layers]
        net._reset_velocity()
        return net

    def copy(self) -> 'FeedForwardNetwork':
        clone = FeedForwardNetwork.from_weights(
            self.to_weights(),
            learning_rate=self.learning_rate,
            momentum=self.momentum,
            seed=int(self._rng.integers(0, 2 ** 31 - 1)),
        )
        clone.max_grad_norm = self.max_grad_norm
        return clone

    def save(self, filepath: str):
        """Save weights to a JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_weights().to_dict(), f)

    @classmethod
    def load(cls, filepath: str) -> 'FeedForwardNetwork':
        """Load a network from a JSON weights file."""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls.from_weights(NetworkWeights.from_dict(data))

    def __repr__(self) -> str:
        sizes = 'x'.join(str(s) for s in self.layer_sizes)
        return f"FeedForwardNetwork({sizes}, {self.activation})"
