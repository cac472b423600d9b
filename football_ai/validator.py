"""
Network Validator - decides whether a network is usable and repairs brains.
"""

import logging
from typing import Optional

import numpy as np

from football_ai.actions import NUM_OUTPUTS
from football_ai.brain import Brain, build_primary
from football_ai.config import TrainingConfig
from football_ai.features import CANONICAL_FEATURES, NUM_FEATURES
from football_ai.situation import SPECIALIZATIONS

logger = logging.getLogger(__name__)


def check_input(input_size: int) -> np.ndarray:
    if input_size == NUM_FEATURES:
        return CANONICAL_FEATURES
    return np.full(input_size, 0.5)


def is_valid(network, expected_outputs: Optional[int] = None) -> bool:
    """
    Run the network once on a fixed input and check the result.

    Valid means: the network exists, has a forward pass, and returns a
    finite vector of the expected length.
    """
    if network is None:
        return False
    try:
        out = np.asarray(network.forward(check_input(network.input_size)), dtype=np.float64)
    except (AttributeError, TypeError, ValueError):
        return False
    size = network.output_size if expected_outputs is None else expected_outputs
    return out.shape == (size,) and bool(np.all(np.isfinite(out)))


def recover(brain: Brain, config: Optional[TrainingConfig] = None,
            rng: Optional[np.random.Generator] = None) -> Brain:
    """
    Give the brain a usable primary network.

    Prefers promoting a copy of the first valid specialized network; with
    none available a fresh primary is pretrained on the seed dataset and the
    old weights are discarded. Always clears `needs_recovery`.
    """
    config = config or TrainingConfig()
    rng = rng if rng is not None else np.random.default_rng()

    if is_valid(brain.primary, NUM_OUTPUTS):
        brain.needs_recovery = False
        return brain

    for spec in SPECIALIZATIONS:
        candidate = brain.specialized.get(spec)
        if candidate is not None and is_valid(candidate.network, NUM_OUTPUTS) \
                and candidate.network.input_size == NUM_FEATURES:
            brain.primary = candidate.network.copy()
            brain.needs_recovery = False
            logger.warning(f"Primary network invalid; promoted copy of '{spec.value}' network")
            return brain

    brain.primary = build_primary(config, rng)
    brain.needs_recovery = False
    logger.warning("Primary network invalid; rebuilt from seed dataset")
    return brain
