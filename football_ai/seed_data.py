"""
Synthetic seed dataset used to pretrain fresh networks.

Coarse behavioral archetypes (idle / defensive / balanced / aggressive),
side-aware shooting samples and own-goal avoidance samples. The data only
needs to push a new network away from degenerate outputs, not to play well.
"""

from typing import Dict, Tuple

import numpy as np

from football_ai.features import CANONICAL_FEATURES, FEATURE_INDEX, NUM_FEATURES, sanitize_features

ARCHETYPES = ('idle', 'defensive', 'balanced', 'aggressive')


def _base(rng: np.random.Generator) -> np.ndarray:
    x = CANONICAL_FEATURES.copy() + rng.uniform(-0.3, 0.3, NUM_FEATURES)
    return x


def _set(x: np.ndarray, values: Dict[str, float]):
    for name, value in values.items():
        x[FEATURE_INDEX[name]] = value


def _archetype_sample(archetype: str, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    x = _base(rng)
    u = rng.uniform
    if archetype == 'idle':
        _set(x, {'distance_to_ball': u(0.5, 1.0), 'ball_speed': u(0.0, 0.1),
                 'has_possession': 0.0, 'pressure_index': u(0.0, 0.2)})
        y = [0.5 + u(-0.05, 0.05), 0.5 + u(-0.05, 0.05), 0.05, 0.05, 0.05]
    elif archetype == 'defensive':
        _set(x, {'in_defensive_third': 1.0, 'distance_to_own_goal': u(0.0, 0.3),
                 'has_possession': 0.0, 'distance_to_ball': u(0.0, 0.2),
                 'ball_approach_own_goal': u(0.3, 1.0)})
        y = [0.5 + u(-0.2, 0.2), 0.5 + u(-0.2, 0.2), 0.05, 0.3, 0.85]
    elif archetype == 'balanced':
        _set(x, {'has_possession': 1.0, 'distance_to_target_goal': u(0.3, 0.7),
                 'passing_lane_quality': u(0.5, 1.0), 'distance_to_ball': u(0.0, 0.05)})
        y = [0.5 + u(-0.2, 0.2), 0.5 + u(-0.2, 0.2), 0.1, 0.75, 0.2]
    else:
        _set(x, {'in_attacking_third': 1.0, 'has_possession': 1.0,
                 'distance_to_target_goal': u(0.05, 0.3), 'shooting_quality': u(0.4, 1.0),
                 'distance_to_ball': u(0.0, 0.03)})
        y = [0.5 + u(-0.2, 0.2), 0.5 + u(-0.1, 0.1), 0.85, 0.15, 0.05]
    return sanitize_features(x), np.array(y)


def _shooting_sample(side: str, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """Close to the target goal: shoot towards it, never back at our own."""
    x = _base(rng)
    u = rng.uniform
    red = side == 'red'
    _set(x, {
        'side': 0.0 if red else 1.0,
        'agent_x': u(0.65, 0.95) if red else u(0.05, 0.35),
        'ball_x': u(0.65, 0.95) if red else u(0.05, 0.35),
        'distance_to_target_goal': u(0.1, 0.4),
        'distance_to_own_goal': u(0.7, 1.0),
        'distance_to_ball': u(0.0, 0.03),
        'in_attacking_third': 1.0,
        'has_possession': 1.0,
    })
    move_x = u(0.8, 1.0) if red else u(0.0, 0.2)
    y = [move_x, 0.5 + u(-0.1, 0.1), u(0.8, 1.0), u(0.0, 0.2), u(0.0, 0.1)]
    return sanitize_features(x), np.array(y)


def _own_goal_avoidance_sample(side: str, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """Near our own goal with the ball: pass it out, move away from goal."""
    x = _base(rng)
    u = rng.uniform
    red = side == 'red'
    _set(x, {
        'side': 0.0 if red else 1.0,
        'distance_to_own_goal': u(0.0, 0.25),
        'distance_to_target_goal': u(0.7, 1.0),
        'in_defensive_third': 1.0,
        'distance_to_ball': u(0.0, 0.03),
        'nearest_teammate_distance': u(0.0, 0.4),
    })
    move_x = u(0.7, 0.9) if red else u(0.1, 0.3)
    y = [move_x, 0.5 + u(-0.1, 0.1), 0.0, u(0.7, 0.9), u(0.1, 0.3)]
    return sanitize_features(x), np.array(y)


def build_seed_dataset(rng: np.random.Generator,
                       samples_per_group: int = 8) -> Tuple[np.ndarray, np.ndarray]:
    """
    Returns:
        (inputs, targets) with shapes (N, NUM_FEATURES) and (N, NUM_OUTPUTS)
    """
    inputs, targets = [], []
    for _ in range(samples_per_group):
        for archetype in ARCHETYPES:
            x, y = _archetype_sample(archetype, rng)
            inputs.append(x)
            targets.append(y)
        for side in ('red', 'blue'):
            for make in (_shooting_sample, _own_goal_avoidance_sample):
                x, y = make(side, rng)
                inputs.append(x)
                targets.append(y)
    return np.array(inputs), np.clip(np.array(targets), 0.0, 1.0)
