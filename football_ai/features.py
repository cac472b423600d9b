"""
Feature layout shared by the encoder, the networks and the replay predicates.

The order of FEATURE_NAMES is the network input order and must never change
for stored models to stay usable.
"""

from typing import Dict, List

import numpy as np

FEATURE_NAMES: List[str] = [
    # Spatial
    'ball_x',                        # 0
    'ball_y',
    'agent_x',
    'agent_y',
    'distance_to_ball',
    'angle_to_ball',                 # 5
    'distance_to_own_goal',
    'angle_to_own_goal',
    'distance_to_target_goal',
    'angle_to_target_goal',
    'ball_distance_to_own_goal',     # 10
    'ball_distance_to_target_goal',
    'nearest_teammate_distance',
    'nearest_teammate_angle',
    'second_teammate_distance',
    'nearest_opponent_distance',     # 15
    'nearest_opponent_angle',
    'second_opponent_distance',
    'formation_distance',
    'is_nearest_to_ball',
    'in_attacking_third',            # 20
    'in_defensive_third',
    'is_set_piece',
    'ball_in_own_half',
    # Kinematic
    'ball_velocity_x',
    'ball_velocity_y',               # 25
    'ball_speed',
    'ball_approach_own_goal',
    # Tactical
    'teammate_density',
    'opponent_density',
    'zone_control',                  # 30
    'space_creation',
    'passing_lane_quality',
    'pressure_index',
    'formation_compactness',
    'formation_width',               # 35
    'shooting_angle',
    'shooting_quality',
    'support_count',
    'cover_quality',
    'counter_attack_potential',      # 40
    'territorial_control',
    'team_spacing',
    'defensive_line_height',
    'opponents_goal_side',
    'ball_side_overload',            # 45
    # Contextual
    'game_time',
    'score_differential',
    'team_strength',
    'opponent_strength',
    'strength_advantage',            # 50
    'momentum',
    'possession_duration',
    'has_possession',
    'recent_success_rate',
    'agent_has_ball',                # 55
    'opponent_momentum',
    'role_encoding',
    'side',
    'strength_multiplier',           # 59
]

NUM_FEATURES = len(FEATURE_NAMES)
FEATURE_INDEX: Dict[str, int] = {name: i for i, name in enumerate(FEATURE_NAMES)}

# Fields normalized to [-1, 1]; everything else lives in [0, 1]
SIGNED_FEATURES = frozenset({
    'angle_to_ball',
    'angle_to_own_goal',
    'angle_to_target_goal',
    'nearest_teammate_angle',
    'nearest_opponent_angle',
    'ball_velocity_x',
    'ball_velocity_y',
    'score_differential',
    'strength_advantage',
})

_SIGNED_MASK = np.array([name in SIGNED_FEATURES for name in FEATURE_NAMES])
_LOWER = np.where(_SIGNED_MASK, -1.0, 0.0)
_UPPER = np.ones(NUM_FEATURES)

# Fixed reference vector: mid-range for unsigned fields, zero for signed ones
CANONICAL_FEATURES = np.where(_SIGNED_MASK, 0.0, 0.5)
CANONICAL_FEATURES.setflags(write=False)


def feature(vector: np.ndarray, name: str) -> float:
    return float(vector[FEATURE_INDEX[name]])


def sanitize_features(values) -> np.ndarray:
    """
    Replace NaN/inf by the canonical value and clamp every field to its range.

    Always returns a fresh float64 vector of NUM_FEATURES entries; short
    inputs are padded with canonical values and long ones truncated.
    """
    raw = np.asarray(values, dtype=np.float64).ravel()
    out = CANONICAL_FEATURES.copy()
    n = min(raw.shape[0], NUM_FEATURES)
    out[:n] = raw[:n]
    bad = ~np.isfinite(out)
    if bad.any():
        out[bad] = CANONICAL_FEATURES[bad]
    return np.clip(out, _LOWER, _UPPER)


def is_in_range(vector: np.ndarray) -> bool:
    v = np.asarray(vector, dtype=np.float64)
    return (v.shape == (NUM_FEATURES,)
            and bool(np.all(np.isfinite(v)))
            and bool(np.all(v >= _LOWER))
            and bool(np.all(v <= _UPPER)))
