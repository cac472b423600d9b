"""
Situation analysis for specialization selection.

A SituationContext is derived from the agent's FeatureVector and its recent
actions every decision; it is never stored. It drives:
- the fixed heuristic weight table used to pick a specialization
- the per-network confidence used by the blending combiner
- the input of the selector and meta networks
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence, Tuple

import numpy as np

from football_ai.features import FEATURE_INDEX


class Specialization(Enum):
    GENERAL = "general"
    ATTACKING = "attacking"
    DEFENDING = "defending"
    POSSESSION = "possession"
    TRANSITION = "transition"
    SET_PIECE = "set_piece"


SPECIALIZATIONS: List[Specialization] = list(Specialization)


@dataclass(frozen=True)
class SituationContext:
    is_defensive_third: bool
    is_middle_third: bool
    is_attacking_third: bool
    has_possession: bool
    is_transitioning: bool
    is_set_piece: bool
    defensive_pressure: float
    distance_to_ball: float = 0.5
    distance_to_own_goal: float = 0.5
    distance_to_target_goal: float = 0.5

    def flags(self) -> List[str]:
        """Names of the situation flags that currently hold."""
        active = []
        if self.is_attacking_third:
            active.append('attacking_third')
            if self.has_possession:
                active.append('attacking_with_possession')
        if self.is_defensive_third:
            active.append('defensive_third')
            if not self.has_possession:
                active.append('defending_without_possession')
        if self.has_possession:
            active.append('has_possession')
            if self.is_middle_third:
                active.append('middle_with_possession')
        if self.is_transitioning:
            active.append('transitioning')
        if self.is_set_piece:
            active.append('set_piece')
        if self.defensive_pressure > 0.7:
            active.append('high_pressure')
        return active

    def to_vector(self) -> np.ndarray:
        return np.array([
            float(self.is_defensive_third),
            float(self.is_middle_third),
            float(self.is_attacking_third),
            float(self.has_possession),
            float(self.is_transitioning),
            float(self.is_set_piece),
            self.defensive_pressure,
            self.distance_to_ball,
            self.distance_to_own_goal,
            self.distance_to_target_goal,
        ])


SITUATION_SIZE = 10


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def analyze_situation(features: np.ndarray,
                      recent_actions: Sequence[str] = ()) -> SituationContext:
    """
    Derive the situation from an encoded FeatureVector.

    `recent_actions` are action names, oldest first; the agent is
    transitioning when either of the last two was a pass or an interception.
    """
    def get(name):
        return float(features[FEATURE_INDEX[name]])

    attacking = get('in_attacking_third') > 0.5
    defensive = get('in_defensive_third') > 0.5
    last_two = list(recent_actions)[-2:]
    transitioning = len(last_two) == 2 and any(a in ('pass', 'intercept') for a in last_two)
    distance_to_own_goal = get('distance_to_own_goal')

    return SituationContext(
        is_defensive_third=defensive,
        is_middle_third=not attacking and not defensive,
        is_attacking_third=attacking,
        has_possession=get('has_possession') > 0.5,
        is_transitioning=transitioning,
        is_set_piece=get('is_set_piece') > 0.5,
        defensive_pressure=_clamp(0.7 * get('opponent_density') + 0.3 * (1.0 - distance_to_own_goal)),
        distance_to_ball=get('distance_to_ball'),
        distance_to_own_goal=distance_to_own_goal,
        distance_to_target_goal=get('distance_to_target_goal'),
    )


# ── Heuristic weights ─────────────────────────────────────────────────

BASE_WEIGHTS: Dict[Specialization, float] = {
    Specialization.GENERAL: 0.2,
    Specialization.ATTACKING: 0.1,
    Specialization.DEFENDING: 0.1,
    Specialization.POSSESSION: 0.1,
    Specialization.TRANSITION: 0.1,
    Specialization.SET_PIECE: 0.05,
}

HEURISTIC_WEIGHTS: Dict[Tuple[str, Specialization], float] = {
    ('attacking_third', Specialization.ATTACKING): 0.6,
    ('attacking_with_possession', Specialization.ATTACKING): 0.9,
    ('defensive_third', Specialization.DEFENDING): 0.8,
    ('defending_without_possession', Specialization.DEFENDING): 0.9,
    ('high_pressure', Specialization.DEFENDING): 0.6,
    ('has_possession', Specialization.POSSESSION): 0.7,
    ('middle_with_possession', Specialization.POSSESSION): 0.8,
    ('transitioning', Specialization.TRANSITION): 0.8,
    ('set_piece', Specialization.SET_PIECE): 0.9,
}


def heuristic_weight(situation: SituationContext, specialization: Specialization) -> float:
    weight = BASE_WEIGHTS[specialization]
    for flag in situation.flags():
        weight = max(weight, HEURISTIC_WEIGHTS.get((flag, specialization), 0.0))
    return weight


def rules_based_choice(situation: SituationContext) -> Specialization:
    """Fixed priority order, used when there is nothing better to go on."""
    if situation.is_defensive_third and not situation.has_possession:
        return Specialization.DEFENDING
    if situation.is_attacking_third and situation.has_possession:
        return Specialization.ATTACKING
    if situation.has_possession and situation.is_middle_third:
        return Specialization.POSSESSION
    if situation.is_transitioning:
        return Specialization.TRANSITION
    if situation.is_set_piece:
        return Specialization.SET_PIECE
    return Specialization.GENERAL


def network_confidence(specialization: Specialization, situation_success: float,
                       situation: SituationContext) -> float:
    """Performance-based confidence scaled by how well the situation fits."""
    c = situation_success
    if specialization is Specialization.ATTACKING:
        c *= 1.5 if situation.is_attacking_third else 0.5
        c *= 1.3 if situation.has_possession else 0.7
    elif specialization is Specialization.DEFENDING:
        c *= 1.5 if situation.is_defensive_third else 0.5
        c *= 1.3 if not situation.has_possession else 0.7
    elif specialization is Specialization.POSSESSION:
        c *= 1.5 if situation.has_possession else 0.4
        c *= 1.2 if situation.is_middle_third else 0.8
    elif specialization is Specialization.TRANSITION:
        c *= 1.6 if situation.is_transitioning else 0.5
    elif specialization is Specialization.SET_PIECE:
        c *= 2.0 if situation.is_set_piece else 0.3
    else:
        c *= 0.8
    return min(max(c, 0.1), 1.0)


# ── Replay relevance ──────────────────────────────────────────────────

def is_relevant(specialization: Specialization, features: np.ndarray) -> bool:
    """Does a stored input belong to this specialization's situations?"""
    def get(name):
        return float(features[FEATURE_INDEX[name]])

    if specialization is Specialization.ATTACKING:
        return get('distance_to_target_goal') < 0.35 and get('has_possession') > 0.5
    if specialization is Specialization.DEFENDING:
        return get('distance_to_own_goal') < 0.35 or get('in_defensive_third') > 0.5
    if specialization is Specialization.POSSESSION:
        return get('has_possession') > 0.5 and 0.3 < get('distance_to_target_goal') < 0.7
    if specialization is Specialization.TRANSITION:
        return get('ball_speed') > 0.4
    if specialization is Specialization.SET_PIECE:
        return get('is_set_piece') > 0.5 or (
            get('ball_speed') < 0.02 and get('distance_to_ball') < 0.05
        )
    return True
