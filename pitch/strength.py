"""
Strength advantage from team ratings (ELO scale).

A team rated clearly above its opponent plays with a multiplier above 1 and
the weaker side with one below 1. Gaps under 20 points are treated as even.
"""

from dataclasses import dataclass
from typing import Dict

from pitch.world import Role

MIN_DIFFERENCE = 20.0
MAX_DIFFERENCE = 400.0
MAX_MULTIPLIER = 2.5
MIN_MULTIPLIER = 0.5

ROLE_SCALING: Dict[Role, float] = {
    Role.FORWARD: 1.15,
    Role.MIDFIELDER: 1.1,
    Role.DEFENDER: 0.95,
    Role.GOALKEEPER: 0.9,
}


@dataclass
class TeamAdvantage:
    multiplier: float          # [MIN_MULTIPLIER, MAX_MULTIPLIER]
    normalized: float          # [-1, 1], sign = who is stronger


def team_advantage(own_rating: float, opponent_rating: float) -> TeamAdvantage:
    diff = own_rating - opponent_rating
    if abs(diff) < MIN_DIFFERENCE:
        return TeamAdvantage(multiplier=1.0, normalized=0.0)

    ratio = min(abs(diff), MAX_DIFFERENCE) / MAX_DIFFERENCE
    if diff > 0:
        multiplier = 1.0 + ratio * (MAX_MULTIPLIER - 1.0)
    else:
        multiplier = 1.0 - ratio * (1.0 - MIN_MULTIPLIER)
    return TeamAdvantage(multiplier=multiplier, normalized=ratio if diff > 0 else -ratio)


def player_multiplier(role: Role, advantage: TeamAdvantage) -> float:
    """Role-scaled multiplier: attackers feel the advantage more than keepers."""
    scaled = 1.0 + (advantage.multiplier - 1.0) * ROLE_SCALING[role]
    return min(max(scaled, MIN_MULTIPLIER), MAX_MULTIPLIER)
