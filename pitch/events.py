"""
Match events reported back to the learning subsystem once an action resolves.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pitch.world import Position, Side


class OutcomeKind(Enum):
    GOAL = "goal"
    MISS = "miss"              # shot that did not score
    PASS = "pass"              # pass reached someone (see receiver_side)
    INTERCEPT = "intercept"    # ball won from an opponent


@dataclass(frozen=True)
class MatchOutcome:
    """
    A resolved action.

    For goals, `actor_id` is the last player to touch the ball and
    `scoring_side` the side credited with the goal; an own goal is a goal
    whose last touch came from the conceding side.
    """
    kind: OutcomeKind
    time: float
    actor_id: Optional[str] = None
    actor_side: Optional[Side] = None
    scoring_side: Optional[Side] = None
    receiver_side: Optional[Side] = None
    position: Optional[Position] = None

    @property
    def own_goal(self) -> bool:
        return (self.kind is OutcomeKind.GOAL
                and self.actor_side is not None
                and self.scoring_side is not None
                and self.actor_side is not self.scoring_side)

    def scored_for(self, side: Side) -> bool:
        return self.kind is OutcomeKind.GOAL and self.scoring_side is side

    def conceded_by(self, side: Side) -> bool:
        return self.kind is OutcomeKind.GOAL and self.scoring_side is side.opponent


@dataclass(frozen=True)
class PlayerCommand:
    """What the simulation is asked to do with one player this tick."""
    action: str = "move"       # "move" / "shoot" / "pass" / "intercept"
    dx: float = 0.0            # movement direction, [-1, 1]
    dy: float = 0.0
