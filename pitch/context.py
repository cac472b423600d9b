"""
Per-match context.

Holds the small amount of mutable state that outlives a single tick but not a
match: who has the ball, the trailing chain of ball touches used for goal
credit, and each side's momentum. One MatchContext is created per match and
reset at kick-off.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, List, Optional

from pitch.world import BallState, PlayerState, Position, Possession, Role, Side

logger = logging.getLogger(__name__)

POSSESSION_RADIUS = 30.0
CHAIN_LENGTH = 5
CHAIN_WINDOW = 8.0          # seconds


class PossessionTracker:
    """Closest player within POSSESSION_RADIUS of the ball owns it."""

    def __init__(self, radius: float = POSSESSION_RADIUS):
        self.radius = radius
        self.current: Optional[Possession] = None
        self.changes = 0

    def update(self, ball: BallState, players: Iterable[PlayerState]) -> Optional[Possession]:
        closest = None
        closest_dist = self.radius
        for p in players:
            d = p.position.distance_to(ball.position)
            if d <= closest_dist:
                closest, closest_dist = p, d

        if closest is None:
            # Loose ball: the last owner's side keeps nominal possession
            if self.current is not None:
                self.current = Possession(self.current.player_id, self.current.side,
                                          self.current.duration + 1)
            return self.current

        if self.current is not None and self.current.player_id == closest.player_id:
            self.current = Possession(closest.player_id, closest.side, self.current.duration + 1)
        else:
            if self.current is not None and self.current.side is not closest.side:
                self.changes += 1
            self.current = Possession(closest.player_id, closest.side, 0)
        return self.current

    def reset(self):
        self.current = None
        self.changes = 0


@dataclass(frozen=True)
class Touch:
    player_id: str
    side: Side
    role: Role
    action: str            # "shoot" / "pass" / "intercept" / "move"
    time: float            # match seconds
    position: Position


class TouchTracker:
    """Trailing chain of ball-touching actions."""

    def __init__(self, length: int = CHAIN_LENGTH, window: float = CHAIN_WINDOW):
        self.window = window
        self._touches: Deque[Touch] = deque(maxlen=length)

    def record(self, touch: Touch):
        self._touches.append(touch)

    @property
    def last(self) -> Optional[Touch]:
        return self._touches[-1] if self._touches else None

    def chain(self, now: float) -> List[Touch]:
        """Touches still inside the credit window, oldest first."""
        return [t for t in self._touches if 0.0 <= now - t.time <= self.window]

    def __len__(self):
        return len(self._touches)

    def reset(self):
        self._touches.clear()


class MatchContext:
    """Mutable per-match state shared by the engine and reward shaping."""

    MOMENTUM_GOAL_SWING = 0.2
    MOMENTUM_TURNOVER_SWING = 0.05
    MOMENTUM_DECAY = 0.01

    def __init__(self):
        self.possession = PossessionTracker()
        self.touches = TouchTracker()
        self.momentum: Dict[Side, float] = {Side.RED: 0.5, Side.BLUE: 0.5}

    def reset(self):
        self.possession.reset()
        self.touches.reset()
        self.momentum = {Side.RED: 0.5, Side.BLUE: 0.5}
        logger.debug("Match context reset")

    def update(self, ball: BallState, players: Iterable[PlayerState]) -> Optional[Possession]:
        """Advance one tick: possession, turnover momentum and decay."""
        before = self.possession.current
        now = self.possession.update(ball, players)
        if before is not None and now is not None and before.side is not now.side:
            self._swing(now.side, self.MOMENTUM_TURNOVER_SWING)

        for side in self.momentum:
            self.momentum[side] += (0.5 - self.momentum[side]) * self.MOMENTUM_DECAY
        return now

    def record_goal(self, scoring_side: Side):
        self._swing(scoring_side, self.MOMENTUM_GOAL_SWING)

    def _swing(self, side: Side, amount: float):
        self.momentum[side] = min(1.0, self.momentum[side] + amount)
        other = side.opponent
        self.momentum[other] = max(0.0, self.momentum[other] - amount)
