"""
World Model - Immutable per-tick snapshot of a football match.

The simulation/physics layer builds one WorldSnapshot per tick; everything in
the learning subsystem reads from it and never mutates it.

Coordinates are pixels on an 800 x 600 pitch:
- Red defends the goal at x = 0 and attacks towards +x
- Blue defends the goal at x = 800 and attacks towards -x
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

PITCH_WIDTH = 800.0
PITCH_HEIGHT = 600.0
PITCH_DIAGONAL = math.hypot(PITCH_WIDTH, PITCH_HEIGHT)   # 1000
GOAL_MOUTH = 160.0
GOAL_TOP = (PITCH_HEIGHT - GOAL_MOUTH) / 2
GOAL_BOTTOM = (PITCH_HEIGHT + GOAL_MOUTH) / 2


class Side(Enum):
    RED = "red"
    BLUE = "blue"

    @property
    def opponent(self) -> 'Side':
        return Side.BLUE if self is Side.RED else Side.RED

    @property
    def attack_direction(self) -> int:
        """+1 when attacking towards x = PITCH_WIDTH, -1 otherwise."""
        return 1 if self is Side.RED else -1

    @property
    def own_goal(self) -> 'Position':
        x = 0.0 if self is Side.RED else PITCH_WIDTH
        return Position(x, PITCH_HEIGHT / 2)

    @property
    def target_goal(self) -> 'Position':
        return self.opponent.own_goal


class Role(Enum):
    GOALKEEPER = "goalkeeper"
    DEFENDER = "defender"
    MIDFIELDER = "midfielder"
    FORWARD = "forward"

    @property
    def code(self) -> str:
        return {
            Role.GOALKEEPER: "GK",
            Role.DEFENDER: "DEF",
            Role.MIDFIELDER: "MID",
            Role.FORWARD: "FWD",
        }[self]


@dataclass(frozen=True)
class Position:
    x: float
    y: float

    def distance_to(self, other: 'Position') -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def angle_to(self, other: 'Position') -> float:
        """Angle in radians, in [-pi, pi]."""
        return math.atan2(other.y - self.y, other.x - self.x)

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)

    def clamped(self) -> 'Position':
        """Bring a malformed position back onto the pitch."""
        x = self.x if math.isfinite(self.x) else PITCH_WIDTH / 2
        y = self.y if math.isfinite(self.y) else PITCH_HEIGHT / 2
        return Position(min(max(x, 0.0), PITCH_WIDTH), min(max(y, 0.0), PITCH_HEIGHT))


@dataclass(frozen=True)
class BallState:
    position: Position
    velocity_x: float = 0.0
    velocity_y: float = 0.0

    @property
    def speed(self) -> float:
        if not (math.isfinite(self.velocity_x) and math.isfinite(self.velocity_y)):
            return 0.0
        return math.hypot(self.velocity_x, self.velocity_y)


@dataclass(frozen=True)
class PlayerState:
    player_id: str
    side: Side
    role: Role
    position: Position
    target_position: Optional[Position] = None


@dataclass(frozen=True)
class Score:
    red: int = 0
    blue: int = 0

    def for_side(self, side: Side) -> int:
        return self.red if side is Side.RED else self.blue

    def differential(self, side: Side) -> int:
        return self.for_side(side) - self.for_side(side.opponent)


@dataclass(frozen=True)
class Possession:
    player_id: str
    side: Side
    duration: int = 0      # ticks


@dataclass(frozen=True)
class WorldSnapshot:
    """Everything the learning subsystem may know about one tick."""
    ball: BallState
    players: List[PlayerState] = field(default_factory=list)
    score: Score = field(default_factory=Score)
    elapsed: float = 0.0             # seconds
    match_duration: float = 90.0     # seconds
    team_strength: Dict[Side, float] = field(default_factory=dict)
    possession: Optional[Possession] = None
    is_set_piece: bool = False

    def player(self, player_id: str) -> Optional[PlayerState]:
        for p in self.players:
            if p.player_id == player_id:
                return p
        return None

    def teammates(self, player: PlayerState) -> List[PlayerState]:
        return [p for p in self.players
                if p.side is player.side and p.player_id != player.player_id]

    def opponents(self, player: PlayerState) -> List[PlayerState]:
        return [p for p in self.players if p.side is not player.side]

    def strength(self, side: Side) -> float:
        return self.team_strength.get(side, 1500.0)

    @property
    def progress(self) -> float:
        """Fraction of the match played, in [0, 1]."""
        if not (self.match_duration > 0) or not math.isfinite(self.elapsed):
            return 0.0
        return min(max(self.elapsed / self.match_duration, 0.0), 1.0)
