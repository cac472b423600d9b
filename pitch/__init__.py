"""
Pitch - the world model the learning agents observe.

- world: geometry constants and the immutable per-tick WorldSnapshot
- formations: 3-4-3 slot layout, mirrored per side
- strength: rating-based team and player advantage
- context: per-match possession, touch chain and momentum
- sandbox: a small match simulation for demos and integration tests
"""

from pitch.world import (
    PITCH_WIDTH, PITCH_HEIGHT, PITCH_DIAGONAL, GOAL_MOUTH, GOAL_TOP, GOAL_BOTTOM,
    Side, Role, Position, BallState, PlayerState, Score, Possession, WorldSnapshot,
)
from pitch.events import MatchOutcome, OutcomeKind, PlayerCommand
from pitch.context import MatchContext, PossessionTracker, TouchTracker, Touch
from pitch.sandbox import SandboxMatch

__all__ = [
    "PITCH_WIDTH", "PITCH_HEIGHT", "PITCH_DIAGONAL", "GOAL_MOUTH", "GOAL_TOP", "GOAL_BOTTOM",
    "Side", "Role", "Position", "BallState", "PlayerState", "Score", "Possession",
    "WorldSnapshot", "MatchOutcome", "OutcomeKind", "PlayerCommand",
    "MatchContext", "PossessionTracker", "TouchTracker", "Touch", "SandboxMatch",
]
