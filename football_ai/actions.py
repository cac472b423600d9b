"""
Action output of a decision network and how the simulation consumes it.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import numpy as np

from pitch.events import PlayerCommand

ACTION_FIELDS = ('move_x', 'move_y', 'shoot_probability', 'pass_probability',
                 'intercept_probability')
NUM_OUTPUTS = len(ACTION_FIELDS)

PASS_RANGE = 30.0
SHOOT_RANGE = 25.0
INTERCEPT_RANGE = 40.0
PASS_THRESHOLD = 0.6
SHOOT_THRESHOLD = 0.7
INTERCEPT_THRESHOLD = 0.6


class ActionType(Enum):
    MOVE = "move"
    SHOOT = "shoot"
    PASS = "pass"
    INTERCEPT = "intercept"


def _unit(value: float, default: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        return default
    return min(max(value, 0.0), 1.0)


@dataclass(frozen=True)
class ActionOutput:
    """
    Five independent scalars in [0, 1]; not a probability distribution.

    move_x / move_y encode a direction: 0.5 means stand still on that axis.
    """
    move_x: float = 0.5
    move_y: float = 0.5
    shoot_probability: float = 0.0
    pass_probability: float = 0.0
    intercept_probability: float = 0.0

    @classmethod
    def from_array(cls, values) -> 'ActionOutput':
        """Build from a network output, sanitising anything out of range."""
        v = np.asarray(values, dtype=np.float64).ravel()
        defaults = (0.5, 0.5, 0.0, 0.0, 0.0)
        padded = [v[i] if i < v.shape[0] else defaults[i] for i in range(NUM_OUTPUTS)]
        return cls(*(_unit(x, d) for x, d in zip(padded, defaults)))

    def to_array(self) -> np.ndarray:
        return np.array([self.move_x, self.move_y, self.shoot_probability,
                         self.pass_probability, self.intercept_probability])

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.to_array())))


NEUTRAL_OUTPUT = ActionOutput()


def movement_vector(output: ActionOutput) -> Tuple[float, float]:
    """Map move_x / move_y from [0, 1] onto a direction in [-1, 1]^2."""
    return (output.move_x * 2.0 - 1.0, output.move_y * 2.0 - 1.0)


def determine_action(output: ActionOutput, distance_to_ball: float) -> ActionType:
    if distance_to_ball < PASS_RANGE and output.pass_probability > PASS_THRESHOLD:
        return ActionType.PASS
    if distance_to_ball < SHOOT_RANGE and output.shoot_probability > SHOOT_THRESHOLD:
        return ActionType.SHOOT
    if distance_to_ball < INTERCEPT_RANGE and output.intercept_probability > INTERCEPT_THRESHOLD:
        return ActionType.INTERCEPT
    return ActionType.MOVE


def to_command(output: ActionOutput, action: ActionType) -> PlayerCommand:
    dx, dy = movement_vector(output)
    return PlayerCommand(action=action.value, dx=dx, dy=dy)
