"""
Curriculum Scheduler - learning stage to training hyperparameters.

The learning stage is a scalar in [0.1, 1.0]. Higher stages mean a lower
learning rate, bigger replay batches, a stricter error threshold and a
larger reward scale. The stage moves with the agent's rolling success rate.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from football_ai.config import CurriculumConfig

logger = logging.getLogger(__name__)

MIN_STAGE = 0.1
MAX_STAGE = 1.0


@dataclass(frozen=True)
class CurriculumSettings:
    learning_rate: float
    batch_size: int
    error_threshold: float
    reward_scale: float


def _lerp(start: float, end: float, t: float) -> float:
    return start + (end - start) * t


class CurriculumScheduler:
    """Maps stage -> settings and updates the stage from outcome history."""

    def __init__(self, config: Optional[CurriculumConfig] = None):
        self.config = config or CurriculumConfig()

    def difficulty(self, stage: float) -> CurriculumSettings:
        c = self.config
        t = min(max(stage, MIN_STAGE), MAX_STAGE)
        return CurriculumSettings(
            learning_rate=_lerp(c.start_learning_rate, c.end_learning_rate, t),
            batch_size=int(_lerp(c.start_batch_size, c.end_batch_size, t)),
            error_threshold=_lerp(c.start_error_threshold, c.end_error_threshold, t),
            reward_scale=_lerp(1.0, c.max_reward_scale, t),
        )

    def next_stage(self, stage: float, outcomes: Sequence[bool]) -> float:
        """
        New stage from a history of success/failure flags (oldest first).

        An empty history leaves the stage unchanged.
        """
        if not outcomes:
            return stage
        c = self.config
        rate = sum(1 for o in outcomes if o) / len(outcomes)

        if rate > c.promote_threshold:
            stage += c.large_step
        elif rate > c.advance_threshold:
            stage += c.small_step
        elif rate < c.demote_threshold:
            stage -= c.large_step
        elif rate < c.retreat_threshold:
            stage -= c.small_step

        recent = list(outcomes)[-c.oscillation_window:]
        alternations = sum(1 for a, b in zip(recent, recent[1:]) if a != b)
        if alternations > c.oscillation_limit:
            stage -= c.oscillation_penalty

        return min(max(stage, MIN_STAGE), MAX_STAGE)

    def update_stage(self, brain) -> float:
        """Recompute and store the brain's learning stage."""
        before = brain.learning_stage
        after = self.next_stage(before, [r.success for r in brain.action_history])
        brain.learning_stage = after
        if after != before:
            logger.debug(f"Learning stage {before:.2f} -> {after:.2f}")
        return after
