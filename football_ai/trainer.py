"""
Trainer - one online learning step per resolved action.

For the agent responsible for (or affected by) an outcome:
1. Shape the reward and build the training target from the last decision
2. Map the event severity to a replay priority and store the example
3. Immediate update of the primary (and active specialized) network,
   harder and faster for own goals and wrong-direction shots
4. Experience-replay update once the buffer holds a full batch
5. Bookkeeping: action history, specialist performance, selector nudge
6. Curriculum stage update, then validation / recovery of the primary
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np

from football_ai.actions import NEUTRAL_OUTPUT, ActionType
from football_ai.brain import Agent, Brain
from football_ai.config import EngineConfig
from football_ai.curriculum import CurriculumScheduler, CurriculumSettings
from football_ai.features import NUM_FEATURES
from football_ai.reward import RewardBreakdown, RewardContext, Severity, shape_reward
from football_ai.situation import SPECIALIZATIONS
from football_ai.validator import is_valid, recover
from neural.network import TrainingResult
from pitch.events import MatchOutcome
from pitch.world import Role, Side

logger = logging.getLogger(__name__)

ACTION_SLOTS: Dict[ActionType, int] = {
    ActionType.SHOOT: 2,
    ActionType.PASS: 3,
    ActionType.INTERCEPT: 4,
}


@dataclass
class TrainingReport:
    reward: float
    breakdown: RewardBreakdown
    priority: float
    learning_stage: float
    immediate: Optional[TrainingResult] = None
    replay: Optional[TrainingResult] = None
    replay_skipped: bool = False
    recovered: bool = False

    @property
    def severe(self) -> bool:
        return self.breakdown.severity >= Severity.WRONG_DIRECTION


class Trainer:
    def __init__(self, config: Optional[EngineConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        self.config = config or EngineConfig()
        self.curriculum = CurriculumScheduler(self.config.curriculum)
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)

    # ── Targets and priorities ────────────────────────────────────────

    def priority(self, severity: Severity) -> float:
        r = self.config.replay
        return {
            Severity.OWN_GOAL: r.own_goal_priority,
            Severity.WRONG_DIRECTION: r.wrong_direction_priority,
            Severity.LAST_TOUCH: r.last_touch_priority,
        }.get(severity, r.ordinary_priority)

    def build_target(self, agent: Agent, outcome: MatchOutcome, breakdown: RewardBreakdown,
                     context: RewardContext, settings: CurriculumSettings) -> np.ndarray:
        brain = agent.brain
        target = (brain.last_output or NEUTRAL_OUTPUT).to_array()
        scaled = breakdown.total * settings.reward_scale
        strength = min(1.0, abs(scaled) / 2.0)

        if breakdown.relabel_to_pass:
            # Teach a pass forward instead of repeating the shot
            target[0] = 1.0 if agent.side is Side.RED else 0.0
            target[2] = 0.0
            target[3] = 1.0
            return target

        if agent.role is Role.GOALKEEPER and outcome.conceded_by(agent.side):
            ball_y = outcome.position.y if outcome.position is not None else context.agent_position.y
            target[0] = 0.5
            target[1] = 1.0 if ball_y > context.agent_position.y else 0.0
            target[2] = 0.0
            target[3] = 0.0
            target[4] = 1.0
            return target

        slot = ACTION_SLOTS.get(brain.last_action)
        if slot is not None:
            if scaled > 0:
                target[slot] += strength * (1.0 - target[slot])
            elif scaled < 0:
                target[slot] -= strength * target[slot]

        # Keep a rewarded heading, soften a punished one
        factor = 1.0 + strength if scaled > 0 else 1.0 - strength
        target[0] = 0.5 + (target[0] - 0.5) * factor
        target[1] = 0.5 + (target[1] - 0.5) * factor
        return np.clip(target, 0.0, 1.0)

    def _intensity(self, severity: Severity):
        t = self.config.training
        if severity is Severity.WRONG_DIRECTION:
            return t.wrong_direction_iterations, t.wrong_direction_lr_multiplier
        if severity is Severity.OWN_GOAL:
            return t.own_goal_iterations, t.own_goal_lr_multiplier
        return t.base_iterations, 1.0

    # ── Training step ─────────────────────────────────────────────────

    def train_step(self, agent: Agent, outcome: MatchOutcome, context: RewardContext,
                   allow_replay: bool = True) -> TrainingReport:
        brain = agent.brain
        settings = self.curriculum.difficulty(brain.learning_stage)
        breakdown = shape_reward(outcome, brain.last_action, agent.role, context, self.config.reward)
        priority = self.priority(breakdown.severity)
        report = TrainingReport(
            reward=breakdown.total,
            breakdown=breakdown,
            priority=priority,
            learning_stage=brain.learning_stage,
        )

        if breakdown.severity is Severity.OWN_GOAL:
            logger.warning(f"Own goal by {agent.agent_id}: reward {breakdown.total:.2f}")
        elif breakdown.severity is Severity.WRONG_DIRECTION:
            logger.info(f"Wrong-direction shot by {agent.agent_id}: reward {breakdown.total:.2f}")

        brain.last_reward = breakdown.total
        brain.cumulative_reward += breakdown.total

        x = brain.last_input
        if x is not None and np.shape(x) == (NUM_FEATURES,):
            target = self.build_target(agent, outcome, breakdown, context, settings)
            brain.replay.insert(x, target, breakdown.total, priority)
            report.immediate = self._immediate_update(brain, x, target, breakdown.severity, settings)

            if len(brain.replay) >= settings.batch_size:
                if allow_replay:
                    report.replay = self._replay_update(brain, settings)
                else:
                    report.replay_skipped = True

        self._record(brain, breakdown.total > 0)
        brain.training_sessions += 1
        report.learning_stage = self.curriculum.update_stage(brain)

        if brain.needs_recovery or not is_valid(brain.primary):
            recover(brain, self.config.training, self.rng)
            report.recovered = True
        return report

    def _immediate_update(self, brain: Brain, x: np.ndarray, target: np.ndarray,
                          severity: Severity, settings: CurriculumSettings) -> TrainingResult:
        iterations, multiplier = self._intensity(severity)
        result = brain.primary.train(
            x, target,
            iterations=iterations,
            learning_rate=settings.learning_rate * multiplier,
            error_threshold=settings.error_threshold,
        )

        member = brain.specialized.get(brain.current_specialization)
        if self.config.training.train_specialists and member is not None:
            member.network.train(
                x, target,
                iterations=iterations,
                learning_rate=member.network.learning_rate * multiplier,
                error_threshold=settings.error_threshold,
            )
        return result

    def _replay_update(self, brain: Brain, settings: CurriculumSettings) -> Optional[TrainingResult]:
        inputs, outputs, _, priorities = brain.replay.sample_arrays(settings.batch_size)
        if inputs.shape[0] == 0:
            return None
        result = brain.primary.train(
            inputs, outputs,
            iterations=self.config.training.replay_iterations,
            learning_rate=settings.learning_rate,
            error_threshold=settings.error_threshold,
            sample_weights=priorities,
        )

        spec = brain.current_specialization
        member = brain.specialized.get(spec)
        if self.config.training.train_specialists and member is not None:
            s_in, s_out, _, _ = brain.replay.sample_arrays(settings.batch_size, spec)
            if s_in.shape[0] > 0:
                member.network.train(s_in, s_out, iterations=self.config.training.replay_iterations,
                                     error_threshold=settings.error_threshold)
        return result

    def _record(self, brain: Brain, success: bool):
        action = brain.last_action.value if brain.last_action is not None else ActionType.MOVE.value
        brain.record_action(action, success)

        member = brain.specialized.get(brain.current_specialization)
        if member is not None:
            member.record(success)

        # Nudge the selector towards (or away from) the specialization it backed
        if brain.last_situation is not None and is_valid(brain.selector, len(SPECIALIZATIONS)):
            situation = brain.last_situation.to_vector()
            target = np.asarray(brain.selector.forward(situation)).copy()
            target[SPECIALIZATIONS.index(brain.current_specialization)] = 1.0 if success else 0.0
            brain.selector.train(situation, target, iterations=1,
                                 learning_rate=self.config.training.selector_learning_rate)
