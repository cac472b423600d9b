"""
Reward Shaper - resolved match outcome to a scalar training reward.

Terms are applied in a fixed order; later terms add to or replace earlier ones:

1. base          goal for us: +goal_reward; goal against or our missed shot: miss_penalty
2. positional    keepers/defenders far from their post when we concede
3. action        shot bonus (on target, close to goal) or wrong-direction
                 override; pass to a teammate / to an opponent; interception
4. last touch    bonus/penalty for the final touch before a goal
5. contribution  credit for recent touches in the build-up to our goal
6. own goal      replaces everything with own_goal_penalty

Every combination of inputs yields a finite reward; nothing here raises.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional

from football_ai.actions import ActionOutput, ActionType, movement_vector
from football_ai.config import RewardConfig
from pitch.context import Touch
from pitch.events import MatchOutcome, OutcomeKind
from pitch.world import GOAL_BOTTOM, GOAL_TOP, PITCH_DIAGONAL, Position, Role, Side

logger = logging.getLogger(__name__)


class Severity(IntEnum):
    """Ordering used for replay priority and training intensity."""
    ORDINARY = 0
    LAST_TOUCH = 1
    WRONG_DIRECTION = 2
    OWN_GOAL = 3


@dataclass
class RewardContext:
    """Where the agent stood and what led up to the outcome."""
    agent_id: str
    side: Side
    agent_position: Position
    target_position: Optional[Position] = None
    last_output: Optional[ActionOutput] = None
    touches: List[Touch] = field(default_factory=list)   # trailing chain, oldest first


@dataclass
class RewardBreakdown:
    total: float
    terms: Dict[str, float] = field(default_factory=dict)
    relabel_to_pass: bool = False
    severity: Severity = Severity.ORDINARY


def is_wrong_direction(side: Side, output: Optional[ActionOutput]) -> bool:
    """A shot whose horizontal direction points back at our own goal."""
    if output is None:
        return False
    dx, _ = movement_vector(output)
    return dx * side.attack_direction < 0


def shot_on_target(side: Side, origin: Position, output: Optional[ActionOutput]) -> bool:
    """Does the straight shot line cross the target goal line inside the mouth?"""
    if output is None:
        return False
    dx, dy = movement_vector(output)
    goal = side.target_goal
    if dx * side.attack_direction <= 1e-9:
        return False
    t = (goal.x - origin.x) / dx
    y = origin.y + dy * t
    return GOAL_TOP <= y <= GOAL_BOTTOM


def _positional_penalty(role: Role, outcome: MatchOutcome, context: RewardContext,
                        config: RewardConfig) -> float:
    if role is Role.GOALKEEPER:
        threshold, cap = config.goalkeeper_threshold, config.goalkeeper_max_penalty
    elif role is Role.DEFENDER:
        threshold, cap = config.defender_threshold, config.defender_max_penalty
    else:
        return 0.0

    if context.target_position is not None:
        reference = context.target_position
    elif outcome.position is not None:
        reference = outcome.position
    else:
        reference = context.side.own_goal

    excess = context.agent_position.distance_to(reference) - threshold
    if not math.isfinite(excess) or excess <= 0.0 or threshold <= 0.0:
        return 0.0
    return -cap * min(1.0, excess / threshold)


def _contribution(agent_id: str, now: float, touches: List[Touch], config: RewardConfig) -> float:
    window = config.contribution_window
    credit = 0.0
    for touch in touches:
        if touch.player_id != agent_id:
            continue
        elapsed = now - touch.time
        if elapsed < 0 or elapsed > window or window <= 0:
            continue
        decay = 1.0 - elapsed / window
        credit += (decay
                   * config.role_multipliers.get(touch.role.value, 1.0)
                   * config.action_multipliers.get(touch.action, 0.0))
    return min(credit, config.contribution_cap)


def shape_reward(outcome: MatchOutcome, last_action: Optional[ActionType], role: Role,
                 context: RewardContext, config: Optional[RewardConfig] = None) -> RewardBreakdown:
    config = config or RewardConfig()
    side = context.side
    is_actor = outcome.actor_id is not None and outcome.actor_id == context.agent_id
    scored = outcome.scored_for(side)
    conceded = outcome.conceded_by(side)
    terms: Dict[str, float] = {}
    severity = Severity.ORDINARY
    relabel = False

    # 1. Base outcome
    if scored:
        terms['base'] = config.goal_reward
    elif conceded or (outcome.kind is OutcomeKind.MISS and is_actor):
        terms['base'] = config.miss_penalty

    # 2. Positional discipline
    if conceded:
        penalty = _positional_penalty(role, outcome, context, config)
        if penalty:
            terms['positional'] = penalty

    # 3. Action-specific
    total = sum(terms.values())
    if last_action is ActionType.SHOOT and is_actor and \
            outcome.kind in (OutcomeKind.GOAL, OutcomeKind.MISS):
        if is_wrong_direction(side, context.last_output):
            terms = {'wrong_direction': config.wrong_direction_penalty}
            total = config.wrong_direction_penalty
            relabel = True
            severity = Severity.WRONG_DIRECTION
        else:
            on_target = shot_on_target(side, context.agent_position, context.last_output)
            proximity = 1.0 - min(1.0, context.agent_position.distance_to(side.target_goal) / PITCH_DIAGONAL)
            bonus = config.shot_bonus * (0.6 * (1.0 if on_target else 0.0) + 0.4 * proximity)
            terms['shot'] = bonus
            total += bonus
    elif outcome.kind is OutcomeKind.PASS and is_actor:
        if outcome.receiver_side is side:
            terms['pass'] = config.pass_success_bonus
        else:
            terms['pass'] = config.pass_lost_penalty
        total += terms['pass']
    elif outcome.kind is OutcomeKind.INTERCEPT and is_actor:
        terms['intercept'] = config.intercept_bonus
        total += config.intercept_bonus

    # 4. Last touch before a goal
    if outcome.kind is OutcomeKind.GOAL and is_actor and not outcome.own_goal:
        value = config.last_touch_reward if scored else config.last_touch_penalty
        terms['last_touch'] = value
        total += value
        severity = max(severity, Severity.LAST_TOUCH)

    # 5. Build-up credit
    if scored:
        credit = _contribution(context.agent_id, outcome.time, context.touches, config)
        if credit:
            terms['contribution'] = credit
            total += credit

    # 6. Own goal
    if outcome.own_goal and is_actor:
        terms = {'own_goal': config.own_goal_penalty}
        total = config.own_goal_penalty
        severity = Severity.OWN_GOAL
        relabel = last_action is ActionType.SHOOT

    if not math.isfinite(total):
        total = 0.0
    return RewardBreakdown(total=total, terms=terms, relabel_to_pass=relabel, severity=severity)


def reward(outcome: MatchOutcome, last_action: Optional[ActionType], role: Role,
           context: RewardContext, config: Optional[RewardConfig] = None) -> float:
    return shape_reward(outcome, last_action, role, context, config).total
