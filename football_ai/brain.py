"""
Brain - all learning state owned by one agent.

A Brain is built completely at spawn: the primary network, the replay
buffer, and (when enabled) every specialized network plus the selector and
meta networks. Nothing is attached later; optional parts are simply None or
empty.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple

import numpy as np

from football_ai.actions import NUM_OUTPUTS, ActionOutput, ActionType
from football_ai.config import EngineConfig, TrainingConfig
from football_ai.features import NUM_FEATURES
from football_ai.replay import ExperienceReplay
from football_ai.seed_data import build_seed_dataset
from football_ai.situation import (
    SITUATION_SIZE, SPECIALIZATIONS, SituationContext, Specialization,
)
from neural.network import FeedForwardNetwork
from pitch.world import Role, Side

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Architecture:
    hidden: Tuple[int, ...]
    activation: str = 'leaky_relu'
    learning_rate: float = 0.05
    momentum: float = 0.1


ARCHITECTURES: Dict[Specialization, Architecture] = {
    Specialization.GENERAL: Architecture((16, 12, 8)),
    Specialization.ATTACKING: Architecture((20, 16, 12, 8), learning_rate=0.06),
    Specialization.DEFENDING: Architecture((16, 14, 10), learning_rate=0.04),
    Specialization.POSSESSION: Architecture((18, 14, 10, 6), momentum=0.15),
    Specialization.TRANSITION: Architecture((16, 12, 8), learning_rate=0.07),
    Specialization.SET_PIECE: Architecture((14, 10, 6), learning_rate=0.04),
}
SELECTOR_ARCHITECTURE = Architecture((12, 8, 6), activation='sigmoid')
META_ARCHITECTURE = Architecture((24, 16, 8), learning_rate=0.03, momentum=0.2)

META_INPUT_SIZE = SITUATION_SIZE + len(SPECIALIZATIONS)


@dataclass
class SpecializedNetwork:
    """A situational network and its running performance."""
    specialization: Specialization
    network: FeedForwardNetwork
    overall_success: float = 0.5
    situation_success: float = 0.5
    usage_count: int = 0

    def record(self, success: bool):
        self.usage_count += 1
        self.overall_success += ((1.0 if success else 0.0) - self.overall_success) / self.usage_count
        self.situation_success = self.overall_success


@dataclass
class ActionRecord:
    action: str
    success: bool
    specialization: Specialization = Specialization.GENERAL


@dataclass
class Brain:
    primary: FeedForwardNetwork
    replay: ExperienceReplay
    specialized: Dict[Specialization, SpecializedNetwork] = field(default_factory=dict)
    selector: Optional[FeedForwardNetwork] = None
    meta: Optional[FeedForwardNetwork] = None

    learning_stage: float = 0.1
    last_reward: float = 0.0
    cumulative_reward: float = 0.0
    action_history: Deque[ActionRecord] = field(default_factory=lambda: deque(maxlen=20))

    last_action: Optional[ActionType] = None
    last_output: Optional[ActionOutput] = None
    last_input: Optional[np.ndarray] = None
    last_situation: Optional[SituationContext] = None
    current_specialization: Specialization = Specialization.GENERAL

    needs_recovery: bool = False
    training_sessions: int = 0

    def record_action(self, action: str, success: bool):
        self.action_history.append(ActionRecord(action, success, self.current_specialization))

    def recent_actions(self) -> List[str]:
        return [r.action for r in self.action_history]

    def success_rate(self, action: Optional[str] = None) -> float:
        """Success rate over the history, for one action or overall (0.5 when unknown)."""
        records = [r for r in self.action_history if action is None or r.action == action]
        if not records:
            return 0.5
        return sum(1 for r in records if r.success) / len(records)

    @property
    def success_rates(self) -> Dict[str, float]:
        return {
            'shoot': self.success_rate('shoot'),
            'pass': self.success_rate('pass'),
            'intercept': self.success_rate('intercept'),
            'overall': self.success_rate(),
        }

    @property
    def active_network(self) -> FeedForwardNetwork:
        spec = self.specialized.get(self.current_specialization)
        return spec.network if spec is not None else self.primary


@dataclass
class Agent:
    """Engine-side owner of one Brain."""
    agent_id: str
    team_id: str
    side: Side
    role: Role
    brain: Brain

    @property
    def role_id(self) -> str:
        return self.role.value


# ── Construction ──────────────────────────────────────────────────────

def _seed(rng: np.random.Generator) -> int:
    return int(rng.integers(0, 2 ** 31 - 1))


def build_network(arch: Architecture, n_in: int, n_out: int,
                  rng: np.random.Generator) -> FeedForwardNetwork:
    return FeedForwardNetwork(
        [n_in, *arch.hidden, n_out],
        activation=arch.activation,
        learning_rate=arch.learning_rate,
        momentum=arch.momentum,
        seed=_seed(rng),
    )


def build_primary(config: TrainingConfig, rng: np.random.Generator,
                  pretrain: bool = True) -> FeedForwardNetwork:
    """Fresh primary network, pretrained on the archetype seed dataset."""
    net = FeedForwardNetwork(
        [NUM_FEATURES, *config.primary_hidden, NUM_OUTPUTS],
        activation=config.primary_activation,
        learning_rate=config.primary_learning_rate,
        momentum=config.primary_momentum,
        seed=_seed(rng),
    )
    if pretrain and config.pretrain_iterations > 0:
        inputs, targets = build_seed_dataset(rng)
        result = net.train(inputs, targets, iterations=config.pretrain_iterations,
                           error_threshold=0.005)
        logger.debug(f"Primary pretrained: error={result.error:.4f} after {result.iterations} iterations")
    return net


def build_specialists(config: TrainingConfig, rng: np.random.Generator
                      ) -> Dict[Specialization, SpecializedNetwork]:
    inputs, targets = build_seed_dataset(rng, samples_per_group=4)
    iterations = max(1, config.pretrain_iterations // 4)
    specialists = {}
    for spec in SPECIALIZATIONS:
        net = build_network(ARCHITECTURES[spec], NUM_FEATURES, NUM_OUTPUTS, rng)
        if config.pretrain_iterations > 0:
            net.train(inputs, targets, iterations=iterations)
        specialists[spec] = SpecializedNetwork(spec, net)
    return specialists


def create_brain(config: EngineConfig, rng: Optional[np.random.Generator] = None,
                 with_specialists: Optional[bool] = None) -> Brain:
    rng = rng if rng is not None else np.random.default_rng(config.seed)
    if with_specialists is None:
        with_specialists = config.ensemble.with_specialists

    specialized = build_specialists(config.training, rng) if with_specialists else {}
    selector = None
    meta = None
    if with_specialists and config.ensemble.with_selector:
        selector = build_network(SELECTOR_ARCHITECTURE, SITUATION_SIZE, len(SPECIALIZATIONS), rng)
    if with_specialists and config.ensemble.with_meta:
        meta = build_network(META_ARCHITECTURE, META_INPUT_SIZE, len(SPECIALIZATIONS), rng)

    return Brain(
        primary=build_primary(config.training, rng),
        replay=ExperienceReplay(config.replay.capacity, rng=np.random.default_rng(_seed(rng))),
        specialized=specialized,
        selector=selector,
        meta=meta,
        learning_stage=config.curriculum.initial_stage,
        action_history=deque(maxlen=config.training.action_history_size),
    )
