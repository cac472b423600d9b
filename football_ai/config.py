"""
Engine Configuration - every tunable of the learning subsystem.

Sections:
- EnsembleConfig: specialization selection and output combination
- RewardConfig: reward-shaping constants
- CurriculumConfig: stage -> hyperparameter ranges and stage steps
- ReplayConfig: buffer capacity and event priorities
- TrainingConfig: network shapes and update schedule
- SchedulingConfig: tick rate, load shedding, persistence gating, learning policy
- PersistenceConfig: model store (see persistence.config)

Environment overrides use FOOTBALL_AI_<SECTION>_<FIELD>, e.g.
FOOTBALL_AI_ENSEMBLE_HEURISTIC_BLEND=0.5 or FOOTBALL_AI_SCHEDULING_TICK_RATE=40.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

from persistence.config import PersistenceConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "FOOTBALL_AI_"


@dataclass
class EnsembleConfig:
    """Specialization selection"""
    mode: str = "select"             # select | blend
    heuristic_blend: float = 0.7     # weight of heuristic x success vs selector signal
    hysteresis_margin: float = 0.0   # score gap needed to leave the active specialization
    with_specialists: bool = True
    with_selector: bool = True
    with_meta: bool = True


@dataclass
class RewardConfig:
    """Reward-shaping constants"""
    goal_reward: float = 1.5
    miss_penalty: float = -0.8
    last_touch_reward: float = 2.0
    last_touch_penalty: float = -3.0
    wrong_direction_penalty: float = -4.0
    own_goal_penalty: float = -5.0

    goalkeeper_threshold: float = 150.0    # px
    goalkeeper_max_penalty: float = 1.5
    defender_threshold: float = 200.0
    defender_max_penalty: float = 1.0

    shot_bonus: float = 0.5
    pass_success_bonus: float = 0.3
    pass_lost_penalty: float = -0.4
    intercept_bonus: float = 0.2

    contribution_window: float = 8.0       # seconds
    contribution_cap: float = 1.0
    role_multipliers: Dict[str, float] = field(default_factory=lambda: {
        'forward': 1.2, 'midfielder': 1.4, 'defender': 0.8, 'goalkeeper': 0.5,
    })
    action_multipliers: Dict[str, float] = field(default_factory=lambda: {
        'shoot': 1.0, 'pass': 0.8, 'intercept': 0.7, 'move': 0.3,
    })


@dataclass
class CurriculumConfig:
    """Linear hyperparameter ranges over the learning stage"""
    initial_stage: float = 0.1
    start_learning_rate: float = 0.1
    end_learning_rate: float = 0.02
    start_batch_size: int = 5
    end_batch_size: int = 20
    start_error_threshold: float = 0.01
    end_error_threshold: float = 0.002
    max_reward_scale: float = 2.0

    promote_threshold: float = 0.65
    advance_threshold: float = 0.55
    retreat_threshold: float = 0.35
    demote_threshold: float = 0.25
    large_step: float = 0.05
    small_step: float = 0.02

    oscillation_window: int = 20
    oscillation_limit: int = 14
    oscillation_penalty: float = 0.02


@dataclass
class ReplayConfig:
    """Replay buffer capacity and event priorities"""
    capacity: int = 1000
    own_goal_priority: float = 4.0
    wrong_direction_priority: float = 3.0
    last_touch_priority: float = 2.0
    ordinary_priority: float = 1.0


@dataclass
class TrainingConfig:
    """Network shapes and update schedule"""
    primary_hidden: List[int] = field(default_factory=lambda: [12, 6])
    primary_activation: str = "sigmoid"
    primary_learning_rate: float = 0.1
    primary_momentum: float = 0.1
    pretrain_iterations: int = 200

    base_iterations: int = 2
    wrong_direction_iterations: int = 10
    own_goal_iterations: int = 8
    wrong_direction_lr_multiplier: float = 5.0
    own_goal_lr_multiplier: float = 3.0
    replay_iterations: int = 1
    train_specialists: bool = True
    selector_learning_rate: float = 0.05

    action_history_size: int = 20


@dataclass
class SchedulingConfig:
    """Tick budget, load shedding and persistence gating"""
    tick_rate: float = 50.0                # Hz
    window: int = 50                       # ticks in the rolling duration average
    overload_factor: float = 1.0           # overloaded when mean tick > budget * factor
    max_skip_fraction: float = 0.5
    persist_probability: float = 0.5
    severe_persist_probability: float = 0.95
    overloaded_persist_scale: float = 0.25
    max_persists_per_tick: int = 2
    learning_policy: str = "both"          # both | red_only | blue_only | none


@dataclass
class EngineConfig:
    """Master configuration for the learning engine"""
    ensemble: EnsembleConfig = field(default_factory=EnsembleConfig)
    reward: RewardConfig = field(default_factory=RewardConfig)
    curriculum: CurriculumConfig = field(default_factory=CurriculumConfig)
    replay: ReplayConfig = field(default_factory=ReplayConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    seed: Optional[int] = None

    SECTIONS = ('ensemble', 'reward', 'curriculum', 'replay',
                'training', 'scheduling', 'persistence')

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'EngineConfig':
        """Defaults overridden by FOOTBALL_AI_<SECTION>_<FIELD> variables"""
        env = os.environ if environ is None else environ
        config = cls()
        for section in cls.SECTIONS:
            _apply_env(getattr(config, section), f"{ENV_PREFIX}{section.upper()}_", env)
        if env.get(ENV_PREFIX + 'SEED'):
            config.seed = int(env[ENV_PREFIX + 'SEED'])
        return config

    def to_dict(self) -> Dict[str, Any]:
        data = {section: asdict(getattr(self, section)) for section in self.SECTIONS}
        data['seed'] = self.seed
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngineConfig':
        section_types = {
            'ensemble': EnsembleConfig,
            'reward': RewardConfig,
            'curriculum': CurriculumConfig,
            'replay': ReplayConfig,
            'training': TrainingConfig,
            'scheduling': SchedulingConfig,
            'persistence': PersistenceConfig,
        }
        kwargs = {}
        for name, section_cls in section_types.items():
            raw = data.get(name, {})
            if not isinstance(raw, dict):
                raise ValueError(f"Config section '{name}' must be an object")
            unknown = set(raw) - set(section_cls.__dataclass_fields__)
            if unknown:
                raise ValueError(f"Unknown keys in config section '{name}': {sorted(unknown)}")
            kwargs[name] = section_cls(**raw)
        return cls(seed=data.get('seed'), **kwargs)

    def validate(self):
        """Raise ValueError on settings the engine cannot run with."""
        if self.ensemble.mode not in ('select', 'blend'):
            raise ValueError(f"Unknown ensemble mode: {self.ensemble.mode}")
        if not 0.0 <= self.ensemble.heuristic_blend <= 1.0:
            raise ValueError("ensemble.heuristic_blend must be within [0, 1]")
        if self.scheduling.learning_policy not in ('both', 'red_only', 'blue_only', 'none'):
            raise ValueError(f"Unknown learning policy: {self.scheduling.learning_policy}")
        if self.scheduling.tick_rate <= 0:
            raise ValueError("scheduling.tick_rate must be positive")
        if self.replay.capacity <= 0:
            raise ValueError("replay.capacity must be positive")
        if self.persistence.backend not in ('memory', 'file', 'redis'):
            raise ValueError(f"Unknown persistence backend: {self.persistence.backend}")
        if self.persistence.history_limit <= 0:
            raise ValueError("persistence.history_limit must be positive")

    def save(self, filepath: str):
        """Save configuration to file"""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'EngineConfig':
        """Load configuration from file"""
        with open(filepath, 'r') as f:
            data = json.load(f)
        config = cls.from_dict(data)
        logger.info(f"Loaded engine configuration from {filepath}")
        return config


def _apply_env(section, prefix: str, env):
    for f in fields(section):
        raw = env.get(prefix + f.name.upper())
        if raw is None:
            continue
        current = getattr(section, f.name)
        if isinstance(current, bool):
            value = raw.lower() in ('1', 'true', 'yes')
        elif isinstance(current, int):
            value = int(raw)
        elif isinstance(current, float):
            value = float(raw)
        elif isinstance(current, (list, dict)):
            value = json.loads(raw)
        else:
            value = raw
        setattr(section, f.name, value)
