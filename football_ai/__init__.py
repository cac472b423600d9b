"""
Football AI - online-learning agents for a simulated football match.

Pipeline per agent per tick:
    WorldSnapshot -> encoder -> FeatureVector -> DecisionEnsemble -> ActionOutput
    MatchOutcome -> reward shaper -> Trainer (replay, curriculum, validator)

Components:
- features / encoder: fixed 60-field FeatureVector
- ensemble: specialized networks, selector and meta blending
- reward: multi-term reward shaping with contribution credit
- replay: prioritized circular experience replay
- curriculum: learning-stage driven hyperparameters
- trainer: one online update per resolved action
- engine: the facade the simulation loop calls
"""

from football_ai.actions import ActionOutput, ActionType, NEUTRAL_OUTPUT, determine_action
from football_ai.brain import Agent, Brain, create_brain
from football_ai.config import EngineConfig
from football_ai.curriculum import CurriculumScheduler, CurriculumSettings
from football_ai.encoder import RoleContext, TeamContext, encode, encode_player
from football_ai.engine import LearningEngine, LearningPolicy
from football_ai.ensemble import Decision, DecisionEnsemble
from football_ai.features import FEATURE_NAMES, NUM_FEATURES
from football_ai.replay import ExperienceReplay, ReplayEntry
from football_ai.reward import RewardBreakdown, RewardContext, reward, shape_reward
from football_ai.session import MatchSession, SessionSummary
from football_ai.situation import SituationContext, Specialization, analyze_situation
from football_ai.trainer import Trainer, TrainingReport
from football_ai.validator import is_valid, recover

__all__ = [
    "ActionOutput", "ActionType", "NEUTRAL_OUTPUT", "determine_action",
    "Agent", "Brain", "create_brain",
    "EngineConfig",
    "CurriculumScheduler", "CurriculumSettings",
    "RoleContext", "TeamContext", "encode", "encode_player",
    "LearningEngine", "LearningPolicy",
    "Decision", "DecisionEnsemble",
    "FEATURE_NAMES", "NUM_FEATURES",
    "ExperienceReplay", "ReplayEntry",
    "RewardBreakdown", "RewardContext", "reward", "shape_reward",
    "MatchSession", "SessionSummary",
    "SituationContext", "Specialization", "analyze_situation",
    "Trainer", "TrainingReport",
    "is_valid", "recover",
]
