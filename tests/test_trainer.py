"""
Tests for the trainer and the throughput governor.
"""

import sys
import os
import numpy as np

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from football_ai.actions import ActionOutput, ActionType
from football_ai.brain import Agent, create_brain
from football_ai.config import EngineConfig, SchedulingConfig
from football_ai.curriculum import CurriculumScheduler
from football_ai.features import CANONICAL_FEATURES
from football_ai.governor import ThroughputGovernor
from football_ai.reward import RewardContext, Severity, shape_reward
from football_ai.situation import analyze_situation
from football_ai.trainer import Trainer
from football_ai.validator import is_valid
from pitch.events import MatchOutcome, OutcomeKind
from pitch.world import Position, Role, Side


def _config() -> EngineConfig:
    config = EngineConfig(seed=3)
    config.training.pretrain_iterations = 20
    config.persistence.enabled = False
    return config


def _agent(config, role=Role.MIDFIELDER, side=Side.RED, agent_id='red-mid-1'):
    brain = create_brain(config, np.random.default_rng(4))
    return Agent(agent_id, side.value, side, role, brain)


def _decided(agent, action=ActionType.PASS, output=None):
    brain = agent.brain
    brain.last_input = np.array(CANONICAL_FEATURES)
    brain.last_output = output or ActionOutput(move_x=0.7, move_y=0.5, pass_probability=0.8)
    brain.last_action = action
    brain.last_situation = analyze_situation(brain.last_input)


def _ctx(agent, position=Position(400, 300), target=None):
    return RewardContext(agent.agent_id, agent.side, position, target, agent.brain.last_output)


PASS_OK = MatchOutcome(OutcomeKind.PASS, 1.0, 'red-mid-1', Side.RED, receiver_side=Side.RED)


class TestTrainingTargets:
    def test_wrong_direction_relabelled_to_pass(self):
        config = _config()
        trainer = Trainer(config)
        agent = _agent(config, Role.FORWARD)
        backwards = ActionOutput(move_x=0.1, move_y=0.5, shoot_probability=0.9)
        _decided(agent, ActionType.SHOOT, backwards)
        miss = MatchOutcome(OutcomeKind.MISS, 2.0, agent.agent_id, Side.RED)
        ctx = _ctx(agent)
        breakdown = shape_reward(miss, ActionType.SHOOT, agent.role, ctx, config.reward)
        settings = CurriculumScheduler().difficulty(0.1)
        target = trainer.build_target(agent, miss, breakdown, ctx, settings)
        assert target[0] == 1.0        # forward for red
        assert target[2] == 0.0        # no shot
        assert target[3] == 1.0        # pass

    def test_goalkeeper_taught_to_intercept(self):
        config = _config()
        trainer = Trainer(config)
        keeper = _agent(config, Role.GOALKEEPER, agent_id='red-gk-0')
        _decided(keeper, ActionType.MOVE)
        conceded = MatchOutcome(OutcomeKind.GOAL, 5.0, 'blue-fwd-1', Side.BLUE, Side.BLUE,
                                position=Position(0, 350))
        ctx = _ctx(keeper, Position(40, 300), Position(40, 300))
        breakdown = shape_reward(conceded, ActionType.MOVE, Role.GOALKEEPER, ctx, config.reward)
        target = trainer.build_target(keeper, conceded, breakdown, ctx,
                                      CurriculumScheduler().difficulty(0.1))
        assert target[4] == 1.0
        assert target[1] == 1.0        # ball went in below the keeper
        assert target[2] == 0.0

    def test_reward_reinforces_taken_action(self):
        config = _config()
        trainer = Trainer(config)
        agent = _agent(config)
        _decided(agent, ActionType.PASS)
        ctx = _ctx(agent)
        settings = CurriculumScheduler().difficulty(1.0)
        good = shape_reward(PASS_OK, ActionType.PASS, agent.role, ctx, config.reward)
        target = trainer.build_target(agent, PASS_OK, good, ctx, settings)
        assert target[3] > 0.8
        lost = MatchOutcome(OutcomeKind.PASS, 1.0, agent.agent_id, Side.RED, receiver_side=Side.BLUE)
        bad = shape_reward(lost, ActionType.PASS, agent.role, ctx, config.reward)
        target = trainer.build_target(agent, lost, bad, ctx, settings)
        assert target[3] < 0.8
        assert np.all((target >= 0.0) & (target <= 1.0))

    def test_priorities_ordered(self):
        trainer = Trainer(_config())
        values = [trainer.priority(s) for s in
                  (Severity.ORDINARY, Severity.LAST_TOUCH, Severity.WRONG_DIRECTION, Severity.OWN_GOAL)]
        assert values == sorted(values)
        assert len(set(values)) == 4


class TestTrainStep:
    def test_without_decision_only_bookkeeping(self):
        config = _config()
        trainer = Trainer(config)
        agent = _agent(config)
        report = trainer.train_step(agent, PASS_OK, _ctx(agent))
        assert report.immediate is None
        assert len(agent.brain.replay) == 0
        assert agent.brain.training_sessions == 1

    def test_step_stores_and_trains(self):
        config = _config()
        trainer = Trainer(config)
        agent = _agent(config)
        _decided(agent)
        report = trainer.train_step(agent, PASS_OK, _ctx(agent))
        assert report.reward == pytest.approx(config.reward.pass_success_bonus)
        assert report.priority == config.replay.ordinary_priority
        assert report.immediate is not None and not report.immediate.diverged
        assert len(agent.brain.replay) == 1
        assert agent.brain.cumulative_reward == pytest.approx(report.reward)
        assert agent.brain.action_history[-1].success

    def test_own_goal_high_priority(self):
        config = _config()
        trainer = Trainer(config)
        agent = _agent(config, Role.DEFENDER)
        _decided(agent, ActionType.SHOOT, ActionOutput(move_x=0.0, shoot_probability=0.9))
        own = MatchOutcome(OutcomeKind.GOAL, 3.0, agent.agent_id, Side.RED, Side.BLUE)
        report = trainer.train_step(agent, own, _ctx(agent))
        assert report.reward == config.reward.own_goal_penalty
        assert report.severe
        assert agent.brain.replay.entries()[-1].priority == config.replay.own_goal_priority

    def test_replay_runs_once_batch_available(self):
        config = _config()
        config.curriculum.start_batch_size = 3
        config.curriculum.end_batch_size = 3
        trainer = Trainer(config)
        agent = _agent(config)
        reports = []
        for _ in range(3):
            _decided(agent)
            reports.append(trainer.train_step(agent, PASS_OK, _ctx(agent)))
        assert reports[1].replay is None
        assert reports[2].replay is not None
        assert not reports[2].replay_skipped

    def test_replay_skipped_under_load(self):
        config = _config()
        config.curriculum.start_batch_size = 3
        config.curriculum.end_batch_size = 3
        trainer = Trainer(config)
        agent = _agent(config)
        for _ in range(4):
            _decided(agent)
            report = trainer.train_step(agent, PASS_OK, _ctx(agent), allow_replay=False)
        assert report.replay is None
        assert report.replay_skipped

    def test_success_raises_stage(self):
        config = _config()
        trainer = Trainer(config)
        agent = _agent(config)
        for _ in range(10):
            _decided(agent)
            trainer.train_step(agent, PASS_OK, _ctx(agent))
        assert agent.brain.learning_stage > config.curriculum.initial_stage

    def test_corrupted_primary_recovered(self):
        config = _config()
        trainer = Trainer(config)
        agent = _agent(config)
        _decided(agent)
        agent.brain.primary.weights[0][:] = np.nan
        report = trainer.train_step(agent, PASS_OK, _ctx(agent))
        assert report.recovered
        assert is_valid(agent.brain.primary)


class _FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestThroughputGovernor:
    def _run_ticks(self, governor, clock, duration, n):
        for _ in range(n):
            governor.begin_tick()
            clock.now += duration
            governor.end_tick()

    def test_within_budget(self):
        clock = _FakeClock()
        governor = ThroughputGovernor(SchedulingConfig(tick_rate=50), clock=clock)
        self._run_ticks(governor, clock, 0.01, 10)
        assert not governor.overloaded
        assert governor.skip_fraction == 0.0
        assert not any(governor.should_skip(i, 10) for i in range(10))

    def test_overload_skips_round_robin(self):
        clock = _FakeClock()
        governor = ThroughputGovernor(SchedulingConfig(tick_rate=50, max_skip_fraction=0.5), clock=clock)
        self._run_ticks(governor, clock, 0.1, 10)     # 5x the 20ms budget
        assert governor.overloaded
        assert governor.skip_fraction == 0.5
        skipped = [i for i in range(10) if governor.should_skip(i, 10)]
        assert len(skipped) == 5
        self._run_ticks(governor, clock, 0.1, 1)
        assert [i for i in range(10) if governor.should_skip(i, 10)] != skipped

    def test_every_agent_gets_a_turn(self):
        clock = _FakeClock()
        governor = ThroughputGovernor(SchedulingConfig(tick_rate=50, max_skip_fraction=0.5), clock=clock)
        self._run_ticks(governor, clock, 0.1, 5)
        served = set()
        for _ in range(4):
            served.update(i for i in range(7) if not governor.should_skip(i, 7))
            self._run_ticks(governor, clock, 0.1, 1)
        assert served == set(range(7))

    def test_persist_probability_reduced_when_overloaded(self):
        clock = _FakeClock()
        config = SchedulingConfig(tick_rate=50)
        governor = ThroughputGovernor(config, clock=clock)
        assert governor.persist_probability() == config.persist_probability
        assert governor.persist_probability(severe=True) == config.severe_persist_probability
        self._run_ticks(governor, clock, 0.1, 3)
        assert governor.persist_probability() == pytest.approx(
            config.persist_probability * config.overloaded_persist_scale)

    def test_persist_budget_per_tick(self):
        governor = ThroughputGovernor(SchedulingConfig(max_persists_per_tick=2))
        governor.begin_tick()
        assert governor.allow_persist()
        assert governor.allow_persist()
        assert not governor.allow_persist()
        governor.end_tick()
        governor.begin_tick()
        assert governor.allow_persist()
