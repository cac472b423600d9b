"""
Tests for the world model: geometry, formations, strength, match context and
the sandbox match.
"""

import sys
import os
import math

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from pitch.world import (
    PITCH_DIAGONAL, PITCH_WIDTH, GOAL_TOP, GOAL_BOTTOM,
    Side, Role, Position, BallState, PlayerState, Score, WorldSnapshot,
)
from pitch.formations import target_position, lineup, formation_centre
from pitch.strength import team_advantage, player_multiplier, MAX_MULTIPLIER, MIN_MULTIPLIER
from pitch.context import MatchContext, PossessionTracker, TouchTracker, Touch
from pitch.events import MatchOutcome, OutcomeKind, PlayerCommand
from pitch.sandbox import SandboxMatch


def _striker_match():
    return SandboxMatch(slots=[(Role.FORWARD, 1)], seed=0)


class TestGeometry:
    def test_pitch_constants(self):
        assert PITCH_DIAGONAL == pytest.approx(1000.0)
        assert GOAL_BOTTOM - GOAL_TOP == pytest.approx(160.0)

    def test_sides(self):
        assert Side.RED.opponent is Side.BLUE
        assert Side.RED.attack_direction == 1
        assert Side.BLUE.attack_direction == -1
        assert Side.RED.own_goal == Position(0.0, 300.0)
        assert Side.RED.target_goal == Side.BLUE.own_goal

    def test_clamped_handles_nan(self):
        p = Position(float('nan'), -50.0).clamped()
        assert p.is_finite()
        assert p.x == PITCH_WIDTH / 2
        assert p.y == 0.0

    def test_ball_speed_ignores_non_finite(self):
        assert BallState(Position(0, 0), float('inf'), 1.0).speed == 0.0

    def test_score_differential(self):
        score = Score(red=2, blue=1)
        assert score.differential(Side.RED) == 1
        assert score.differential(Side.BLUE) == -1

    def test_snapshot_progress(self):
        world = WorldSnapshot(ball=BallState(Position(0, 0)), elapsed=45.0, match_duration=90.0)
        assert world.progress == pytest.approx(0.5)
        assert WorldSnapshot(ball=BallState(Position(0, 0)), match_duration=0.0).progress == 0.0


class TestFormations:
    def test_blue_mirrors_red(self):
        red = target_position(Side.RED, Role.DEFENDER, 0)
        blue = target_position(Side.BLUE, Role.DEFENDER, 0)
        assert blue.x == pytest.approx(PITCH_WIDTH - red.x)
        assert blue.y == pytest.approx(red.y)

    def test_lineup_has_eleven(self):
        assert len(lineup(Side.RED)) == 11

    def test_centre_of_nothing(self):
        assert formation_centre([]) == Position(400.0, 300.0)


class TestStrength:
    def test_even_match(self):
        adv = team_advantage(1500, 1510)
        assert adv.multiplier == 1.0
        assert adv.normalized == 0.0

    def test_saturates(self):
        strong = team_advantage(2500, 1500)
        weak = team_advantage(1500, 2500)
        assert strong.multiplier == pytest.approx(MAX_MULTIPLIER)
        assert weak.multiplier == pytest.approx(MIN_MULTIPLIER)
        assert strong.normalized == pytest.approx(1.0)
        assert weak.normalized == pytest.approx(-1.0)

    def test_forwards_feel_advantage_more(self):
        adv = team_advantage(1700, 1500)
        assert player_multiplier(Role.FORWARD, adv) > player_multiplier(Role.GOALKEEPER, adv)


class TestMatchContext:
    def test_possession_closest_player(self):
        tracker = PossessionTracker()
        players = [
            PlayerState('a', Side.RED, Role.FORWARD, Position(100, 100)),
            PlayerState('b', Side.BLUE, Role.DEFENDER, Position(110, 100)),
        ]
        owner = tracker.update(BallState(Position(108, 100)), players)
        assert owner.player_id == 'b'
        owner = tracker.update(BallState(Position(108, 100)), players)
        assert owner.duration == 1

    def test_loose_ball_keeps_side(self):
        tracker = PossessionTracker()
        players = [PlayerState('a', Side.RED, Role.FORWARD, Position(100, 100))]
        tracker.update(BallState(Position(100, 100)), players)
        owner = tracker.update(BallState(Position(500, 500)), players)
        assert owner.side is Side.RED

    def test_touch_chain_window(self):
        touches = TouchTracker(length=5, window=8.0)
        for i in range(7):
            touches.record(Touch(f'p{i}', Side.RED, Role.MIDFIELDER, 'pass', float(i), Position(0, 0)))
        assert len(touches) == 5
        chain = touches.chain(now=12.0)
        assert [t.player_id for t in chain] == ['p4', 'p5', 'p6']

    def test_goal_swings_momentum(self):
        ctx = MatchContext()
        ctx.record_goal(Side.BLUE)
        assert ctx.momentum[Side.BLUE] > 0.5 > ctx.momentum[Side.RED]
        ctx.reset()
        assert ctx.momentum[Side.RED] == 0.5


class TestOutcomes:
    def test_own_goal(self):
        outcome = MatchOutcome(OutcomeKind.GOAL, 10.0, 'red-def-0', Side.RED, Side.BLUE)
        assert outcome.own_goal
        assert outcome.conceded_by(Side.RED)
        assert outcome.scored_for(Side.BLUE)

    def test_pass_is_not_goal(self):
        outcome = MatchOutcome(OutcomeKind.PASS, 1.0, 'x', Side.RED, receiver_side=Side.RED)
        assert not outcome.own_goal
        assert not outcome.scored_for(Side.RED)


class TestSandboxMatch:
    def test_player_ids(self):
        match = SandboxMatch(seed=1)
        assert len(match.players) == 10
        assert 'red-gk-0' in match.players
        assert 'blue-fwd-1' in match.players

    def test_snapshot_consistent(self):
        match = SandboxMatch(seed=1)
        world = match.snapshot()
        assert len(world.players) == 10
        assert world.is_set_piece
        match.step({})
        assert not match.snapshot().is_set_piece

    def test_finishes(self):
        match = SandboxMatch(match_duration=0.1, tick_seconds=0.05, seed=1)
        match.step({})
        match.step({})
        assert match.finished

    def _place(self, match, pid, position):
        p = match.players[pid]
        match.players[pid] = PlayerState(pid, p.side, p.role, position, p.target_position)
        match.ball = BallState(position)

    def test_shot_scores(self):
        match = _striker_match()
        self._place(match, 'red-fwd-1', Position(780.0, 300.0))
        outcomes = match.step({'red-fwd-1': PlayerCommand('shoot', 1.0, 0.0)})
        for _ in range(10):
            outcomes += match.step({})
        goals = [o for o in outcomes if o.kind is OutcomeKind.GOAL]
        assert len(goals) == 1
        assert goals[0].scoring_side is Side.RED
        assert goals[0].actor_id == 'red-fwd-1'
        assert not goals[0].own_goal
        assert match.score == Score(1, 0)
        # kick-off resets the ball
        assert match.ball.position.x == pytest.approx(400.0)

    def test_own_goal(self):
        match = _striker_match()
        self._place(match, 'red-fwd-1', Position(20.0, 300.0))
        outcomes = match.step({'red-fwd-1': PlayerCommand('shoot', -1.0, 0.0)})
        for _ in range(10):
            outcomes += match.step({})
        goals = [o for o in outcomes if o.kind is OutcomeKind.GOAL]
        assert len(goals) == 1
        assert goals[0].own_goal
        assert goals[0].scoring_side is Side.BLUE

    def test_shot_out_of_range_ignored(self):
        match = _striker_match()
        outcomes = match.step({'red-fwd-1': PlayerCommand('shoot', 1.0, 0.0)})
        assert outcomes == []
        assert match.ball.speed == 0.0

    def test_positions_stay_on_pitch(self):
        match = SandboxMatch(seed=3)
        for _ in range(200):
            match.step({pid: PlayerCommand('move', 1.0, 1.0) for pid in match.players})
        for p in match.players.values():
            assert 0.0 <= p.position.x <= 800.0
            assert 0.0 <= p.position.y <= 600.0
            assert math.isfinite(p.position.x)
