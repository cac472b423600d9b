"""
Sandbox Match - a deliberately simple match simulation.

Used by the command line demo and the engine integration tests. Players drift
towards their formation slots and follow their commands; the ball rolls with
friction and bounces off the touchlines; shots, passes, interceptions and
goals are resolved with a handful of rules and reported as MatchOutcomes.
"""

import logging
import math
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from pitch.context import MatchContext, Touch
from pitch.events import MatchOutcome, OutcomeKind, PlayerCommand
from pitch.formations import FORMATION_343, target_position
from pitch.world import (
    GOAL_BOTTOM, GOAL_TOP, PITCH_HEIGHT, PITCH_WIDTH, BallState, PlayerState,
    Position, Role, Score, Side, WorldSnapshot,
)

logger = logging.getLogger(__name__)

PLAYER_SPEED = 3.0
BALL_FRICTION = 0.96
SHOT_SPEED = 12.0
PASS_SPEED = 9.0
CONTROL_RADIUS = 30.0
SHOT_RADIUS = 25.0
INTERCEPT_RADIUS = 40.0
LANE_TOLERANCE = 30.0
SHOT_TIMEOUT = 2.0         # seconds before an unresolved shot counts as a miss
PASS_TIMEOUT = 3.0

# Five-a-side default: keeper, one defender, two midfielders, one forward
DEFAULT_SLOTS: List[Tuple[Role, int]] = [
    (Role.GOALKEEPER, 0),
    (Role.DEFENDER, 1),
    (Role.MIDFIELDER, 1),
    (Role.MIDFIELDER, 2),
    (Role.FORWARD, 1),
]

FULL_SLOTS: List[Tuple[Role, int]] = [
    (role, slot)
    for role in (Role.GOALKEEPER, Role.DEFENDER, Role.MIDFIELDER, Role.FORWARD)
    for slot in range(len(FORMATION_343[role]))
]


@dataclass
class _Pending:
    kind: str                  # "shot" or "pass"
    player_id: str
    side: Side
    started: float


class SandboxMatch:
    """Random-walk match between red and blue."""

    def __init__(self, slots: Optional[Sequence[Tuple[Role, int]]] = None,
                 match_duration: float = 90.0, tick_seconds: float = 1.0 / 50,
                 team_strength: Optional[Dict[Side, float]] = None,
                 seed: Optional[int] = None):
        self.slots = list(slots) if slots is not None else list(DEFAULT_SLOTS)
        self.match_duration = match_duration
        self.tick_seconds = tick_seconds
        self.team_strength = dict(team_strength or {Side.RED: 1500.0, Side.BLUE: 1500.0})
        self.rng = random.Random(seed)
        self.context = MatchContext()

        self.players: Dict[str, PlayerState] = {}
        for side in (Side.RED, Side.BLUE):
            for role, slot in self.slots:
                pid = f"{side.value}-{role.code.lower()}-{slot}"
                home = target_position(side, role, slot)
                self.players[pid] = PlayerState(pid, side, role, home, home)

        self.ball = BallState(Position(PITCH_WIDTH / 2, PITCH_HEIGHT / 2))
        self.score = Score()
        self.elapsed = 0.0
        self.ticks = 0
        self._pending: Optional[_Pending] = None

    @property
    def finished(self) -> bool:
        return self.elapsed >= self.match_duration

    def snapshot(self) -> WorldSnapshot:
        return WorldSnapshot(
            ball=self.ball,
            players=list(self.players.values()),
            score=self.score,
            elapsed=self.elapsed,
            match_duration=self.match_duration,
            team_strength=dict(self.team_strength),
            possession=self.context.possession.current,
            is_set_piece=self.ticks == 0,
        )

    # ── Simulation step ───────────────────────────────────────────────

    def step(self, commands: Dict[str, PlayerCommand]) -> List[MatchOutcome]:
        """Apply one tick of commands and return what resolved."""
        outcomes: List[MatchOutcome] = []

        for pid, player in list(self.players.items()):
            command = commands.get(pid, PlayerCommand())
            self.players[pid] = self._move_player(player, command)

        for pid in self._shuffled_ids():
            command = commands.get(pid)
            if command is None or command.action == "move":
                continue
            outcome = self._resolve_action(self.players[pid], command)
            if outcome is not None:
                outcomes.append(outcome)

        outcomes.extend(self._advance_ball())

        before = self.context.possession.current
        now = self.context.update(self.ball, self.players.values())
        if now is not None and (before is None or before.player_id != now.player_id):
            outcomes.extend(self._on_new_possession(now.player_id))

        self.elapsed += self.tick_seconds
        self.ticks += 1
        return outcomes

    def _shuffled_ids(self) -> List[str]:
        ids = list(self.players)
        self.rng.shuffle(ids)
        return ids

    def _move_player(self, player: PlayerState, command: PlayerCommand) -> PlayerState:
        dx = _clip(command.dx)
        dy = _clip(command.dy)
        home = player.target_position or player.position

        # Drift back towards the formation slot plus a little noise
        x = player.position.x + dx * PLAYER_SPEED + (home.x - player.position.x) * 0.02
        y = player.position.y + dy * PLAYER_SPEED + (home.y - player.position.y) * 0.02
        x += self.rng.uniform(-0.5, 0.5)
        y += self.rng.uniform(-0.5, 0.5)
        return PlayerState(player.player_id, player.side, player.role,
                           Position(x, y).clamped(), player.target_position)

    def _resolve_action(self, player: PlayerState, command: PlayerCommand) -> Optional[MatchOutcome]:
        distance = player.position.distance_to(self.ball.position)
        owner = self.context.possession.current

        if command.action == "shoot" and distance <= SHOT_RADIUS:
            self._kick(player, command.dx, command.dy, SHOT_SPEED)
            self._pending = _Pending("shot", player.player_id, player.side, self.elapsed)
            self._touch(player, "shoot")
        elif command.action == "pass" and distance <= CONTROL_RADIUS:
            receiver = self._choose_pass_target(player)
            if receiver is None:
                return None
            dx = receiver.position.x - player.position.x
            dy = receiver.position.y - player.position.y
            self._kick(player, dx, dy, PASS_SPEED)
            self._pending = _Pending("pass", player.player_id, player.side, self.elapsed)
            self._touch(player, "pass")
        elif command.action == "intercept" and distance <= INTERCEPT_RADIUS:
            if owner is None or owner.side is player.side:
                return None
            self.ball = BallState(player.position, 0.0, 0.0)
            self._pending = None
            self._touch(player, "intercept")
            return MatchOutcome(OutcomeKind.INTERCEPT, self.elapsed, player.player_id,
                                player.side, position=player.position)
        return None

    def _kick(self, player: PlayerState, dx: float, dy: float, speed: float):
        norm = math.hypot(dx, dy)
        if norm < 1e-9:
            dx, dy, norm = float(player.side.attack_direction), 0.0, 1.0
        self.ball = BallState(self.ball.position, dx / norm * speed, dy / norm * speed)

    def _choose_pass_target(self, passer: PlayerState) -> Optional[PlayerState]:
        """Score teammates by distance, forward progress and a clear lane."""
        opponents = [p for p in self.players.values() if p.side is not passer.side]
        best, best_score = None, -math.inf
        for mate in self.players.values():
            if mate.side is not passer.side or mate.player_id == passer.player_id:
                continue
            distance = passer.position.distance_to(mate.position)
            distance_score = max(0.0, 1.0 - distance / 400.0)
            forward = (mate.position.x - passer.position.x) * passer.side.attack_direction
            forward_score = min(max(forward / 200.0, 0.0), 1.0)
            lane_score = 0.0 if any(
                _distance_to_segment(o.position, passer.position, mate.position) < LANE_TOLERANCE
                for o in opponents
            ) else 1.0
            score = 0.4 * distance_score + 0.3 * forward_score + 0.3 * lane_score
            if score > best_score:
                best, best_score = mate, score
        return best

    def _advance_ball(self) -> List[MatchOutcome]:
        owner = self.context.possession.current
        b = self.ball
        vx, vy = b.velocity_x, b.velocity_y

        # A controlled, slow ball is dribbled along by its owner
        if owner is not None and math.hypot(vx, vy) < 1.0 and owner.player_id in self.players:
            carrier = self.players[owner.player_id]
            if carrier.position.distance_to(b.position) <= CONTROL_RADIUS:
                self.ball = BallState(carrier.position, 0.0, 0.0)
                return self._check_timeouts()

        x, y = b.position.x + vx, b.position.y + vy
        vx, vy = vx * BALL_FRICTION, vy * BALL_FRICTION

        if y < 0 or y > PITCH_HEIGHT:
            vy = -vy
            y = min(max(y, 0.0), PITCH_HEIGHT)

        if x < 0 or x > PITCH_WIDTH:
            if GOAL_TOP <= y <= GOAL_BOTTOM:
                return [self._goal(Side.BLUE if x < 0 else Side.RED)]
            vx = -vx
            x = min(max(x, 0.0), PITCH_WIDTH)
            outcomes = self._shot_missed()
            self.ball = BallState(Position(x, y), vx, vy)
            return outcomes

        self.ball = BallState(Position(x, y), vx, vy)
        return self._check_timeouts()

    def _check_timeouts(self) -> List[MatchOutcome]:
        pending = self._pending
        if pending is None:
            return []
        if pending.kind == "shot" and self.elapsed - pending.started > SHOT_TIMEOUT:
            return self._shot_missed()
        if pending.kind == "pass" and self.elapsed - pending.started > PASS_TIMEOUT:
            self._pending = None
        return []

    def _shot_missed(self) -> List[MatchOutcome]:
        pending = self._pending
        if pending is None or pending.kind != "shot":
            return []
        self._pending = None
        return [MatchOutcome(OutcomeKind.MISS, self.elapsed, pending.player_id,
                             pending.side, position=self.ball.position)]

    def _on_new_possession(self, player_id: str) -> List[MatchOutcome]:
        player = self.players[player_id]
        pending = self._pending
        outcomes = []
        if pending is not None and pending.kind == "pass" and pending.player_id != player_id:
            outcomes.append(MatchOutcome(OutcomeKind.PASS, self.elapsed, pending.player_id,
                                         pending.side, receiver_side=player.side,
                                         position=player.position))
            self._pending = None
        self._touch(player, "move")
        return outcomes

    def _goal(self, scoring_side: Side) -> MatchOutcome:
        last = self.context.touches.last
        if scoring_side is Side.RED:
            self.score = Score(self.score.red + 1, self.score.blue)
        else:
            self.score = Score(self.score.red, self.score.blue + 1)
        self.context.record_goal(scoring_side)

        outcome = MatchOutcome(
            OutcomeKind.GOAL, self.elapsed,
            actor_id=last.player_id if last else None,
            actor_side=last.side if last else None,
            scoring_side=scoring_side,
            position=scoring_side.target_goal,
        )
        logger.info(
            f"Goal for {scoring_side.value} at {self.elapsed:.1f}s "
            f"({self.score.red}-{self.score.blue})"
            + (" (own goal)" if outcome.own_goal else "")
        )
        self._kick_off()
        return outcome

    def _kick_off(self):
        for pid, p in self.players.items():
            home = p.target_position or p.position
            self.players[pid] = PlayerState(pid, p.side, p.role, home, p.target_position)
        self.ball = BallState(Position(PITCH_WIDTH / 2, PITCH_HEIGHT / 2))
        self._pending = None
        self.context.possession.reset()

    def _touch(self, player: PlayerState, action: str):
        self.context.touches.record(Touch(
            player.player_id, player.side, player.role, action, self.elapsed, player.position,
        ))


def _clip(v: float) -> float:
    if not math.isfinite(v):
        return 0.0
    return min(max(v, -1.0), 1.0)


def _distance_to_segment(p: Position, a: Position, b: Position) -> float:
    abx, aby = b.x - a.x, b.y - a.y
    length_sq = abx * abx + aby * aby
    if length_sq < 1e-9:
        return p.distance_to(a)
    t = min(max(((p.x - a.x) * abx + (p.y - a.y) * aby) / length_sq, 0.0), 1.0)
    return p.distance_to(Position(a.x + t * abx, a.y + t * aby))
