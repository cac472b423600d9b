"""
Feature Encoder - turns a WorldSnapshot into the fixed-length network input.

Produces one FeatureVector (see features.FEATURE_NAMES) per agent:
1. Spatial features: positions, distances and angles to ball, goals and
   the nearest teammates/opponents
2. Kinematic features: ball velocity and approach towards our goal
3. Tactical features: densities, zone control, lanes, pressure, shape
4. Contextual features: time, score, strength, momentum, possession

The encoder is pure: no I/O, no state, and every division by a possibly
zero distance falls back to a constant, so the result is always finite.
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from football_ai.features import FEATURE_INDEX, NUM_FEATURES, sanitize_features
from pitch.context import MatchContext
from pitch.formations import formation_centre
from pitch.strength import player_multiplier, team_advantage
from pitch.world import (
    GOAL_BOTTOM, GOAL_TOP, PITCH_DIAGONAL, PITCH_HEIGHT, PITCH_WIDTH,
    PlayerState, Position, Role, Side, WorldSnapshot,
)

VELOCITY_SCALE = 20.0       # px per tick
NEIGHBOUR_RADIUS = 150.0    # px
LANE_TOLERANCE = 30.0       # px
MAX_POSSESSION_TICKS = 500.0
RATING_SCALE = 3000.0
EPSILON = 1e-6

ROLE_ENCODING = {
    Role.GOALKEEPER: 0.0,
    Role.DEFENDER: 1.0 / 3.0,
    Role.MIDFIELDER: 2.0 / 3.0,
    Role.FORWARD: 1.0,
}


@dataclass
class TeamContext:
    """What the agent knows about its own team and the opposition."""
    side: Side
    teammates: List[Position] = field(default_factory=list)
    opponents: List[Position] = field(default_factory=list)
    own_goal: Position = None
    target_goal: Position = None
    strength: float = 1500.0
    opponent_strength: float = 1500.0
    momentum: float = 0.5
    opponent_momentum: float = 0.5
    has_possession: bool = False
    possession_duration: int = 0

    def __post_init__(self):
        if self.own_goal is None:
            self.own_goal = self.side.own_goal
        if self.target_goal is None:
            self.target_goal = self.side.target_goal

    @classmethod
    def for_player(cls, world: WorldSnapshot, player: PlayerState,
                   match: Optional[MatchContext] = None) -> 'TeamContext':
        possession = world.possession
        momentum = {Side.RED: 0.5, Side.BLUE: 0.5}
        if match is not None:
            momentum = match.momentum
        return cls(
            side=player.side,
            teammates=[p.position.clamped() for p in world.teammates(player)],
            opponents=[p.position.clamped() for p in world.opponents(player)],
            strength=world.strength(player.side),
            opponent_strength=world.strength(player.side.opponent),
            momentum=momentum[player.side],
            opponent_momentum=momentum[player.side.opponent],
            has_possession=possession is not None and possession.side is player.side,
            possession_duration=possession.duration
            if possession is not None and possession.side is player.side else 0,
        )


@dataclass
class RoleContext:
    """Per-agent role information."""
    role: Role
    target_position: Optional[Position] = None
    recent_success_rate: float = 0.5
    has_ball: bool = False

    @classmethod
    def for_player(cls, world: WorldSnapshot, player: PlayerState,
                   recent_success_rate: float = 0.5) -> 'RoleContext':
        possession = world.possession
        return cls(
            role=player.role,
            target_position=player.target_position,
            recent_success_rate=recent_success_rate,
            has_ball=possession is not None and possession.player_id == player.player_id,
        )


# ── Normalization helpers ─────────────────────────────────────────────

def _unit(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return min(max(value, 0.0), 1.0)


def _signed(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return min(max(value, -1.0), 1.0)


def _norm_distance(d: float) -> float:
    return _unit(d / PITCH_DIAGONAL)


def _norm_angle(a: Position, b: Position) -> float:
    if a.distance_to(b) < EPSILON:
        return 0.0
    return _signed(a.angle_to(b) / math.pi)


def _progress(pos: Position, side: Side) -> float:
    """How far up the pitch a position is from this side's point of view."""
    frac = pos.x / PITCH_WIDTH
    return _unit(frac if side is Side.RED else 1.0 - frac)


def _distance_to_segment(p: Position, a: Position, b: Position) -> float:
    abx, aby = b.x - a.x, b.y - a.y
    length_sq = abx * abx + aby * aby
    if length_sq < EPSILON:
        return p.distance_to(a)
    t = min(max(((p.x - a.x) * abx + (p.y - a.y) * aby) / length_sq, 0.0), 1.0)
    return p.distance_to(Position(a.x + t * abx, a.y + t * aby))


def _sorted_distances(origin: Position, others: Sequence[Position]) -> List[float]:
    return sorted(origin.distance_to(o) for o in others)


def _nearest(origin: Position, others: Sequence[Position]) -> Optional[Position]:
    if not others:
        return None
    return min(others, key=origin.distance_to)


def _lane_clear(a: Position, b: Position, blockers: Sequence[Position]) -> bool:
    return all(_distance_to_segment(o, a, b) >= LANE_TOLERANCE for o in blockers)


# ── Encoder ───────────────────────────────────────────────────────────

def encode(world: WorldSnapshot, agent_position: Position,
           team_context: TeamContext, role_context: RoleContext) -> np.ndarray:
    """
    Encode the world from one agent's point of view.

    Returns:
        float64 array of NUM_FEATURES values, finite and in range
    """
    f = np.zeros(NUM_FEATURES)
    side = team_context.side
    me = agent_position.clamped()
    ball = world.ball.position.clamped()
    own_goal = team_context.own_goal
    target_goal = team_context.target_goal
    mates = [p.clamped() for p in team_context.teammates]
    opps = [p.clamped() for p in team_context.opponents]

    def put(name, value):
        f[FEATURE_INDEX[name]] = value

    # Spatial
    put('ball_x', _unit(ball.x / PITCH_WIDTH))
    put('ball_y', _unit(ball.y / PITCH_HEIGHT))
    put('agent_x', _unit(me.x / PITCH_WIDTH))
    put('agent_y', _unit(me.y / PITCH_HEIGHT))
    dist_ball = me.distance_to(ball)
    put('distance_to_ball', _norm_distance(dist_ball))
    put('angle_to_ball', _norm_angle(me, ball))
    put('distance_to_own_goal', _norm_distance(me.distance_to(own_goal)))
    put('angle_to_own_goal', _norm_angle(me, own_goal))
    dist_target = me.distance_to(target_goal)
    put('distance_to_target_goal', _norm_distance(dist_target))
    put('angle_to_target_goal', _norm_angle(me, target_goal))
    put('ball_distance_to_own_goal', _norm_distance(ball.distance_to(own_goal)))
    put('ball_distance_to_target_goal', _norm_distance(ball.distance_to(target_goal)))

    mate_d = _sorted_distances(me, mates)
    opp_d = _sorted_distances(me, opps)
    put('nearest_teammate_distance', _norm_distance(mate_d[0]) if mate_d else 1.0)
    put('second_teammate_distance', _norm_distance(mate_d[1]) if len(mate_d) > 1 else 1.0)
    put('nearest_opponent_distance', _norm_distance(opp_d[0]) if opp_d else 1.0)
    put('second_opponent_distance', _norm_distance(opp_d[1]) if len(opp_d) > 1 else 1.0)
    nearest_mate = _nearest(me, mates)
    nearest_opp = _nearest(me, opps)
    put('nearest_teammate_angle', _norm_angle(me, nearest_mate) if nearest_mate else 0.0)
    put('nearest_opponent_angle', _norm_angle(me, nearest_opp) if nearest_opp else 0.0)

    target = role_context.target_position
    put('formation_distance', _norm_distance(me.distance_to(target.clamped())) if target else 0.0)
    put('is_nearest_to_ball', 1.0 if all(dist_ball <= m.distance_to(ball) for m in mates) else 0.0)
    progress = _progress(me, side)
    put('in_attacking_third', 1.0 if progress > 2.0 / 3.0 else 0.0)
    put('in_defensive_third', 1.0 if progress < 1.0 / 3.0 else 0.0)
    put('is_set_piece', 1.0 if world.is_set_piece else 0.0)
    put('ball_in_own_half', 1.0 if _progress(ball, side) < 0.5 else 0.0)

    # Kinematic
    vx, vy = world.ball.velocity_x, world.ball.velocity_y
    if not (math.isfinite(vx) and math.isfinite(vy)):
        vx, vy = 0.0, 0.0
    put('ball_velocity_x', _signed(vx / VELOCITY_SCALE))
    put('ball_velocity_y', _signed(vy / VELOCITY_SCALE))
    put('ball_speed', _unit(math.hypot(vx, vy) / VELOCITY_SCALE))
    # Velocity component pointing at our own goal
    to_goal_x, to_goal_y = own_goal.x - ball.x, own_goal.y - ball.y
    to_goal_len = math.hypot(to_goal_x, to_goal_y)
    if to_goal_len < EPSILON:
        approach = 1.0 if math.hypot(vx, vy) > 0 else 0.0
    else:
        approach = (vx * to_goal_x + vy * to_goal_y) / to_goal_len / VELOCITY_SCALE
    put('ball_approach_own_goal', _unit(approach))

    # Tactical
    mates_near = sum(1 for d in mate_d if d <= NEIGHBOUR_RADIUS)
    opps_near = sum(1 for d in opp_d if d <= NEIGHBOUR_RADIUS)
    put('teammate_density', _unit(mates_near / 4.0))
    put('opponent_density', _unit(opps_near / 4.0))
    put('zone_control', (mates_near + 1.0) / (mates_near + opps_near + 2.0))
    put('space_creation', _unit(opp_d[0] / NEIGHBOUR_RADIUS) if opp_d else 1.0)
    if mates:
        clear = sum(1 for m in mates if _lane_clear(me, m, opps))
        put('passing_lane_quality', clear / len(mates))
    else:
        put('passing_lane_quality', 0.0)
    pressure = sum(1.0 - d / NEIGHBOUR_RADIUS for d in opp_d if d <= NEIGHBOUR_RADIUS)
    put('pressure_index', _unit(pressure / 3.0))

    team = list(mates) + [me]
    centre = formation_centre(team)
    spread = sum(p.distance_to(centre) for p in team) / len(team)
    put('formation_compactness', _unit(1.0 - spread / 300.0))
    put('formation_width', _unit((max(p.y for p in team) - min(p.y for p in team)) / PITCH_HEIGHT))

    post_a = Position(target_goal.x, GOAL_TOP)
    post_b = Position(target_goal.x, GOAL_BOTTOM)
    if me.distance_to(post_a) < EPSILON or me.distance_to(post_b) < EPSILON:
        shooting_angle = 1.0
    else:
        a1 = me.angle_to(post_a)
        a2 = me.angle_to(post_b)
        diff = abs(a1 - a2)
        if diff > math.pi:
            diff = 2 * math.pi - diff
        shooting_angle = _unit(diff / (math.pi / 2))
    put('shooting_angle', shooting_angle)
    blockers = sum(1 for o in opps if _distance_to_segment(o, me, target_goal) < LANE_TOLERANCE)
    put('shooting_quality', _unit(shooting_angle * (1.0 - dist_target / PITCH_DIAGONAL) / (1.0 + blockers)))

    support = sum(1 for m in mates
                  if _progress(m, side) > progress and m.distance_to(me) <= 250.0)
    put('support_count', _unit(support / 3.0))
    put('cover_quality', sum(1 for m in mates if _progress(m, side) < progress) / len(mates)
        if mates else 0.0)

    ball_progress = _progress(ball, side)
    if opps:
        ahead_of_ball = sum(1 for o in opps if _progress(o, side) > ball_progress)
        counter = 1.0 - ahead_of_ball / len(opps)
    else:
        counter = 1.0
    put('counter_attack_potential', _unit(counter) if team_context.has_possession else 0.0)
    put('territorial_control', sum(_progress(p, side) for p in team) / len(team))
    if mates:
        gaps = [min(p.distance_to(q) for q in team if q is not p) for p in team]
        put('team_spacing', _unit(sum(gaps) / len(gaps) / 200.0))
    else:
        put('team_spacing', 0.0)
    put('defensive_line_height', min(_progress(p, side) for p in team))
    put('opponents_goal_side', sum(1 for o in opps if _progress(o, side) > progress) / len(opps)
        if opps else 0.0)
    mates_at_ball = sum(1 for p in team if p.distance_to(ball) <= NEIGHBOUR_RADIUS)
    opps_at_ball = sum(1 for o in opps if o.distance_to(ball) <= NEIGHBOUR_RADIUS)
    put('ball_side_overload', (mates_at_ball + 1.0) / (mates_at_ball + opps_at_ball + 2.0))

    # Contextual
    put('game_time', world.progress)
    put('score_differential', _signed(world.score.differential(side) / 5.0))
    put('team_strength', _unit(team_context.strength / RATING_SCALE))
    put('opponent_strength', _unit(team_context.opponent_strength / RATING_SCALE))
    advantage = team_advantage(team_context.strength, team_context.opponent_strength)
    put('strength_advantage', advantage.normalized)
    put('momentum', _unit(team_context.momentum))
    put('possession_duration', _unit(team_context.possession_duration / MAX_POSSESSION_TICKS))
    put('has_possession', 1.0 if team_context.has_possession else 0.0)
    put('recent_success_rate', _unit(role_context.recent_success_rate))
    put('agent_has_ball', 1.0 if role_context.has_ball else 0.0)
    put('opponent_momentum', _unit(team_context.opponent_momentum))
    put('role_encoding', ROLE_ENCODING[role_context.role])
    put('side', 0.0 if side is Side.RED else 1.0)
    # Multiplier range [0.5, 2.5] mapped onto [0, 1]
    put('strength_multiplier', _unit((player_multiplier(role_context.role, advantage) - 0.5) / 2.0))

    return sanitize_features(f)


def encode_player(world: WorldSnapshot, player: PlayerState,
                  match: Optional[MatchContext] = None,
                  recent_success_rate: float = 0.5) -> np.ndarray:
    """Convenience entry point deriving both contexts from the snapshot."""
    return encode(
        world,
        player.position,
        TeamContext.for_player(world, player, match),
        RoleContext.for_player(world, player, recent_success_rate),
    )
