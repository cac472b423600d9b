"""
Formations - relative player slots on the pitch.

Slots are given for red (attacking +x) as fractions of the pitch size and
mirrored along x for blue.
"""

from typing import Dict, List, Sequence, Tuple

from pitch.world import PITCH_HEIGHT, PITCH_WIDTH, Position, Role, Side

# Role -> list of (x, y) fractions, red's perspective
FORMATION_343: Dict[Role, List[Tuple[float, float]]] = {
    Role.GOALKEEPER: [(0.05, 0.5)],
    Role.DEFENDER: [(0.15, 0.25), (0.15, 0.5), (0.15, 0.75)],
    Role.MIDFIELDER: [(0.35, 0.2), (0.35, 0.4), (0.35, 0.6), (0.35, 0.8)],
    Role.FORWARD: [(0.65, 0.25), (0.65, 0.5), (0.65, 0.75)],
}


def slot_count(role: Role, formation: Dict[Role, List[Tuple[float, float]]] = FORMATION_343) -> int:
    return len(formation[role])


def target_position(side: Side, role: Role, slot: int = 0,
                    formation: Dict[Role, List[Tuple[float, float]]] = FORMATION_343) -> Position:
    """Absolute target position for the given role slot; slots wrap around."""
    slots = formation[role]
    fx, fy = slots[slot % len(slots)]
    if side is Side.BLUE:
        fx = 1.0 - fx
    return Position(fx * PITCH_WIDTH, fy * PITCH_HEIGHT)


def lineup(side: Side,
           formation: Dict[Role, List[Tuple[float, float]]] = FORMATION_343) -> List[Tuple[Role, int, Position]]:
    """Every slot of a formation as (role, slot, position)."""
    result = []
    for role in (Role.GOALKEEPER, Role.DEFENDER, Role.MIDFIELDER, Role.FORWARD):
        for slot in range(len(formation[role])):
            result.append((role, slot, target_position(side, role, slot, formation)))
    return result


def formation_centre(positions: Sequence[Position]) -> Position:
    if not positions:
        return Position(PITCH_WIDTH / 2, PITCH_HEIGHT / 2)
    return Position(
        sum(p.x for p in positions) / len(positions),
        sum(p.y for p in positions) / len(positions),
    )
