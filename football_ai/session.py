"""
Match Session - drives a SandboxMatch with a LearningEngine.

Each tick:
1. Snapshot the world and let the engine decide for every agent
2. Step the sandbox with the resulting commands
3. Train on whatever resolved, against the pre-step snapshot
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Optional

from football_ai.engine import LearningEngine
from pitch.sandbox import SandboxMatch

logger = logging.getLogger(__name__)


@dataclass
class SessionSummary:
    ticks: int = 0
    score: Dict[str, int] = field(default_factory=dict)
    outcomes: Dict[str, int] = field(default_factory=dict)
    training_steps: int = 0
    recoveries: int = 0
    total_reward: float = 0.0

    def to_dict(self) -> Dict:
        return {
            'ticks': self.ticks,
            'score': self.score,
            'outcomes': self.outcomes,
            'training_steps': self.training_steps,
            'recoveries': self.recoveries,
            'total_reward': round(self.total_reward, 4),
        }


class MatchSession:
    def __init__(self, engine: LearningEngine, match: SandboxMatch):
        self.engine = engine
        self.match = match
        for pid, player in match.players.items():
            if engine.get(pid) is None:
                engine.spawn(pid, player.side.value, player.side, player.role)

    def step(self, summary: SessionSummary, outcome_counts: Counter):
        engine, match = self.engine, self.match
        engine.begin_tick()
        world = match.snapshot()
        outputs = engine.tick(world, match.context)
        outcomes = match.step(engine.commands(outputs))
        for outcome in outcomes:
            outcome_counts[outcome.kind.value] += 1
        reports = engine.handle_outcomes(world, outcomes, match.context)
        engine.end_tick()

        summary.training_steps += len(reports)
        summary.recoveries += sum(1 for r in reports if r.recovered)
        summary.total_reward += sum(r.reward for r in reports)

    def run(self, max_ticks: Optional[int] = None) -> SessionSummary:
        summary = SessionSummary()
        outcome_counts: Counter = Counter()
        while not self.match.finished:
            if max_ticks is not None and summary.ticks >= max_ticks:
                break
            self.step(summary, outcome_counts)
            summary.ticks += 1

        summary.score = {'red': self.match.score.red, 'blue': self.match.score.blue}
        summary.outcomes = dict(outcome_counts)
        logger.info(
            f"Session finished after {summary.ticks} ticks: "
            f"{summary.score['red']}-{summary.score['blue']}, "
            f"{summary.training_steps} training steps"
        )
        return summary
