"""
Throughput Governor - keeps the tick loop within its time budget.

Measures a rolling mean tick duration against 1 / tick_rate. When the loop
is overloaded it sheds work: a round-robin fraction of agents skips its
decision/replay work each tick and persistence becomes less likely. It never
blocks and never raises.
"""

import logging
import time
from collections import deque
from typing import Callable, Optional

from football_ai.config import SchedulingConfig

logger = logging.getLogger(__name__)


class ThroughputGovernor:
    def __init__(self, config: Optional[SchedulingConfig] = None,
                 clock: Callable[[], float] = time.perf_counter):
        self.config = config or SchedulingConfig()
        self.clock = clock
        self._durations = deque(maxlen=max(1, self.config.window))
        self._tick_started: Optional[float] = None
        self.tick_index = 0
        self.persists_this_tick = 0
        self._was_overloaded = False

    @property
    def budget(self) -> float:
        return 1.0 / self.config.tick_rate

    @property
    def mean_duration(self) -> float:
        if not self._durations:
            return 0.0
        return sum(self._durations) / len(self._durations)

    @property
    def overloaded(self) -> bool:
        return bool(self._durations) and \
            self.mean_duration > self.budget * self.config.overload_factor

    @property
    def skip_fraction(self) -> float:
        if not self.overloaded:
            return 0.0
        excess = self.mean_duration / self.budget - 1.0
        return min(self.config.max_skip_fraction, max(0.0, excess))

    def begin_tick(self):
        self._tick_started = self.clock()
        self.persists_this_tick = 0

    def end_tick(self):
        if self._tick_started is not None:
            self._durations.append(self.clock() - self._tick_started)
            self._tick_started = None
        self.tick_index += 1

        overloaded = self.overloaded
        if overloaded != self._was_overloaded:
            if overloaded:
                logger.warning(
                    f"Tick loop overloaded: mean {self.mean_duration * 1000:.1f}ms "
                    f"vs budget {self.budget * 1000:.1f}ms; shedding {self.skip_fraction:.0%} of agents"
                )
            else:
                logger.info("Tick loop back within budget")
            self._was_overloaded = overloaded

    def should_skip(self, index: int, total: int) -> bool:
        """Round-robin: a rotating window of agents is skipped each tick."""
        if total <= 0:
            return False
        skipped = int(self.skip_fraction * total)
        if skipped == 0:
            return False
        offset = (self.tick_index * skipped) % total
        return (index - offset) % total < skipped

    def persist_probability(self, severe: bool = False) -> float:
        c = self.config
        p = c.severe_persist_probability if severe else c.persist_probability
        if self.overloaded:
            p *= c.overloaded_persist_scale
        return p

    def allow_persist(self) -> bool:
        """Consume one slot of this tick's persistence budget."""
        if self.persists_this_tick >= self.config.max_persists_per_tick:
            return False
        self.persists_this_tick += 1
        return True
