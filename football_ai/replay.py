"""
Experience Replay - fixed-capacity circular store with priority sampling.
"""

import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from football_ai.situation import Specialization, is_relevant

MIN_PRIORITY = 1e-3


@dataclass(frozen=True)
class ReplayEntry:
    input: np.ndarray
    output: np.ndarray
    reward: float
    priority: float
    timestamp: float
    sequence: int          # insertion order, strictly increasing


class ExperienceReplay:
    """
    Circular buffer of (input, target output, reward, priority).

    Once full, each insert overwrites the oldest slot, so the buffer always
    holds the most recent `capacity` entries.
    """

    def __init__(self, capacity: int = 1000, rng: Optional[np.random.Generator] = None):
        if capacity <= 0:
            raise ValueError(f"Replay capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._slots: List[Optional[ReplayEntry]] = [None] * capacity
        self._next = 0
        self._size = 0
        self._sequence = 0
        self.rng = rng or np.random.default_rng()

    def __len__(self) -> int:
        return self._size

    @property
    def is_full(self) -> bool:
        return self._size == self.capacity

    def insert(self, input, output, reward: float, priority: float = 1.0) -> ReplayEntry:
        if not np.isfinite(priority) or priority <= 0:
            priority = MIN_PRIORITY
        entry = ReplayEntry(
            input=np.array(input, dtype=np.float64),
            output=np.array(output, dtype=np.float64),
            reward=float(reward),
            priority=float(max(priority, MIN_PRIORITY)),
            timestamp=time.time(),
            sequence=self._sequence,
        )
        self._sequence += 1
        self._slots[self._next] = entry
        self._next = (self._next + 1) % self.capacity
        self._size = min(self._size + 1, self.capacity)
        return entry

    def entries(self) -> List[ReplayEntry]:
        """Stored entries, oldest first."""
        if self._size < self.capacity:
            return list(self._slots[:self._size])
        return self._slots[self._next:] + self._slots[:self._next]

    def sample(self, n: int, specialization: Optional[Specialization] = None) -> List[ReplayEntry]:
        """
        Draw a training batch.

        With a specialization, candidates are restricted to entries whose
        input satisfies its relevance predicate and up to `n` of them are
        drawn uniformly without replacement. Without one, exactly `n` entries
        are drawn with replacement, proportionally to priority.
        """
        if n <= 0 or self._size == 0:
            return []
        stored = self.entries()

        if specialization is not None:
            candidates = [e for e in stored if is_relevant(specialization, e.input)]
            if not candidates:
                return []
            k = min(n, len(candidates))
            picks = self.rng.choice(len(candidates), size=k, replace=False)
            return [candidates[i] for i in picks]

        priorities = np.array([e.priority for e in stored])
        probs = priorities / priorities.sum()
        picks = self.rng.choice(len(stored), size=n, replace=True, p=probs)
        return [stored[i] for i in picks]

    def sample_arrays(self, n: int, specialization: Optional[Specialization] = None
                      ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Same as sample() but stacked: (inputs, outputs, rewards, priorities)."""
        batch = self.sample(n, specialization)
        if not batch:
            return np.zeros((0, 0)), np.zeros((0, 0)), np.zeros(0), np.zeros(0)
        return (
            np.stack([e.input for e in batch]),
            np.stack([e.output for e in batch]),
            np.array([e.reward for e in batch]),
            np.array([e.priority for e in batch]),
        )

    def clear(self):
        self._slots = [None] * self.capacity
        self._next = 0
        self._size = 0
