"""
Tests for the experience replay buffer.
"""

import sys
import os
import numpy as np

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from football_ai.features import CANONICAL_FEATURES, FEATURE_INDEX, NUM_FEATURES
from football_ai.replay import ExperienceReplay, MIN_PRIORITY
from football_ai.situation import Specialization


def _input(tag: float) -> np.ndarray:
    x = np.array(CANONICAL_FEATURES)
    x[0] = tag
    return x


def _tag(entry) -> float:
    return float(entry.input[0])


class TestExperienceReplay:
    def test_rejects_bad_capacity(self):
        with pytest.raises(ValueError):
            ExperienceReplay(capacity=0)

    def test_never_exceeds_capacity(self):
        buf = ExperienceReplay(capacity=10, rng=np.random.default_rng(0))
        for i in range(13):
            buf.insert(_input(i / 100), np.zeros(5), 0.0)
        assert len(buf) == 10
        assert buf.is_full
        sequences = [e.sequence for e in buf.entries()]
        assert sequences == list(range(3, 13))
        timestamps = [e.timestamp for e in buf.entries()]
        assert timestamps == sorted(timestamps)

    def test_sample_only_recent_entries(self):
        buf = ExperienceReplay(capacity=5, rng=np.random.default_rng(1))
        for i in range(1, 8):           # E1..E7
            buf.insert(_input(i / 10), np.zeros(5), float(i))
        allowed = {i / 10 for i in range(3, 8)}
        for _ in range(50):
            batch = buf.sample(5)
            assert len(batch) == 5
            assert all(_tag(e) in allowed for e in batch)

    def test_priority_weighting(self):
        buf = ExperienceReplay(capacity=10, rng=np.random.default_rng(2))
        buf.insert(_input(0.1), np.zeros(5), 0.0, priority=1.0)
        buf.insert(_input(0.9), np.zeros(5), 0.0, priority=99.0)
        batch = buf.sample(500)
        heavy = sum(1 for e in batch if _tag(e) == 0.9)
        assert heavy > 450

    def test_invalid_priority_floored(self):
        buf = ExperienceReplay(capacity=3)
        assert buf.insert(_input(0.1), np.zeros(5), 0.0, priority=0.0).priority == MIN_PRIORITY
        assert buf.insert(_input(0.2), np.zeros(5), 0.0, priority=float('nan')).priority == MIN_PRIORITY

    def test_specialization_filter(self):
        buf = ExperienceReplay(capacity=20, rng=np.random.default_rng(3))
        attacking = np.array(CANONICAL_FEATURES)
        attacking[FEATURE_INDEX['distance_to_target_goal']] = 0.1
        attacking[FEATURE_INDEX['has_possession']] = 1.0
        for _ in range(3):
            buf.insert(attacking, np.ones(5), 1.0)
        for i in range(10):
            buf.insert(_input(i / 20), np.zeros(5), 0.0)

        batch = buf.sample(10, Specialization.ATTACKING)
        assert len(batch) == 3
        assert all(e.reward == 1.0 for e in batch)
        # uniform without replacement
        assert len({e.sequence for e in batch}) == 3

    def test_filter_with_no_match(self):
        buf = ExperienceReplay(capacity=5)
        buf.insert(_input(0.5), np.zeros(5), 0.0)
        assert buf.sample(3, Specialization.SET_PIECE) == []

    def test_sample_empty(self):
        buf = ExperienceReplay(capacity=5)
        assert buf.sample(4) == []
        inputs, outputs, rewards, priorities = buf.sample_arrays(4)
        assert inputs.shape[0] == 0

    def test_sample_arrays_shapes(self):
        buf = ExperienceReplay(capacity=5, rng=np.random.default_rng(4))
        for i in range(5):
            buf.insert(_input(i / 10), np.full(5, 0.5), float(i), priority=i + 1)
        inputs, outputs, rewards, priorities = buf.sample_arrays(4)
        assert inputs.shape == (4, NUM_FEATURES)
        assert outputs.shape == (4, 5)
        assert rewards.shape == (4,)
        assert np.all(priorities >= 1.0)

    def test_stored_copies(self):
        buf = ExperienceReplay(capacity=2)
        x = _input(0.3)
        buf.insert(x, np.zeros(5), 0.0)
        x[0] = 0.9
        assert _tag(buf.entries()[0]) == pytest.approx(0.3)

    def test_clear(self):
        buf = ExperienceReplay(capacity=2)
        buf.insert(_input(0.3), np.zeros(5), 0.0)
        buf.clear()
        assert len(buf) == 0
        assert buf.entries() == []
