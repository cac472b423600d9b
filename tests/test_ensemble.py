"""
Tests for brain construction, the network validator and the decision ensemble.
"""

import sys
import os
import numpy as np

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from football_ai.actions import NEUTRAL_OUTPUT, NUM_OUTPUTS
from football_ai.brain import create_brain, build_network, ARCHITECTURES, META_INPUT_SIZE
from football_ai.config import EngineConfig, EnsembleConfig
from football_ai.ensemble import DecisionEnsemble
from football_ai.features import CANONICAL_FEATURES, FEATURE_INDEX, NUM_FEATURES, sanitize_features
from football_ai.seed_data import build_seed_dataset
from football_ai.situation import SPECIALIZATIONS, Specialization, analyze_situation
from football_ai.validator import is_valid, recover


def _fast_config(**ensemble) -> EngineConfig:
    config = EngineConfig(seed=11)
    config.training.pretrain_iterations = 20
    config.persistence.enabled = False
    for key, value in ensemble.items():
        setattr(config.ensemble, key, value)
    return config


def _brain(**ensemble):
    return create_brain(_fast_config(**ensemble), np.random.default_rng(5))


def _poison(network):
    network.weights[0][:] = np.nan


def _features(**values):
    x = np.array(CANONICAL_FEATURES)
    for name, value in values.items():
        x[FEATURE_INDEX[name]] = value
    return x


class TestSeedData:
    def test_shapes_and_ranges(self):
        inputs, targets = build_seed_dataset(np.random.default_rng(0), samples_per_group=2)
        assert inputs.shape == (16, NUM_FEATURES)
        assert targets.shape == (16, NUM_OUTPUTS)
        assert np.all(np.isfinite(inputs))
        assert np.all((targets >= 0.0) & (targets <= 1.0))


class TestBrain:
    def test_fully_populated(self):
        brain = _brain()
        assert set(brain.specialized) == set(SPECIALIZATIONS)
        assert brain.selector is not None
        assert brain.meta is not None
        assert brain.meta.input_size == META_INPUT_SIZE
        assert brain.primary.input_size == NUM_FEATURES
        assert brain.primary.output_size == NUM_OUTPUTS
        assert len(brain.replay) == 0
        assert brain.learning_stage == pytest.approx(0.1)
        assert brain.action_history.maxlen == 20

    def test_without_specialists(self):
        brain = _brain(with_specialists=False)
        assert brain.specialized == {}
        assert brain.selector is None
        assert brain.meta is None
        assert brain.active_network is brain.primary

    def test_specialist_shapes(self):
        brain = _brain()
        attacking = brain.specialized[Specialization.ATTACKING].network
        assert attacking.layer_sizes == [NUM_FEATURES, 20, 16, 12, 8, NUM_OUTPUTS]
        assert attacking.activation == 'leaky_relu'

    def test_success_rates(self):
        brain = _brain(with_specialists=False)
        assert brain.success_rate() == 0.5
        brain.record_action('shoot', True)
        brain.record_action('shoot', False)
        brain.record_action('pass', True)
        assert brain.success_rate('shoot') == pytest.approx(0.5)
        assert brain.success_rate('pass') == 1.0
        assert brain.success_rates['overall'] == pytest.approx(2 / 3)
        assert brain.recent_actions() == ['shoot', 'shoot', 'pass']

    def test_specialist_record(self):
        brain = _brain()
        member = brain.specialized[Specialization.GENERAL]
        member.record(True)
        member.record(False)
        assert member.usage_count == 2
        assert member.overall_success == pytest.approx(0.5)


class TestValidator:
    def test_missing_network(self):
        assert not is_valid(None)

    def test_object_without_forward(self):
        assert not is_valid(object())

    def test_valid_and_poisoned(self):
        brain = _brain(with_specialists=False)
        assert is_valid(brain.primary, NUM_OUTPUTS)
        assert not is_valid(brain.primary, 3)
        _poison(brain.primary)
        assert not is_valid(brain.primary)

    def test_recover_promotes_specialist(self):
        brain = _brain()
        _poison(brain.primary)
        brain.needs_recovery = True
        recover(brain, rng=np.random.default_rng(0))
        assert is_valid(brain.primary, NUM_OUTPUTS)
        assert not brain.needs_recovery
        # a copy, not the specialist itself
        assert all(brain.primary is not m.network for m in brain.specialized.values())

    def test_recover_rebuilds(self):
        config = _fast_config()
        brain = create_brain(config, np.random.default_rng(1), with_specialists=False)
        _poison(brain.primary)
        recover(brain, config.training, np.random.default_rng(2))
        assert is_valid(brain.primary, NUM_OUTPUTS)
        assert brain.primary.input_size == NUM_FEATURES

    def test_recover_keeps_valid_primary(self):
        brain = _brain(with_specialists=False)
        primary = brain.primary
        brain.needs_recovery = True
        recover(brain)
        assert brain.primary is primary
        assert not brain.needs_recovery


class TestDecisionEnsemble:
    def test_outputs_in_range(self):
        brain = _brain()
        ensemble = DecisionEnsemble()
        rng = np.random.default_rng(9)
        for _ in range(25):
            x = sanitize_features(rng.uniform(-1.0, 1.0, NUM_FEATURES))
            decision = ensemble.decide(brain, x, analyze_situation(x))
            values = decision.output.to_array()
            assert np.all(np.isfinite(values))
            assert np.all((values >= 0.0) & (values <= 1.0))

    def test_blend_mode_in_range(self):
        brain = _brain(mode='blend')
        ensemble = DecisionEnsemble(EnsembleConfig(mode='blend'))
        x = _features(in_attacking_third=1.0, has_possession=1.0)
        decision = ensemble.decide(brain, x, analyze_situation(x))
        assert decision.source == 'blend'
        assert decision.specialization in SPECIALIZATIONS
        assert decision.output.is_finite()

    def test_heuristic_choice_without_selector(self):
        brain = _brain(with_selector=False)
        x = _features(in_attacking_third=1.0, has_possession=1.0)
        decision = DecisionEnsemble().decide(brain, x, analyze_situation(x))
        assert decision.specialization is Specialization.ATTACKING
        assert decision.source == 'specialized'
        assert brain.current_specialization is Specialization.ATTACKING

    def test_tie_keeps_active_specialization(self):
        brain = _brain(with_selector=False)
        for member in brain.specialized.values():
            member.situation_success = 0.0
        # base weights: general 0.2, attacking 0.1
        brain.specialized[Specialization.GENERAL].situation_success = 0.5
        brain.specialized[Specialization.ATTACKING].situation_success = 1.0
        brain.current_specialization = Specialization.ATTACKING
        situation = analyze_situation(CANONICAL_FEATURES)
        chosen, scores = DecisionEnsemble().select(brain, situation)
        assert scores[Specialization.GENERAL] == pytest.approx(scores[Specialization.ATTACKING])
        assert chosen is Specialization.ATTACKING

    def test_rules_fallback_when_nothing_scores(self):
        brain = _brain(with_selector=False)
        for member in brain.specialized.values():
            member.situation_success = 0.0
        x = _features(in_defensive_third=1.0, has_possession=0.0)
        chosen, _ = DecisionEnsemble().select(brain, analyze_situation(x))
        assert chosen is Specialization.DEFENDING

    def test_selector_signal_blended(self):
        brain = _brain()
        situation = analyze_situation(CANONICAL_FEATURES)
        ensemble = DecisionEnsemble(EnsembleConfig(heuristic_blend=0.0))
        signal = ensemble.selector_signal(brain, situation)
        scores = ensemble.score(brain, situation, list(SPECIALIZATIONS))
        for spec in SPECIALIZATIONS:
            assert scores[spec] == pytest.approx(signal[SPECIALIZATIONS.index(spec)])

    def test_falls_back_to_primary(self):
        brain = _brain()
        for member in brain.specialized.values():
            _poison(member.network)
        x = np.array(CANONICAL_FEATURES)
        decision = DecisionEnsemble().decide(brain, x, analyze_situation(x))
        assert decision.source == 'primary'
        assert not brain.needs_recovery

    def test_neutral_when_everything_broken(self):
        brain = _brain()
        for member in brain.specialized.values():
            _poison(member.network)
        _poison(brain.primary)
        x = np.array(CANONICAL_FEATURES)
        decision = DecisionEnsemble().decide(brain, x, analyze_situation(x))
        assert decision.output == NEUTRAL_OUTPUT
        assert decision.source == 'neutral'
        assert brain.needs_recovery

    def test_malformed_features_sanitized(self):
        brain = _brain(with_specialists=False)
        x = np.full(NUM_FEATURES, np.nan)
        decision = DecisionEnsemble().decide(brain, x, analyze_situation(CANONICAL_FEATURES))
        assert decision.output.is_finite()
        assert decision.source == 'primary'

    def test_build_network_architecture(self):
        net = build_network(ARCHITECTURES[Specialization.SET_PIECE], 4, 2, np.random.default_rng(0))
        assert net.layer_sizes == [4, 14, 10, 6, 2]
