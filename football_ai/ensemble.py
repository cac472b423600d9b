"""
Decision Ensemble - turns a FeatureVector into an ActionOutput.

Per decision:
1. Score every usable specialized network:
       score = blend * heuristic(situation, spec) * success(spec)
             + (1 - blend) * selector_signal(spec)
   (heuristic x success only when no valid selector exists)
2. Pick the arg-max, keeping the active specialization on ties
3. Run it; fall back to the primary network, then to NEUTRAL_OUTPUT
   (flagging the brain for recovery)

In "blend" mode the meta network instead weights every specialized output by
confidence x meta weight and averages them.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from football_ai.actions import NEUTRAL_OUTPUT, NUM_OUTPUTS, ActionOutput
from football_ai.brain import Brain
from football_ai.config import EnsembleConfig
from football_ai.features import sanitize_features
from football_ai.situation import (
    SPECIALIZATIONS, SituationContext, Specialization, heuristic_weight,
    network_confidence, rules_based_choice,
)
from football_ai.validator import is_valid

logger = logging.getLogger(__name__)


@dataclass
class Decision:
    output: ActionOutput
    specialization: Specialization
    source: str                      # specialized | blend | primary | neutral
    scores: Dict[Specialization, float] = field(default_factory=dict)


def _run(network, x: np.ndarray) -> Optional[np.ndarray]:
    """Forward pass, or None when the network is missing or misbehaves."""
    if network is None:
        return None
    try:
        out = np.asarray(network.forward(x), dtype=np.float64)
    except (AttributeError, TypeError, ValueError):
        return None
    if out.shape != (NUM_OUTPUTS,) or not np.all(np.isfinite(out)):
        return None
    return out


class DecisionEnsemble:
    def __init__(self, config: Optional[EnsembleConfig] = None):
        self.config = config or EnsembleConfig()

    def _usable(self, brain: Brain) -> List[Specialization]:
        return [s for s in SPECIALIZATIONS
                if s in brain.specialized and is_valid(brain.specialized[s].network, NUM_OUTPUTS)]

    def selector_signal(self, brain: Brain, situation: SituationContext) -> Optional[np.ndarray]:
        if not is_valid(brain.selector, len(SPECIALIZATIONS)):
            return None
        return np.asarray(brain.selector.forward(situation.to_vector()))

    def score(self, brain: Brain, situation: SituationContext,
              candidates: List[Specialization]) -> Dict[Specialization, float]:
        signal = self.selector_signal(brain, situation)
        blend = self.config.heuristic_blend
        scores = {}
        for spec in candidates:
            base = heuristic_weight(situation, spec) * brain.specialized[spec].situation_success
            if signal is None:
                scores[spec] = base
            else:
                learned = float(signal[SPECIALIZATIONS.index(spec)])
                scores[spec] = blend * base + (1.0 - blend) * learned
        return scores

    def select(self, brain: Brain, situation: SituationContext
               ) -> Tuple[Specialization, Dict[Specialization, float]]:
        candidates = self._usable(brain)
        if not candidates:
            return Specialization.GENERAL, {}

        scores = self.score(brain, situation, candidates)
        best = max(candidates, key=lambda s: scores[s])

        if scores[best] <= 0.0:
            fallback = rules_based_choice(situation)
            return (fallback if fallback in candidates else best), scores

        current = brain.current_specialization
        if current in scores and scores[current] >= scores[best] - self.config.hysteresis_margin:
            best = current
        return best, scores

    def decide(self, brain: Brain, features, situation: SituationContext) -> Decision:
        x = sanitize_features(features)
        brain.last_situation = situation

        if self.config.mode == 'blend' and brain.specialized:
            decision = self._blend(brain, x, situation)
            if decision is not None:
                brain.current_specialization = decision.specialization
                return decision

        spec, scores = self.select(brain, situation)
        brain.current_specialization = spec

        chosen = brain.specialized.get(spec)
        out = _run(chosen.network, x) if chosen is not None else None
        if out is not None:
            return Decision(ActionOutput.from_array(out), spec, 'specialized', scores)

        out = _run(brain.primary, x)
        if out is not None:
            return Decision(ActionOutput.from_array(out), spec, 'primary', scores)

        if not brain.needs_recovery:
            logger.warning("No usable network; returning neutral output and flagging recovery")
        brain.needs_recovery = True
        return Decision(NEUTRAL_OUTPUT, spec, 'neutral', scores)

    def _blend(self, brain: Brain, x: np.ndarray, situation: SituationContext) -> Optional[Decision]:
        outputs = {}
        for spec in SPECIALIZATIONS:
            member = brain.specialized.get(spec)
            out = _run(member.network, x) if member is not None else None
            if out is not None:
                outputs[spec] = out
        if not outputs:
            return None

        confidences = {
            spec: network_confidence(spec, brain.specialized[spec].situation_success, situation)
            for spec in outputs
        }
        meta_weights = np.ones(len(SPECIALIZATIONS))
        if is_valid(brain.meta, len(SPECIALIZATIONS)):
            meta_in = np.concatenate([
                situation.to_vector(),
                [confidences.get(s, 0.5) for s in SPECIALIZATIONS],
            ])
            meta_weights = np.asarray(brain.meta.forward(meta_in))

        weights = {s: confidences[s] * float(meta_weights[SPECIALIZATIONS.index(s)]) for s in outputs}
        total = sum(weights.values())
        if not np.isfinite(total) or total <= 0.0:
            weights = confidences
            total = sum(weights.values())

        combined = sum(outputs[s] * (weights[s] / total) for s in outputs)
        leader = max(weights, key=weights.get)
        return Decision(ActionOutput.from_array(combined), leader, 'blend', dict(weights))
