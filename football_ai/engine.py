"""
Learning Engine - the surface the simulation loop talks to.

    engine = LearningEngine(EngineConfig.from_env())
    agent = engine.spawn("red-fwd-0", "red", Side.RED, Role.FORWARD)

    engine.begin_tick()
    outputs = engine.tick(world, match)           # decide for every agent
    ...                                           # simulation applies actions
    engine.handle_outcomes(world, outcomes, match)
    engine.end_tick()

Gameplay never waits on persistence: saves are probability-gated, capped per
tick and handed to a PersistenceWorker.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

import numpy as np

from football_ai.actions import NEUTRAL_OUTPUT, NUM_OUTPUTS, ActionOutput, determine_action, to_command
from football_ai.brain import Agent, create_brain
from football_ai.config import EngineConfig
from football_ai.encoder import encode_player
from football_ai.ensemble import DecisionEnsemble
from football_ai.features import NUM_FEATURES, sanitize_features
from football_ai.governor import ThroughputGovernor
from football_ai.reward import RewardContext
from football_ai.situation import analyze_situation
from football_ai.trainer import Trainer, TrainingReport
from football_ai.validator import is_valid, recover
from neural.network import FeedForwardNetwork
from neural.weights import NetworkWeights
from persistence.store import HistoricalExample, ModelStore, PersistenceError, build_store
from persistence.worker import PersistenceRequest, PersistenceWorker
from pitch.context import MatchContext
from pitch.events import MatchOutcome, OutcomeKind, PlayerCommand
from pitch.world import Role, Side, WorldSnapshot

logger = logging.getLogger(__name__)


class LearningPolicy(Enum):
    """Which sides update their networks during a match."""
    BOTH = "both"
    RED_ONLY = "red_only"
    BLUE_ONLY = "blue_only"
    NONE = "none"

    def allows(self, side: Side) -> bool:
        if self is LearningPolicy.BOTH:
            return True
        if self is LearningPolicy.RED_ONLY:
            return side is Side.RED
        if self is LearningPolicy.BLUE_ONLY:
            return side is Side.BLUE
        return False


class LearningEngine:
    def __init__(self, config: Optional[EngineConfig] = None,
                 store: Optional[ModelStore] = None,
                 worker: Optional[PersistenceWorker] = None,
                 seed: Optional[int] = None):
        self.config = config or EngineConfig()
        self.config.validate()
        self.rng = np.random.default_rng(seed if seed is not None else self.config.seed)

        self.ensemble = DecisionEnsemble(self.config.ensemble)
        self.trainer = Trainer(self.config, rng=self.rng)
        self.governor = ThroughputGovernor(self.config.scheduling)
        self.policy = LearningPolicy(self.config.scheduling.learning_policy)

        persistence = self.config.persistence
        if store is None and persistence.enabled:
            store = build_store(persistence)
        self.store = store
        if worker is None and store is not None:
            worker = PersistenceWorker(store, persistence.queue_size).start()
        self.worker = worker

        self.agents: Dict[str, Agent] = {}
        self._skipped: Set[str] = set()
        # Newest replay sequence already sent to the store, per agent
        self._history_marks: Dict[str, int] = {}
        self._persistence_stats: Optional[Dict[str, int]] = None

    # ── Agent lifecycle ───────────────────────────────────────────────

    def spawn(self, agent_id: str, team_id: str, side: Side, role: Role) -> Agent:
        brain = create_brain(self.config, self.rng)
        agent = Agent(agent_id, team_id, side, role, brain)
        if self.config.persistence.warm_start:
            self._warm_start(agent)
        self.agents[agent_id] = agent
        if self.worker is not None:
            self.worker.register(agent_id)
        logger.info(f"Spawned {agent_id} ({team_id}/{role.value})")
        return agent

    def _warm_start(self, agent: Agent):
        if self.store is None:
            return
        persistence = self.config.persistence
        try:
            weights = self.store.load(agent.team_id, agent.role_id, persistence.version)
            if weights is None:
                best = self.store.best(agent.team_id, agent.role_id)
                if best is not None:
                    info, weights = best
                    logger.info(f"No v{persistence.version} model for {agent.agent_id}; "
                                f"using best stored {info.key} (score {info.performance_score:.2f})")
        except PersistenceError as e:
            logger.warning(f"Could not load model for {agent.agent_id}: {e}")
            weights = None
        if weights is not None:
            self._adopt_weights(agent, weights)
        if persistence.historical_training:
            self._train_from_history(agent)

    def _adopt_weights(self, agent: Agent, weights: NetworkWeights):
        if weights.layer_sizes[0] != NUM_FEATURES or weights.layer_sizes[-1] != NUM_OUTPUTS:
            logger.warning(f"Stored model for {agent.agent_id} has shape {weights.layer_sizes}; ignored")
            return
        t = self.config.training
        try:
            net = FeedForwardNetwork.from_weights(
                weights,
                learning_rate=t.primary_learning_rate,
                momentum=t.primary_momentum,
                seed=int(self.rng.integers(0, 2 ** 31 - 1)),
            )
        except ValueError as e:
            logger.warning(f"Stored model for {agent.agent_id} is malformed ({e}); keeping fresh network")
            return
        if not is_valid(net, NUM_OUTPUTS):
            logger.warning(f"Stored model for {agent.agent_id} is unusable; keeping fresh network")
            return
        agent.brain.primary = net
        logger.info(f"Warm-started {agent.agent_id} from stored {agent.team_id}/{agent.role_id}")

    def _train_from_history(self, agent: Agent):
        """Fit the primary to successful examples from earlier matches and seed the replay."""
        persistence = self.config.persistence
        try:
            examples = self.store.load_examples(agent.team_id, agent.role_id, persistence.history_limit)
        except PersistenceError as e:
            logger.warning(f"Could not load history for {agent.agent_id}: {e}")
            return
        examples = [e for e in examples
                    if len(e.inputs) == NUM_FEATURES and len(e.outputs) == NUM_OUTPUTS and e.reward > 0]
        if len(examples) < persistence.min_history_examples:
            return

        inputs = np.stack([sanitize_features(e.inputs) for e in examples])
        targets = np.clip(np.array([e.outputs for e in examples], dtype=np.float64), 0.0, 1.0)
        result = agent.brain.primary.train(
            inputs, targets,
            iterations=min(50, 2 * len(examples)),
            learning_rate=0.1,
            error_threshold=0.05,
        )
        if result.diverged:
            logger.warning(f"Historical training diverged for {agent.agent_id}; weights restored")
            return
        priority = self.config.replay.ordinary_priority
        for x, target, e in zip(inputs, targets, examples):
            agent.brain.replay.insert(x, target, e.reward, priority)
        logger.info(f"Trained {agent.agent_id} on {len(examples)} historical examples "
                    f"(error {result.error:.4f})")

    def remove(self, agent_id: str) -> Optional[Agent]:
        agent = self.agents.pop(agent_id, None)
        self._history_marks.pop(agent_id, None)
        if self.worker is not None:
            self.worker.forget(agent_id)
        if agent is not None:
            logger.info(f"Removed {agent_id}")
        return agent

    def get(self, agent_id: str) -> Optional[Agent]:
        return self.agents.get(agent_id)

    # ── Decisions ─────────────────────────────────────────────────────

    def decide(self, agent: Agent, world: WorldSnapshot,
               match: Optional[MatchContext] = None) -> ActionOutput:
        """Choose this tick's ActionOutput; records it as the agent's last decision."""
        brain = agent.brain
        player = world.player(agent.agent_id)
        if player is None:
            logger.debug(f"{agent.agent_id} not in snapshot; neutral output")
            return NEUTRAL_OUTPUT

        if brain.needs_recovery:
            recover(brain, self.config.training, self.rng)

        features = encode_player(world, player, match, brain.success_rate())
        situation = analyze_situation(features, brain.recent_actions())
        decision = self.ensemble.decide(brain, features, situation)

        brain.last_input = features
        brain.last_output = decision.output
        brain.last_action = determine_action(decision.output,
                                             player.position.distance_to(world.ball.position))
        return decision.output

    def tick(self, world: WorldSnapshot, match: Optional[MatchContext] = None) -> Dict[str, ActionOutput]:
        """
        Decide for every agent. Under load a round-robin share of agents keeps
        its previous output and skips replay work this tick.
        """
        outputs = {}
        self._skipped = set()
        total = len(self.agents)
        for index, (agent_id, agent) in enumerate(list(self.agents.items())):
            if self.governor.should_skip(index, total):
                self._skipped.add(agent_id)
                outputs[agent_id] = agent.brain.last_output or NEUTRAL_OUTPUT
                continue
            outputs[agent_id] = self.decide(agent, world, match)
        if self._skipped:
            logger.debug(f"Skipped {len(self._skipped)}/{total} agents this tick")
        return outputs

    def commands(self, outputs: Dict[str, ActionOutput]) -> Dict[str, PlayerCommand]:
        """Translate outputs into simulation commands using each agent's chosen action."""
        commands = {}
        for agent_id, output in outputs.items():
            agent = self.agents.get(agent_id)
            if agent is None or agent.brain.last_action is None:
                continue
            commands[agent_id] = to_command(output, agent.brain.last_action)
        return commands

    # ── Learning ──────────────────────────────────────────────────────

    def reward_context(self, agent: Agent, world: WorldSnapshot,
                       match: Optional[MatchContext] = None,
                       now: Optional[float] = None) -> RewardContext:
        player = world.player(agent.agent_id)
        position = player.position if player is not None else agent.side.own_goal
        target = player.target_position if player is not None else None
        touches = match.touches.chain(now if now is not None else world.elapsed) if match else []
        return RewardContext(
            agent_id=agent.agent_id,
            side=agent.side,
            agent_position=position,
            target_position=target,
            last_output=agent.brain.last_output,
            touches=touches,
        )

    def recipients(self, outcome: MatchOutcome) -> List[Agent]:
        """Goals reach every agent; other outcomes only the actor."""
        if outcome.kind is OutcomeKind.GOAL:
            return list(self.agents.values())
        agent = self.agents.get(outcome.actor_id) if outcome.actor_id else None
        return [agent] if agent is not None else []

    def learn(self, agent: Agent, outcome: MatchOutcome, context: RewardContext,
              allow_replay: bool = True) -> Optional[TrainingReport]:
        if not self.policy.allows(agent.side):
            return None
        report = self.trainer.train_step(agent, outcome, context, allow_replay=allow_replay)
        if report.recovered:
            logger.warning(f"Recovered network for {agent.agent_id}")
        self._maybe_persist(agent, report)
        return report

    def handle_outcomes(self, world: WorldSnapshot, outcomes: Iterable[MatchOutcome],
                        match: Optional[MatchContext] = None) -> List[TrainingReport]:
        """
        Train every agent an outcome concerns. `world` should be the snapshot
        the decisions were made from, so positions match the moment of action.
        """
        reports = []
        for outcome in outcomes:
            for agent in self.recipients(outcome):
                context = self.reward_context(agent, world, match, outcome.time)
                report = self.learn(agent, outcome, context,
                                    allow_replay=agent.agent_id not in self._skipped)
                if report is not None:
                    reports.append(report)
        return reports

    def _maybe_persist(self, agent: Agent, report: TrainingReport):
        if self.worker is None:
            return
        if self.rng.random() >= self.governor.persist_probability(report.severe):
            return
        if not self.governor.allow_persist():
            return
        brain = agent.brain
        examples, mark = self._new_examples(agent)
        accepted = self.worker.submit(PersistenceRequest(
            agent_id=agent.agent_id,
            team_id=agent.team_id,
            role_id=agent.role_id,
            weights=brain.primary.to_weights(),
            version=self.config.persistence.version,
            training_sessions=brain.training_sessions,
            performance_score=brain.cumulative_reward,
            examples=examples,
        ))
        if accepted and examples:
            self._history_marks[agent.agent_id] = mark

    def _new_examples(self, agent: Agent):
        """Rewarded replay entries not yet sent to the store, newest `history_batch` of them."""
        if not self.config.persistence.historical_training:
            return [], -1
        mark = self._history_marks.get(agent.agent_id, -1)
        fresh = [e for e in agent.brain.replay.entries() if e.sequence > mark and e.reward > 0]
        fresh = fresh[-self.config.persistence.history_batch:]
        if not fresh:
            return [], mark
        examples = [HistoricalExample(e.input.tolist(), e.output.tolist(), e.reward, e.timestamp)
                    for e in fresh]
        return examples, fresh[-1].sequence

    # ── Tick bookkeeping ──────────────────────────────────────────────

    def begin_tick(self):
        self.governor.begin_tick()

    def end_tick(self):
        self.governor.end_tick()

    def stats(self) -> Dict:
        return {
            'agents': len(self.agents),
            'policy': self.policy.value,
            'overloaded': self.governor.overloaded,
            'mean_tick_ms': self.governor.mean_duration * 1000,
            'persistence': dict(self.worker.stats) if self.worker is not None else self._persistence_stats,
            'learning_stage': {
                agent_id: round(a.brain.learning_stage, 3) for agent_id, a in self.agents.items()
            },
        }

    def shutdown(self, flush: bool = True):
        if self.worker is not None:
            self.worker.stop(flush=flush)
            self._persistence_stats = dict(self.worker.stats)
            self.worker = None
        logger.info("Learning engine shut down")
