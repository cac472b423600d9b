#!/usr/bin/env python3
"""
Football AI - Command Line Interface

Run sandbox matches with learning agents and inspect stored models.

Usage:
    python cli.py simulate --ticks 3000 --full
    python cli.py simulate --backend file --store models --policy red_only
    python cli.py models --backend file --store models
    python cli.py config --output engine.json
"""

import argparse
import json
import logging
import sys
import time

from football_ai.config import EngineConfig
from football_ai.engine import LearningEngine
from football_ai.session import MatchSession
from persistence.store import PersistenceError, build_store, compare_teams, team_scores
from pitch.sandbox import DEFAULT_SLOTS, FULL_SLOTS, SandboxMatch
from pitch.world import Side

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='football-ai',
        description='Learning agents for a simulated football match'
    )
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='Engine configuration JSON (default: environment/defaults)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Simulate command
    sim_parser = subparsers.add_parser('simulate', help='Run a sandbox match')
    sim_parser.add_argument('--ticks', '-t', type=int, default=None,
                            help='Stop after this many ticks (default: full match)')
    sim_parser.add_argument('--duration', '-d', type=float, default=90.0,
                            help='Match duration in seconds')
    sim_parser.add_argument('--full', action='store_true',
                            help='Full 3-4-3 line-ups instead of 5-a-side')
    sim_parser.add_argument('--seed', '-s', type=int, default=None,
                            help='Random seed')
    sim_parser.add_argument('--policy', '-p', choices=['both', 'red_only', 'blue_only', 'none'],
                            default=None, help='Which side learns')
    sim_parser.add_argument('--red-strength', type=float, default=1500.0)
    sim_parser.add_argument('--blue-strength', type=float, default=1500.0)
    _add_store_arguments(sim_parser)

    # Models command
    models_parser = subparsers.add_parser('models', help='List stored models')
    _add_store_arguments(models_parser)
    models_parser.add_argument('--compare', nargs=2, metavar=('TEAM_A', 'TEAM_B'),
                               default=['red', 'blue'],
                               help='Compare total performance score of two teams')

    # Config command
    config_parser = subparsers.add_parser('config', help='Show the effective configuration')
    config_parser.add_argument('--output', '-o', type=str, default=None,
                               help='Write configuration JSON to this file')

    return parser


def _add_store_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('--backend', '-b', choices=['memory', 'file', 'redis'], default=None,
                        help='Model store backend')
    parser.add_argument('--store', type=str, default=None,
                        help='Model directory (file backend)')
    parser.add_argument('--redis-url', type=str, default=None,
                        help='Redis URL (redis backend)')


def load_config(args) -> EngineConfig:
    config = EngineConfig.load(args.config) if args.config else EngineConfig.from_env()
    if getattr(args, 'backend', None):
        config.persistence.backend = args.backend
    if getattr(args, 'store', None):
        config.persistence.path = args.store
    if getattr(args, 'redis_url', None):
        config.persistence.redis_url = args.redis_url
    if getattr(args, 'policy', None):
        config.scheduling.learning_policy = args.policy
    if getattr(args, 'seed', None) is not None:
        config.seed = args.seed
    config.validate()
    return config


def cmd_simulate(args, config: EngineConfig) -> int:
    """Run one sandbox match with learning agents"""
    match = SandboxMatch(
        slots=FULL_SLOTS if args.full else DEFAULT_SLOTS,
        match_duration=args.duration,
        tick_seconds=1.0 / config.scheduling.tick_rate,
        team_strength={Side.RED: args.red_strength, Side.BLUE: args.blue_strength},
        seed=config.seed,
    )
    engine = LearningEngine(config)
    print(f"Simulating {len(match.players)} players, policy={engine.policy.value}, "
          f"store={config.persistence.backend if config.persistence.enabled else 'off'}")

    start = time.time()
    try:
        summary = MatchSession(engine, match).run(max_ticks=args.ticks)
    finally:
        engine.shutdown()
    elapsed = time.time() - start

    result = summary.to_dict()
    result['wall_seconds'] = round(elapsed, 2)
    result['ticks_per_second'] = round(summary.ticks / elapsed, 1) if elapsed > 0 else None
    result['engine'] = engine.stats()
    print(json.dumps(result, indent=2))
    return 0


def cmd_models(args, config: EngineConfig) -> int:
    """List models in the configured store"""
    try:
        store = build_store(config.persistence)
        models = store.list_models()
    except PersistenceError as e:
        print(f"Error reading store: {e}")
        return 1

    if not models:
        print("No stored models")
        return 0

    print(f"{'team':<10} {'role':<12} {'ver':>4} {'sessions':>9} {'score':>10}  updated")
    print("-" * 64)
    for info in sorted(models, key=lambda m: m.key):
        updated = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(info.last_updated))
        print(f"{info.team_id:<10} {info.role_id:<12} {info.version:>4} "
              f"{info.training_sessions:>9} {info.performance_score:>10.2f}  {updated}")

    print()
    for team_id, total in sorted(team_scores(models).items()):
        print(f"{team_id:<10} total score {total:>10.2f}")
    comparison = compare_teams(models, *args.compare)
    print(f"{comparison.team_a} vs {comparison.team_b}: "
          f"{comparison.score_a:.2f} - {comparison.score_b:.2f} (difference {comparison.difference:+.2f})")
    return 0


def cmd_config(args, config: EngineConfig) -> int:
    """Print (or save) the effective configuration"""
    if args.output:
        config.save(args.output)
        print(f"Configuration written to {args.output}")
    else:
        print(json.dumps(config.to_dict(), indent=2))
    return 0


def main(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        'simulate': cmd_simulate,
        'models': cmd_models,
        'config': cmd_config,
    }

    try:
        config = load_config(args)
    except (OSError, ValueError) as e:
        print(f"Invalid configuration: {e}")
        return 2

    return commands[args.command](args, config)


if __name__ == '__main__':
    sys.exit(main() or 0)
