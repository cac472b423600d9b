"""
Persistence - best-effort mirroring of trained weights.

- ModelStore backends: in-memory, JSON files, Redis
- HistoricalExample: successful training pairs kept across matches
- team_scores / compare_teams: per-team performance totals
- PersistenceWorker: bounded queue + background thread, never blocks the tick loop
"""

from persistence.config import PersistenceConfig
from persistence.store import (
    ModelStore, ModelInfo, InMemoryModelStore, FileModelStore, RedisModelStore,
    PersistenceError, build_store, model_key,
    HistoricalExample, TeamComparison, team_scores, compare_teams,
)
from persistence.worker import PersistenceWorker, PersistenceRequest

__all__ = [
    "PersistenceConfig",
    "ModelStore",
    "ModelInfo",
    "InMemoryModelStore",
    "FileModelStore",
    "RedisModelStore",
    "PersistenceError",
    "build_store",
    "model_key",
    "HistoricalExample",
    "TeamComparison",
    "team_scores",
    "compare_teams",
    "PersistenceWorker",
    "PersistenceRequest",
]
