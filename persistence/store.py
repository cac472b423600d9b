"""
Model Stores - best-effort persistence of trained network weights.

Weights are keyed by (team, role, version) and stored in the versioned
NetworkWeights format together with a little metadata:
- training_sessions: how many learn steps produced these weights
- performance_score: the agent's cumulative reward at save time
- last_updated: unix timestamp

Each store also keeps a capped history of successful training examples per
(team, role), used to warm-start new agents from previous matches.

Backends:
- InMemoryModelStore: dict, for tests and single-process demos
- FileModelStore: one JSON document per key under a directory
- RedisModelStore: JSON documents in Redis (needs the `redis` package)
"""

import json
import logging
import math
import os
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from neural.weights import NetworkWeights
from persistence.config import PersistenceConfig

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 200


class PersistenceError(Exception):
    """A store could not read or write a model."""


@dataclass
class ModelInfo:
    team_id: str
    role_id: str
    version: int
    training_sessions: int = 0
    performance_score: float = 0.0
    last_updated: float = 0.0

    @property
    def key(self) -> str:
        return model_key(self.team_id, self.role_id, self.version)


@dataclass
class HistoricalExample:
    """A successful (input, target) pair kept across matches."""
    inputs: List[float]
    outputs: List[float]
    reward: float
    timestamp: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HistoricalExample':
        inputs = [float(v) for v in data['inputs']]
        outputs = [float(v) for v in data['outputs']]
        reward = float(data['reward'])
        if not all(math.isfinite(v) for v in inputs + outputs + [reward]):
            raise ValueError("Historical example contains non-finite values")
        return cls(inputs, outputs, reward, float(data.get('timestamp', 0.0)))


@dataclass
class TeamComparison:
    team_a: str
    team_b: str
    score_a: float
    score_b: float

    @property
    def difference(self) -> float:
        return self.score_a - self.score_b


def model_key(team_id: str, role_id: str, version: int) -> str:
    return f"{team_id}:{role_id}:v{version}"


def team_scores(models: Iterable[ModelInfo]) -> Dict[str, float]:
    """Total performance score per team."""
    totals: Dict[str, float] = {}
    for info in models:
        totals[info.team_id] = totals.get(info.team_id, 0.0) + info.performance_score
    return totals


def compare_teams(models: Iterable[ModelInfo], team_a: str, team_b: str) -> TeamComparison:
    totals = team_scores(models)
    return TeamComparison(team_a, team_b, totals.get(team_a, 0.0), totals.get(team_b, 0.0))


def _document(info: ModelInfo, weights: NetworkWeights) -> Dict[str, Any]:
    doc = asdict(info)
    doc['weights'] = weights.to_dict()
    return doc


def _info(doc: Dict[str, Any]) -> ModelInfo:
    return ModelInfo(
        team_id=doc['team_id'],
        role_id=doc['role_id'],
        version=int(doc['version']),
        training_sessions=int(doc.get('training_sessions', 0)),
        performance_score=float(doc.get('performance_score', 0.0)),
        last_updated=float(doc.get('last_updated', 0.0)),
    )


def _examples(raw: Iterable[Dict[str, Any]], source: str) -> List[HistoricalExample]:
    examples = []
    for item in raw:
        try:
            examples.append(HistoricalExample.from_dict(item))
        except (TypeError, ValueError, KeyError) as e:
            logger.warning(f"Skipping malformed historical example in {source}: {e}")
    return examples


class ModelStore(ABC):
    """Interface every backend implements."""

    @abstractmethod
    def save(self, team_id: str, role_id: str, weights: NetworkWeights, version: int = 1,
             training_sessions: int = 0, performance_score: float = 0.0) -> bool:
        ...

    @abstractmethod
    def load(self, team_id: str, role_id: str, version: int = 1) -> Optional[NetworkWeights]:
        ...

    @abstractmethod
    def list_models(self) -> List[ModelInfo]:
        ...

    @abstractmethod
    def save_examples(self, team_id: str, role_id: str,
                      examples: Sequence[HistoricalExample]) -> bool:
        ...

    @abstractmethod
    def load_examples(self, team_id: str, role_id: str,
                      limit: Optional[int] = None) -> List[HistoricalExample]:
        """Newest `limit` examples, oldest first."""
        ...

    def best(self, team_id: str, role_id: str) -> Optional[Tuple[ModelInfo, NetworkWeights]]:
        """Highest-scoring stored model for a team/role across every version."""
        candidates = [m for m in self.list_models()
                      if m.team_id == team_id and m.role_id == role_id]
        candidates.sort(key=lambda m: (m.performance_score, m.last_updated), reverse=True)
        for info in candidates:
            try:
                weights = self.load(team_id, role_id, info.version)
            except PersistenceError as e:
                logger.warning(f"Skipping unloadable model {info.key}: {e}")
                continue
            if weights is not None:
                return info, weights
        return None


class InMemoryModelStore(ModelStore):
    def __init__(self, history_limit: int = HISTORY_LIMIT):
        self.history_limit = history_limit
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._history: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def save(self, team_id, role_id, weights, version=1, training_sessions=0, performance_score=0.0):
        if not weights.is_finite():
            logger.warning(f"Refusing to store non-finite weights for {team_id}/{role_id}")
            return False
        info = ModelInfo(team_id, role_id, version, training_sessions, performance_score, time.time())
        with self._lock:
            # Round trip through JSON so stored state never aliases live arrays
            self._docs[info.key] = json.loads(json.dumps(_document(info, weights)))
        return True

    def load(self, team_id, role_id, version=1):
        with self._lock:
            doc = self._docs.get(model_key(team_id, role_id, version))
        if doc is None:
            return None
        try:
            return NetworkWeights.from_dict(doc['weights'])
        except (ValueError, KeyError) as e:
            raise PersistenceError(f"Corrupt model document {model_key(team_id, role_id, version)}: {e}") from e

    def list_models(self):
        with self._lock:
            return [_info(doc) for doc in self._docs.values()]

    def save_examples(self, team_id, role_id, examples):
        if not examples:
            return True
        with self._lock:
            kept = self._history.setdefault((team_id, role_id), [])
            kept.extend(json.loads(json.dumps([e.to_dict() for e in examples])))
            del kept[:-self.history_limit]
        return True

    def load_examples(self, team_id, role_id, limit=None):
        with self._lock:
            raw = list(self._history.get((team_id, role_id), []))
        if limit is not None:
            raw = raw[-limit:] if limit > 0 else []
        return _examples(raw, f"{team_id}/{role_id}")


class FileModelStore(ModelStore):
    """
    One `<team>__<role>__v<version>.json` file per model; historical examples
    in `history/<team>__<role>.json`.
    """

    def __init__(self, store_path: str = "models", history_limit: int = HISTORY_LIMIT):
        self.store_path = store_path
        self.history_limit = history_limit
        os.makedirs(store_path, exist_ok=True)
        logger.info(f"File model store at {os.path.abspath(store_path)}")

    def _path(self, team_id: str, role_id: str, version: int) -> str:
        return os.path.join(self.store_path, f"{team_id}__{role_id}__v{version}.json")

    def _history_path(self, team_id: str, role_id: str) -> str:
        return os.path.join(self.store_path, 'history', f"{team_id}__{role_id}.json")

    def _write(self, path: str, doc: Any):
        tmp = f"{path}.tmp"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(tmp, 'w') as f:
                json.dump(doc, f)
            os.replace(tmp, path)
        except OSError as e:
            raise PersistenceError(f"Could not write {path}: {e}") from e

    def save(self, team_id, role_id, weights, version=1, training_sessions=0, performance_score=0.0):
        if not weights.is_finite():
            logger.warning(f"Refusing to store non-finite weights for {team_id}/{role_id}")
            return False
        info = ModelInfo(team_id, role_id, version, training_sessions, performance_score, time.time())
        self._write(self._path(team_id, role_id, version), _document(info, weights))
        return True

    def load(self, team_id, role_id, version=1):
        path = self._path(team_id, role_id, version)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r') as f:
                doc = json.load(f)
            return NetworkWeights.from_dict(doc['weights'])
        except (OSError, TypeError, ValueError, KeyError) as e:
            raise PersistenceError(f"Could not read {path}: {e}") from e

    def list_models(self):
        models = []
        for name in sorted(os.listdir(self.store_path)):
            if not name.endswith('.json'):
                continue
            try:
                with open(os.path.join(self.store_path, name), 'r') as f:
                    models.append(_info(json.load(f)))
            except (OSError, TypeError, ValueError, KeyError) as e:
                logger.warning(f"Skipping unreadable model file {name}: {e}")
        return models

    def _read_history(self, path: str) -> List[Dict[str, Any]]:
        if not os.path.exists(path):
            return []
        try:
            with open(path, 'r') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Could not read {path}: {e}") from e
        if not isinstance(raw, list):
            raise PersistenceError(f"History file {path} is not a list")
        return raw

    def save_examples(self, team_id, role_id, examples):
        if not examples:
            return True
        path = self._history_path(team_id, role_id)
        try:
            kept = self._read_history(path)
        except PersistenceError as e:
            logger.warning(f"Replacing unreadable history for {team_id}/{role_id}: {e}")
            kept = []
        kept.extend(e.to_dict() for e in examples)
        self._write(path, kept[-self.history_limit:])
        return True

    def load_examples(self, team_id, role_id, limit=None):
        path = self._history_path(team_id, role_id)
        raw = self._read_history(path)
        if limit is not None:
            raw = raw[-limit:] if limit > 0 else []
        return _examples(raw, path)


class RedisModelStore(ModelStore):
    """
    Models as JSON strings under `<prefix>:model:<team>:<role>:v<version>`,
    with a set `<prefix>:models` indexing every stored key. Historical
    examples live in a capped list `<prefix>:history:<team>:<role>`.
    """

    def __init__(self, redis_client, key_prefix: str = "football_ai",
                 history_limit: int = HISTORY_LIMIT):
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.history_limit = history_limit

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "football_ai",
                 history_limit: int = HISTORY_LIMIT) -> 'RedisModelStore':
        import redis
        client = redis.Redis.from_url(url)
        logger.info(f"Redis model store at {url}")
        return cls(client, key_prefix, history_limit)

    def _key(self, team_id: str, role_id: str, version: int) -> str:
        return f"{self.key_prefix}:model:{model_key(team_id, role_id, version)}"

    def _history_key(self, team_id: str, role_id: str) -> str:
        return f"{self.key_prefix}:history:{team_id}:{role_id}"

    @property
    def _index(self) -> str:
        return f"{self.key_prefix}:models"

    def save(self, team_id, role_id, weights, version=1, training_sessions=0, performance_score=0.0):
        if not weights.is_finite():
            logger.warning(f"Refusing to store non-finite weights for {team_id}/{role_id}")
            return False
        info = ModelInfo(team_id, role_id, version, training_sessions, performance_score, time.time())
        key = self._key(team_id, role_id, version)
        try:
            pipe = self.redis.pipeline()
            pipe.set(key, json.dumps(_document(info, weights)))
            pipe.sadd(self._index, key)
            pipe.execute()
        except Exception as e:
            raise PersistenceError(f"Redis save failed for {key}: {e}") from e
        return True

    def load(self, team_id, role_id, version=1):
        key = self._key(team_id, role_id, version)
        try:
            data = self.redis.get(key)
        except Exception as e:
            raise PersistenceError(f"Redis load failed for {key}: {e}") from e
        if not data:
            return None
        if isinstance(data, bytes):
            data = data.decode()
        try:
            return NetworkWeights.from_dict(json.loads(data)['weights'])
        except (TypeError, ValueError, KeyError) as e:
            raise PersistenceError(f"Corrupt model document at {key}: {e}") from e

    def list_models(self):
        try:
            keys = self.redis.smembers(self._index)
        except Exception as e:
            raise PersistenceError(f"Redis list failed: {e}") from e
        models = []
        for key in sorted(k.decode() if isinstance(k, bytes) else k for k in keys):
            try:
                data = self.redis.get(key)
            except Exception as e:
                raise PersistenceError(f"Redis list failed reading {key}: {e}") from e
            if not data:
                continue
            if isinstance(data, bytes):
                data = data.decode()
            try:
                models.append(_info(json.loads(data)))
            except (TypeError, ValueError, KeyError) as e:
                logger.warning(f"Skipping corrupt model document {key}: {e}")
        return models

    def save_examples(self, team_id, role_id, examples):
        if not examples:
            return True
        key = self._history_key(team_id, role_id)
        try:
            pipe = self.redis.pipeline()
            pipe.rpush(key, *[json.dumps(e.to_dict()) for e in examples])
            pipe.ltrim(key, -self.history_limit, -1)
            pipe.execute()
        except Exception as e:
            raise PersistenceError(f"Redis history save failed for {key}: {e}") from e
        return True

    def load_examples(self, team_id, role_id, limit=None):
        if limit is not None and limit <= 0:
            return []
        key = self._history_key(team_id, role_id)
        start = -limit if limit is not None else 0
        try:
            items = self.redis.lrange(key, start, -1)
        except Exception as e:
            raise PersistenceError(f"Redis history load failed for {key}: {e}") from e
        raw = []
        for item in items:
            if isinstance(item, bytes):
                item = item.decode()
            try:
                raw.append(json.loads(item))
            except ValueError as e:
                logger.warning(f"Skipping unreadable historical example in {key}: {e}")
        return _examples(raw, key)


def build_store(config: PersistenceConfig) -> ModelStore:
    """Instantiate the backend named in the configuration."""
    if config.backend == 'memory':
        return InMemoryModelStore(config.history_limit)
    if config.backend == 'file':
        return FileModelStore(config.path, config.history_limit)
    if config.backend == 'redis':
        return RedisModelStore.from_url(config.redis_url, config.key_prefix, config.history_limit)
    raise ValueError(f"Unknown persistence backend: {config.backend}")
