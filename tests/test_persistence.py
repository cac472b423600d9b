"""
Tests for model stores and the background persistence worker.
"""

import sys
import os
import json
import tempfile
import threading
import numpy as np

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from neural.network import FeedForwardNetwork
from persistence.config import PersistenceConfig
from persistence.store import (
    InMemoryModelStore, FileModelStore, RedisModelStore, ModelStore,
    PersistenceError, build_store, HistoricalExample, ModelInfo, compare_teams, team_scores,
)
from persistence.worker import PersistenceWorker, PersistenceRequest


def _weights(seed=0):
    return FeedForwardNetwork([6, 4, 5], seed=seed).to_weights()


def _request(agent_id='red-fwd-1', seed=0):
    return PersistenceRequest(agent_id, 'red', 'forward', _weights(seed), version=1,
                              training_sessions=3, performance_score=1.5)


def _history(n, start=0):
    return [HistoricalExample([0.1 * i] * 6, [0.5] * 5, 1.0, float(i)) for i in range(start, start + n)]


class _FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def set(self, key, value):
        self.ops.append(('set', key, value))

    def sadd(self, key, member):
        self.ops.append(('sadd', key, member))

    def rpush(self, key, *values):
        self.ops.append(('rpush', key, values))

    def ltrim(self, key, start, end):
        self.ops.append(('ltrim', key, (start, end)))

    def execute(self):
        for op, key, value in self.ops:
            if op == 'set':
                self.client.data[key] = value.encode()
            elif op == 'sadd':
                self.client.sets.setdefault(key, set()).add(_member_bytes(value))
            elif op == 'rpush':
                self.client.lists.setdefault(key, []).extend(v.encode() for v in value)
            else:
                start, end = value
                items = self.client.lists.get(key, [])
                self.client.lists[key] = items[start:] if end == -1 else items[start:end + 1]


def _member_bytes(value):
    return value.encode() if isinstance(value, str) else value


class _FakeRedis:
    """Just enough of redis.Redis for the store."""

    def __init__(self):
        self.data = {}
        self.sets = {}
        self.lists = {}

    def pipeline(self):
        return _FakePipeline(self)

    def get(self, key):
        return self.data.get(key)

    def smembers(self, key):
        return set(self.sets.get(key, set()))

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return list(items[start:] if end == -1 else items[start:end + 1])


class _FailingStore(ModelStore):
    def __init__(self, exc=True):
        self.exc = exc
        self.calls = 0

    def save(self, team_id, role_id, weights, version=1, training_sessions=0, performance_score=0.0):
        self.calls += 1
        if self.exc:
            raise PersistenceError("disk on fire")
        return False

    def load(self, team_id, role_id, version=1):
        return None

    def list_models(self):
        return []

    def save_examples(self, team_id, role_id, examples):
        return True

    def load_examples(self, team_id, role_id, limit=None):
        return []


class TestInMemoryModelStore:
    def test_round_trip(self):
        store = InMemoryModelStore()
        weights = _weights()
        assert store.save('red', 'forward', weights, 1, training_sessions=7, performance_score=2.5)
        loaded = store.load('red', 'forward', 1)
        sample = np.full(6, 0.5)
        original = FeedForwardNetwork.from_weights(weights).forward(sample)
        restored = FeedForwardNetwork.from_weights(loaded).forward(sample)
        assert np.allclose(original, restored, atol=1e-6)

        info, = store.list_models()
        assert info.key == 'red:forward:v1'
        assert info.training_sessions == 7
        assert info.performance_score == 2.5
        assert info.last_updated > 0

    def test_missing(self):
        store = InMemoryModelStore()
        assert store.load('red', 'forward', 1) is None
        store.save('red', 'forward', _weights(), 1)
        assert store.load('red', 'forward', 2) is None

    def test_rejects_non_finite(self):
        weights = _weights()
        weights.layers[0].biases[0] = np.inf
        store = InMemoryModelStore()
        assert not store.save('red', 'forward', weights)
        assert store.list_models() == []

    def test_stored_copy_is_detached(self):
        store = InMemoryModelStore()
        weights = _weights()
        store.save('red', 'forward', weights)
        weights.layers[0].weights[0, 0] = 99.0
        assert store.load('red', 'forward').layers[0].weights[0, 0] != 99.0


    def test_best_picks_highest_score(self):
        store = InMemoryModelStore()
        store.save('red', 'forward', _weights(1), 1, performance_score=0.5)
        store.save('red', 'forward', _weights(2), 2, performance_score=3.0)
        store.save('blue', 'forward', _weights(3), 1, performance_score=9.0)
        info, weights = store.best('red', 'forward')
        assert info.version == 2
        assert np.allclose(weights.layers[0].weights, _weights(2).layers[0].weights)
        assert store.best('red', 'goalkeeper') is None

    def test_tampered_document_raises_persistence_error(self):
        store = InMemoryModelStore()
        store.save('red', 'forward', _weights())
        store._docs['red:forward:v1']['weights']['activation'] = 'swish'
        with pytest.raises(PersistenceError):
            store.load('red', 'forward')

    def test_examples_capped(self):
        store = InMemoryModelStore(history_limit=3)
        assert store.save_examples('red', 'forward', _history(2))
        assert store.save_examples('red', 'forward', _history(3, start=2))
        assert [e.timestamp for e in store.load_examples('red', 'forward')] == [2.0, 3.0, 4.0]
        assert [e.timestamp for e in store.load_examples('red', 'forward', limit=2)] == [3.0, 4.0]
        assert store.load_examples('blue', 'forward') == []


class TestFileModelStore:
    def test_round_trip_and_listing(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = FileModelStore(tmpdir)
            assert store.save('blue', 'goalkeeper', _weights(), 2)
            assert os.path.exists(os.path.join(tmpdir, 'blue__goalkeeper__v2.json'))
            loaded = store.load('blue', 'goalkeeper', 2)
            assert loaded.layer_sizes == [6, 4, 5]
            assert [m.key for m in store.list_models()] == ['blue:goalkeeper:v2']

    def test_document_is_plain_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = FileModelStore(tmpdir)
            store.save('red', 'defender', _weights(), 1, training_sessions=4)
            with open(os.path.join(tmpdir, 'red__defender__v1.json')) as f:
                doc = json.load(f)
        assert doc['team_id'] == 'red'
        assert doc['training_sessions'] == 4
        assert doc['weights']['format'] == 'feedforward-weights'

    def test_corrupt_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = FileModelStore(tmpdir)
            with open(os.path.join(tmpdir, 'red__forward__v1.json'), 'w') as f:
                f.write('{not json')
            with pytest.raises(PersistenceError):
                store.load('red', 'forward', 1)
            assert store.list_models() == []


    def test_unknown_activation_raises_persistence_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = FileModelStore(tmpdir)
            store.save('red', 'forward', _weights(), 1)
            path = os.path.join(tmpdir, 'red__forward__v1.json')
            with open(path) as f:
                doc = json.load(f)
            doc['weights']['output_activation'] = 'softmax'
            with open(path, 'w') as f:
                json.dump(doc, f)
            with pytest.raises(PersistenceError):
                store.load('red', 'forward', 1)
            assert store.best('red', 'forward') is None

    def test_examples_round_trip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = FileModelStore(tmpdir, history_limit=4)
            store.save('red', 'forward', _weights(), 1)
            store.save_examples('red', 'forward', _history(3))
            store.save_examples('red', 'forward', _history(3, start=3))
            assert os.path.exists(os.path.join(tmpdir, 'history', 'red__forward.json'))
            examples = store.load_examples('red', 'forward')
            assert [m.key for m in store.list_models()] == ['red:forward:v1']
        assert [e.timestamp for e in examples] == [2.0, 3.0, 4.0, 5.0]
        assert examples[0].inputs == pytest.approx([0.2] * 6)

    def test_malformed_examples_skipped(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = FileModelStore(tmpdir)
            os.makedirs(os.path.join(tmpdir, 'history'))
            good = _history(1)[0].to_dict()
            with open(os.path.join(tmpdir, 'history', 'red__forward.json'), 'w') as f:
                json.dump([good, {'inputs': [1.0]}, {'inputs': ['x'], 'outputs': [], 'reward': 1}], f)
            examples = store.load_examples('red', 'forward')
        assert len(examples) == 1
        assert examples[0].reward == 1.0


class TestRedisModelStore:
    def test_round_trip(self):
        client = _FakeRedis()
        store = RedisModelStore(client, key_prefix='test')
        assert store.save('red', 'midfielder', _weights(), 1, performance_score=0.5)
        assert b'test:model:red:midfielder:v1' in client.sets['test:models']
        assert store.load('red', 'midfielder', 1).layer_sizes == [6, 4, 5]
        assert store.load('red', 'forward', 1) is None
        info, = store.list_models()
        assert info.role_id == 'midfielder'
        assert info.performance_score == 0.5

    def test_client_errors_wrapped(self):
        class Broken:
            def get(self, key):
                raise ConnectionError("refused")

        with pytest.raises(PersistenceError):
            RedisModelStore(Broken()).load('red', 'forward', 1)


    def test_examples_capped(self):
        client = _FakeRedis()
        store = RedisModelStore(client, key_prefix='test', history_limit=3)
        store.save_examples('red', 'forward', _history(5))
        assert len(client.lists['test:history:red:forward']) == 3
        assert [e.timestamp for e in store.load_examples('red', 'forward')] == [2.0, 3.0, 4.0]
        assert [e.timestamp for e in store.load_examples('red', 'forward', limit=1)] == [4.0]

    def test_list_models_read_errors_wrapped(self):
        class Flaky:
            def smembers(self, key):
                return {b'football_ai:model:red:forward:v1'}

            def get(self, key):
                raise ConnectionError("reset by peer")

        with pytest.raises(PersistenceError):
            RedisModelStore(Flaky()).list_models()


class TestTeamComparison:
    def test_team_totals(self):
        models = [
            ModelInfo('red', 'forward', 1, performance_score=2.0),
            ModelInfo('red', 'goalkeeper', 1, performance_score=-0.5),
            ModelInfo('blue', 'forward', 1, performance_score=1.0),
        ]
        assert team_scores(models) == {'red': 1.5, 'blue': 1.0}
        comparison = compare_teams(models, 'red', 'blue')
        assert comparison.difference == pytest.approx(0.5)
        assert compare_teams(models, 'green', 'blue').score_a == 0.0


class TestBuildStore:
    def test_backends(self):
        assert isinstance(build_store(PersistenceConfig(backend='memory')), InMemoryModelStore)
        with tempfile.TemporaryDirectory() as tmpdir:
            store = build_store(PersistenceConfig(backend='file', path=tmpdir))
            assert isinstance(store, FileModelStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_store(PersistenceConfig(backend='s3'))


class TestPersistenceWorker:
    def test_background_save(self):
        store = InMemoryModelStore()
        worker = PersistenceWorker(store, queue_size=8).start()
        worker.register('red-fwd-1')
        assert worker.running
        assert worker.submit(_request())
        worker.stop(flush=True)
        assert not worker.running
        assert worker.stats['saved'] == 1
        assert store.load('red', 'forward', 1) is not None

    def test_failures_counted_not_raised(self):
        store = _FailingStore(exc=True)
        worker = PersistenceWorker(store)
        worker.register('red-fwd-1')
        worker.submit(_request())
        worker.submit(_request())
        worker.stop(flush=True)
        assert store.calls == 2
        assert worker.stats['failed'] == 2
        assert worker.stats['saved'] == 0

    def test_false_result_is_failure(self):
        worker = PersistenceWorker(_FailingStore(exc=False))
        worker.register('red-fwd-1')
        worker.submit(_request())
        worker.stop(flush=True)
        assert worker.stats['failed'] == 1

    def test_full_queue_drops(self):
        worker = PersistenceWorker(InMemoryModelStore(), queue_size=1)
        assert worker.submit(_request())
        assert not worker.submit(_request())
        assert worker.stats['dropped'] == 1
        assert worker.stats['submitted'] == 1

    def test_removed_agent_results_discarded(self):
        results = []
        store = InMemoryModelStore()
        worker = PersistenceWorker(store, on_result=lambda req, ok: results.append((req.agent_id, ok)))
        worker.register('red-fwd-1')
        worker.register('blue-fwd-1')
        worker.submit(_request('red-fwd-1'))
        worker.submit(_request('blue-fwd-1'))
        worker.forget('red-fwd-1')
        worker.stop(flush=True)
        assert results == [('blue-fwd-1', True)]
        assert worker.stats['discarded'] == 1
        assert worker.stats['saved'] == 1

    def test_stop_without_flush_discards(self):
        store = InMemoryModelStore()
        worker = PersistenceWorker(store)
        worker.register('red-fwd-1')
        worker.submit(_request())
        worker.stop(flush=False)
        assert store.list_models() == []
        assert worker.stats['discarded'] == 1

    def test_submit_after_stop(self):
        worker = PersistenceWorker(InMemoryModelStore())
        worker.stop()
        with pytest.raises(RuntimeError):
            worker.submit(_request())
        with pytest.raises(RuntimeError):
            worker.start()

    def test_submit_never_blocks_on_slow_store(self):
        release = threading.Event()

        class SlowStore(InMemoryModelStore):
            def save(self, *args, **kwargs):
                release.wait(5.0)
                return super().save(*args, **kwargs)

        worker = PersistenceWorker(SlowStore(), queue_size=2).start()
        worker.register('red-fwd-1')
        accepted = [worker.submit(_request()) for _ in range(10)]
        assert not all(accepted)
        assert worker.stats['dropped'] >= 7
        release.set()
        worker.stop(flush=True)
    def test_examples_saved_with_model(self):
        store = InMemoryModelStore()
        worker = PersistenceWorker(store)
        worker.register('red-fwd-1')
        request = _request()
        request.examples = _history(2)
        worker.submit(request)
        worker.stop(flush=True)
        assert len(store.load_examples('red', 'forward')) == 2

    def test_failing_callback_keeps_worker_alive(self):
        def explode(request, ok):
            raise RuntimeError("listener bug")

        store = InMemoryModelStore()
        worker = PersistenceWorker(store, on_result=explode).start()
        worker.register('red-fwd-1')
        worker.submit(_request())
        worker.submit(PersistenceRequest('red-fwd-1', 'red', 'defender', _weights(1)))
        worker.stop(flush=True)
        assert worker.stats['saved'] == 2
        assert len(store.list_models()) == 2

