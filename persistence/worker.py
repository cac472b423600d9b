"""
Persistence Worker - moves model saves off the tick loop.

Gameplay code calls submit(), which never blocks: requests go into a bounded
queue drained by one daemon thread. A full queue drops the request. Store
failures are logged and counted, never retried. Successful saves also append
the request's historical examples to the store. When an agent is forgotten
(removed from the match) its outstanding saves still run but their results
are discarded.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from neural.weights import NetworkWeights
from persistence.store import HistoricalExample, ModelStore

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass
class PersistenceRequest:
    agent_id: str
    team_id: str
    role_id: str
    weights: NetworkWeights
    version: int = 1
    training_sessions: int = 0
    performance_score: float = 0.0
    examples: List[HistoricalExample] = field(default_factory=list)


class PersistenceWorker:
    def __init__(self, store: ModelStore, queue_size: int = 256,
                 on_result: Optional[Callable[[PersistenceRequest, bool], None]] = None):
        self.store = store
        self.on_result = on_result
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, queue_size))
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._active: Set[str] = set()
        self._stopped = False
        self.stats: Dict[str, int] = {
            'submitted': 0,
            'saved': 0,
            'failed': 0,
            'dropped': 0,
            'discarded': 0,
        }

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> 'PersistenceWorker':
        if self._stopped:
            raise RuntimeError("Persistence worker has been stopped")
        if not self.running:
            self._thread = threading.Thread(target=self._run, name="persistence-worker", daemon=True)
            self._thread.start()
            logger.info("Persistence worker started")
        return self

    def register(self, agent_id: str):
        with self._lock:
            self._active.add(agent_id)

    def forget(self, agent_id: str):
        with self._lock:
            self._active.discard(agent_id)

    def submit(self, request: PersistenceRequest) -> bool:
        """Queue a save; returns False when the request was dropped."""
        if self._stopped:
            raise RuntimeError("Persistence worker has been stopped")
        try:
            self._queue.put_nowait(request)
        except queue.Full:
            self._count('dropped')
            logger.debug(f"Persistence queue full; dropped save for {request.agent_id}")
            return False
        self._count('submitted')
        return True

    def stop(self, flush: bool = True, timeout: float = 5.0):
        """
        Stop the worker thread.

        With flush=True queued requests are processed first; otherwise they
        are discarded.
        """
        if self._stopped:
            return
        self._stopped = True
        if not flush:
            while True:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    break
                self._count('discarded')
                self._queue.task_done()

        if self.running:
            self._queue.put(_STOP)
            self._thread.join(timeout)
        else:
            # Never started: honour flush synchronously
            self._drain_inline()
        logger.info(f"Persistence worker stopped: {self.stats}")

    def _drain_inline(self):
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if item is not _STOP:
                self._process(item)
            self._queue.task_done()

    def _run(self):
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._process(item)
            finally:
                self._queue.task_done()

    def _process(self, request: PersistenceRequest):
        try:
            ok = bool(self.store.save(
                request.team_id, request.role_id, request.weights, request.version,
                training_sessions=request.training_sessions,
                performance_score=request.performance_score,
            ))
            if ok and request.examples:
                self.store.save_examples(request.team_id, request.role_id, request.examples)
        except Exception as e:
            logger.warning(f"Persisting model for {request.team_id}/{request.role_id} failed: {e}")
            ok = False

        with self._lock:
            active = request.agent_id in self._active

        if not active:
            self._count('discarded')
            return
        self._count('saved' if ok else 'failed')
        if not ok:
            logger.warning(f"Model save for {request.agent_id} was not stored")
        if self.on_result is not None:
            try:
                self.on_result(request, ok)
            except Exception as e:
                logger.warning(f"Persistence result callback for {request.agent_id} failed: {e}")

    def _count(self, key: str):
        with self._lock:
            self.stats[key] += 1
