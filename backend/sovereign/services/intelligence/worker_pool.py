"""
Per-subject worker pool.

Implements:
- One FIFO job queue per subject key
- A shared ready queue of keys that have pending work
- A bounded pool of workers draining it

A key sits in the ready queue at most once and is only re-queued after its
current job finishes, so jobs for one key never overlap while jobs for
different keys run concurrently.
"""
import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Tuple

from ...config import LOOP_MAX_WORKERS

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class SubjectWorkerPool:
    """Serializes jobs per key on top of a bounded worker pool."""

    def __init__(self, max_workers: int = LOOP_MAX_WORKERS):
        self.max_workers = max(1, max_workers)
        self.workers: List[asyncio.Task] = []
        self.running = False
        self._pending: Dict[str, Deque[Tuple[Job, asyncio.Future]]] = {}
        self._scheduled: Set[str] = set()
        self._ready: Optional[asyncio.Queue] = None

    async def start(self):
        """Start worker pool."""
        if self.running:
            return
        self.running = True
        self._ready = asyncio.Queue()
        self.workers = [
            asyncio.create_task(self._worker(i))
            for i in range(self.max_workers)
        ]
        logger.info(f"Started {self.max_workers} subject workers")

    async def stop(self):
        """Drain queued jobs, then stop the workers."""
        if not self.running:
            return
        await self._ready.join()
        self.running = False
        for worker in self.workers:
            worker.cancel()
        await asyncio.gather(*self.workers, return_exceptions=True)
        self.workers = []
        logger.info("Stopped subject workers")

    def submit(self, key: str, job: Job) -> asyncio.Future:
        """
        Queue a job behind any pending work for the same key.

        Must be called from a running event loop. Returns a future that
        resolves with the job's result or carries its exception.
        """
        if not self.running:
            raise RuntimeError("SubjectWorkerPool is not running; call start() first")

        future = asyncio.get_running_loop().create_future()
        self._pending.setdefault(key, deque()).append((job, future))
        if key not in self._scheduled:
            self._scheduled.add(key)
            self._ready.put_nowait(key)
        return future

    def pending_count(self, key: str) -> int:
        return len(self._pending.get(key, ()))

    async def join(self):
        """Wait until every submitted job has finished."""
        await self._ready.join()

    async def _worker(self, worker_id: int):
        logger.debug(f"Worker {worker_id} started")

        while True:
            try:
                key = await self._ready.get()
            except asyncio.CancelledError:
                break

            try:
                job, future = self._pending[key].popleft()
                if not future.cancelled():
                    try:
                        result = await job()
                    except asyncio.CancelledError:
                        future.cancel()
                        raise
                    except Exception as e:
                        logger.error(f"Job for subject {key} failed on worker {worker_id}: {e}")
                        if not future.cancelled():
                            future.set_exception(e)
                    else:
                        if not future.cancelled():
                            future.set_result(result)
            finally:
                if self._pending.get(key):
                    self._ready.put_nowait(key)
                else:
                    self._pending.pop(key, None)
                    self._scheduled.discard(key)
                self._ready.task_done()
