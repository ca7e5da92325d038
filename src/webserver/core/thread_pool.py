"""
=============================================================================
BOUNDED WORKER POOL
=============================================================================

By default the server starts one thread per accepted connection. That is
the simplest model that keeps slow clients from blocking each other, but
nothing stops 10,000 clients from creating 10,000 threads.

Setting ``max_workers`` in ServerConfig swaps in this pool instead:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          ThreadPool                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   accept loop ──submit()──►  [conn] [conn] [conn]   (bounded queue) │
    │                                 │                                   │
    │                   ┌─────────────┼─────────────┐                     │
    │                   ▼             ▼             ▼                     │
    │               pool-worker-0 pool-worker-1 pool-worker-N             │
    │               handle(conn)  handle(conn)  handle(conn)              │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

When every worker is busy and the queue is full, submit() BLOCKS. The
accept loop stops pulling connections off the listen backlog until a
worker frees up, so excess clients wait in the kernel queue instead of
being turned away.

Shutdown queues one ``None`` per worker; a worker that dequeues it exits.

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    WAITING = "waiting"
    SERVING = "serving"
    EXITED = "exited"


@dataclass
class Job:
    """``func(*args)``, queued until a worker is free."""
    func: Callable[..., Any]
    args: tuple = ()
    queued_at: float = field(default_factory=time.monotonic)


class PoolWorker(threading.Thread):
    """Runs jobs from the shared queue until it dequeues ``None``."""

    def __init__(self, jobs: "queue.Queue[Optional[Job]]", index: int):
        super().__init__(name=f"pool-worker-{index}", daemon=True)
        self.jobs = jobs
        self.index = index
        self.state = WorkerState.WAITING
        self.handled = 0
        self.failed = 0

    def run(self):
        while True:
            job = self.jobs.get()
            try:
                if job is None:
                    break
                self._run_job(job)
            finally:
                self.jobs.task_done()

        self.state = WorkerState.EXITED
        logger.debug(f"{self.name} exited after {self.handled} jobs")

    def _run_job(self, job: Job) -> None:
        self.state = WorkerState.SERVING
        waited = time.monotonic() - job.queued_at

        try:
            job.func(*job.args)
        except Exception as e:
            self.failed += 1
            logger.exception(f"{self.name}: job failed: {e}")
        else:
            self.handled += 1
            logger.debug(f"{self.name}: job done (waited {waited:.3f}s in queue)")
        finally:
            self.state = WorkerState.WAITING


class ThreadPool:
    """
    Fixed number of worker threads fed by a bounded queue.

    Usage:
        pool = ThreadPool(max_workers=8)
        pool.start()
        pool.submit(handler.handle, conn)   # blocks while the queue is full
        pool.shutdown()
    """

    def __init__(self, max_workers: int = 8, queue_size: Optional[int] = None):
        """
        Args:
            max_workers: Number of worker threads.
            queue_size: Connections allowed to wait for a worker.
                        Defaults to ``max_workers``.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        self.max_workers = max_workers
        self.queue_size = max_workers if queue_size is None else queue_size

        self._jobs: "queue.Queue[Optional[Job]]" = queue.Queue(maxsize=self.queue_size)
        self._workers: list = []
        self._lock = threading.Lock()
        self._started = False
        self._closing = False

    def start(self) -> None:
        """Spawn the workers. Idempotent."""
        with self._lock:
            if self._started:
                return
            self._workers = [PoolWorker(self._jobs, i) for i in range(self.max_workers)]
            for worker in self._workers:
                worker.start()
            self._started = True

        logger.info(f"Worker pool started: {self.max_workers} workers, queue {self.queue_size}")

    def submit(self, func: Callable[..., Any], *args: Any) -> None:
        """
        Queue ``func(*args)``. Blocks while the queue is full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Worker pool not started")
        if self._closing:
            raise RuntimeError("Worker pool is shutting down")

        self._jobs.put(Job(func, args))

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop every worker.

        Args:
            wait: Run jobs already queued before stopping. When False they
                  are discarded and their connections closed.
            timeout: Seconds to wait for each worker to exit.
        """
        with self._lock:
            if not self._started or self._closing:
                return
            self._closing = True

        if not wait:
            dropped = 0
            while True:
                try:
                    job = self._jobs.get_nowait()
                except queue.Empty:
                    break
                self._jobs.task_done()
                _close_connections(job)
                dropped += 1
            if dropped:
                logger.warning(f"Dropped {dropped} queued connections")

        for _ in self._workers:
            self._jobs.put(None)
        for worker in self._workers:
            worker.join(timeout=timeout)

        logger.info("Worker pool stopped")

    # ─────────────────────────────────────────────────────────────────────
    # MONITORING
    # ─────────────────────────────────────────────────────────────────────

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state is WorkerState.SERVING)

    @property
    def pending(self) -> int:
        """Jobs waiting for a worker."""
        return self._jobs.qsize()

    @property
    def stats(self) -> dict:
        return {
            "workers": len(self._workers),
            "busy": self.busy_workers,
            "pending": self.pending,
            "handled": sum(w.handled for w in self._workers),
            "failed": sum(w.failed for w in self._workers),
        }


def _close_connections(job: Optional[Job]) -> None:
    """Close the connection arguments of a job that will never run."""
    if job is None:
        return
    for arg in job.args:
        close = getattr(arg, "close", None)
        if callable(close):
            close()
