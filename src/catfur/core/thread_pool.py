"""
=============================================================================
WORKER POOL
=============================================================================

Each accepted connection becomes one task. A worker owns the connection for
its whole cycle, including a stream that may run for minutes. A task is only
accepted when a worker is free for it or can still be spawned, so no task
ever waits in the queue behind another connection's stream:

    submit(task) ──► active < max_workers? ──yes──► hand-off queue ──► Worker
                              │                     (spawn one first if
                              no                     every worker is busy)
                              │
                              ▼
                     returns False → caller answers 503

    shutdown()  → one None per worker ("poison pill"), then join

`active` counts tasks accepted and not yet finished. The pool keeps at
least `active` workers alive, so the queue only ever holds tasks that a
worker is about to pick up.

Workers are daemon threads, so a stuck stream never keeps the process
alive after the main thread exits.
=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: func(*args, **kwargs)."""

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """Pulls tasks until it receives None or is told to stop."""

    def __init__(
        self,
        task_queue: "queue.Queue[Optional[Task]]",
        worker_id: int,
        on_task_done: Callable[[], None],
        poll_interval: float = 1.0,
    ):
        super().__init__(name=f"catfur-worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.on_task_done = on_task_done
        self.poll_interval = poll_interval
        self.state = WorkerState.IDLE
        self._stop_event = threading.Event()
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")
        while not self._stop_event.is_set():
            try:
                task = self.task_queue.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            try:
                if task is None:
                    break
                self._execute(task)
            finally:
                self.task_queue.task_done()
        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, task: Task) -> None:
        self.state = WorkerState.BUSY
        started = time.time()
        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
            logger.debug(
                f"Worker {self.worker_id} finished task in {time.time() - started:.3f}s "
                f"(queued {started - task.submitted_at:.3f}s)"
            )
        except Exception as e:
            # A failing task must not take the worker down with it
            self.tasks_failed += 1
            logger.exception(f"Worker {self.worker_id} task failed: {e}")
        finally:
            self.state = WorkerState.IDLE
            self.on_task_done()

    def stop(self) -> None:
        self._stop_event.set()


class ThreadPool:
    """
    Bounded, growing pool of worker threads.

        pool = ThreadPool(min_workers=4, max_workers=32)
        pool.start()
        if not pool.submit(handle, args=(conn,)):
            reject(conn)
        pool.shutdown()

    submit() never blocks: at capacity it returns False at once.
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 32,
        queue_size: int = 128,
        poll_interval: float = 1.0,
    ):
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError(
                f"Invalid pool size: min={min_workers}, max={max_workers}"
            )
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size
        self.poll_interval = poll_interval

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._active = 0
        self._started = False
        self._shutting_down = False
        self._next_worker_id = 0

    def start(self) -> None:
        if self._started:
            return
        logger.info(f"Starting thread pool with {self.min_workers} workers")
        with self._lock:
            for _ in range(self.min_workers):
                self._spawn_worker()
        self._started = True
        self._shutting_down = False

    def _spawn_worker(self) -> Worker:
        # Caller holds self._lock
        worker = Worker(
            self._task_queue,
            self._next_worker_id,
            self._task_done,
            self.poll_interval,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def _task_done(self) -> None:
        with self._lock:
            self._active -= 1

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Run ``func(*args, **kwargs)`` on a worker.

        Returns:
            False if every worker is busy and the pool is at max_workers,
            or the hand-off queue is full. Never blocks.

        Raises:
            RuntimeError: the pool is not running.
        """
        if not self._started or self._shutting_down:
            raise RuntimeError("Thread pool is not running")

        task = Task(func=func, args=args, kwargs=kwargs or {})
        with self._lock:
            if self._active >= self.max_workers:
                logger.warning(
                    f"All {self.max_workers} workers busy, rejecting task"
                )
                return False
            try:
                self._task_queue.put_nowait(task)
            except queue.Full:
                logger.warning(f"Task queue full ({self.max_queue_size}), rejecting task")
                return False
            self._active += 1
            if self._active > len(self._workers):
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._spawn_worker()
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = 5.0) -> None:
        """
        Stop all workers.

        Args:
            wait: let running tasks finish first (bounded by ``timeout``).
            timeout: seconds to wait for the tasks, and per worker join.
        """
        if not self._started:
            return
        logger.info("Shutting down thread pool...")
        self._shutting_down = True

        if wait:
            deadline = time.time() + (timeout or 0)
            while self._task_queue.unfinished_tasks and time.time() < deadline:
                time.sleep(0.05)
            if self._task_queue.unfinished_tasks:
                logger.warning("Thread pool shutdown timed out, abandoning tasks")

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()
        for worker in workers:
            worker.stop()
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                pass
        for worker in workers:
            worker.join(timeout=timeout)

        self._started = False
        logger.info("Thread pool shutdown complete")

    # =========================================================================
    # STATS
    # =========================================================================

    @property
    def size(self) -> int:
        return len(self._workers)

    @property
    def active(self) -> int:
        """Tasks accepted and not yet finished."""
        return self._active

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def queued(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        return {
            "workers": {
                "total": self.size,
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "active": self.active,
                "queued": self.queued,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
