"""
=============================================================================
THREAD POOL IMPLEMENTATION
=============================================================================

Worker threads that take tasks from a bounded queue. The server submits
one task per accepted connection, so the number of workers bounds the
number of connections served at once.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept loop ──submit()──►  ┌──────────────────────┐                │
    │                              │ Task Queue (bounded) │                │
    │                              └─────────┬────────────┘                │
    │                    ┌───────────────────┼───────────────────┐         │
    │                    ▼                   ▼                   ▼         │
    │               ┌─────────┐         ┌─────────┐         ┌─────────┐    │
    │               │Worker-0 │         │Worker-1 │   ...   │Worker-N │    │
    │               └─────────┘         └─────────┘         └─────────┘    │
    │                                                                      │
    │   min_workers start with the pool; more are added, up to             │
    │   max_workers, while unfinished tasks outnumber workers.             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WORKER LIFECYCLE
=============================================================================

    while not shutdown:
        task = queue.get()      ← blocks until a task is available
        if task is None:        ← "poison pill"
            break
        execute(task)

Workers are daemon threads. A worker stuck in a handler that never
returns does not keep the process alive after the main thread exits.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"        # Waiting for task
    BUSY = "busy"        # Executing task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """
    A deferred function call.

    Attributes:
        func: The function to execute.
        args: Positional arguments for the function.
        kwargs: Keyword arguments for the function.
        submitted_at: monotonic time of submission, for queue-wait logging.
    """

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.monotonic)


class Worker(threading.Thread):
    """Worker thread that processes tasks from the queue."""

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        poll_interval: float = 1.0,
        on_task_done: Optional[Callable[[], None]] = None
    ):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.poll_interval = poll_interval
        self.on_task_done = on_task_done

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        """
        Run one task.

        An exception from the task is logged and counted; it never kills
        the worker.
        """
        self.state = WorkerState.BUSY
        start_time = time.monotonic()

        waited = start_time - task.submitted_at
        if waited > 1.0:
            logger.debug(f"Worker {self.worker_id} picked up task after {waited:.2f}s in queue")

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception as e:
            elapsed = time.monotonic() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE
            if self.on_task_done is not None:
                self.on_task_done()

    def shutdown(self):
        """Signal the worker to stop after its current task."""
        self._shutdown.set()


class ThreadPool:
    """
    Thread pool for concurrent task execution.

        pool = ThreadPool(min_workers=4, max_workers=64, queue_size=256)
        pool.start()
        if not pool.submit(handle, args=(conn,), block=False):
            ...  # queue full → 503
        pool.shutdown(wait=False)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 64,
        queue_size: int = 256,
        poll_interval: float = 1.0
    ):
        """
        Args:
            min_workers: Workers created by start().
            max_workers: Upper bound on workers.
            queue_size: Maximum number of queued tasks; submit() fails or
                        blocks beyond it.
            poll_interval: How often idle workers re-check for shutdown.
        """
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.poll_interval = poll_interval

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers and _outstanding
        self._outstanding = 0           # Submitted and not yet finished

        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        """Start the minimum number of workers. Idempotent."""
        if self._started:
            return

        logger.debug(f"Starting thread pool with {self.min_workers} workers")

        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()

        self._started = True

    def _add_worker(self) -> Worker:
        """Start one more worker. Caller holds self._lock."""
        if len(self._workers) >= self.max_workers:
            raise RuntimeError("Maximum workers reached")

        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            poll_interval=self.poll_interval,
            on_task_done=self._task_finished,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()

        return worker

    def _task_finished(self):
        with self._lock:
            self._outstanding -= 1

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = True,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Submit a task for execution.

        Returns:
            True if queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        # Counted before the put so a fast worker never drives it negative
        with self._lock:
            self._outstanding += 1

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            with self._lock:
                self._outstanding -= 1
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """
        Add a worker when unfinished tasks outnumber workers.

        Tasks here are whole connections that can hold a worker for a long
        time, so every task gets its own worker until max_workers is
        reached; past that, tasks wait in the queue.
        """
        with self._lock:
            if self._shutdown:
                return
            if self._outstanding > len(self._workers) and len(self._workers) < self.max_workers:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Every worker gets a poison pill behind the tasks already queued
        and its stop flag set.

        Args:
            wait: Join the workers. With wait=False the call returns at
                  once; workers still inside a task finish it (or stay
                  blocked) in the background as daemon threads.
            timeout: Overall limit on joining when wait is True.
        """
        if not self._started or self._shutdown:
            return

        logger.debug("Shutting down thread pool")
        self._shutdown = True

        with self._lock:
            workers = list(self._workers)

        for _ in workers:
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass  # stop flag still ends idle workers

        for worker in workers:
            worker.shutdown()

        if wait:
            deadline = None if timeout is None else time.monotonic() + timeout
            for worker in workers:
                remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
                worker.join(timeout=remaining)

        logger.debug("Thread pool shutdown complete")

    @property
    def worker_count(self) -> int:
        with self._lock:
            return len(self._workers)

    @property
    def busy_workers(self) -> int:
        with self._lock:
            return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    def stats(self) -> dict:
        """Snapshot for debug logging and tests."""
        with self._lock:
            workers = list(self._workers)

        return {
            "workers": len(workers),
            "busy": sum(1 for w in workers if w.state == WorkerState.BUSY),
            "queued": self._task_queue.qsize(),
            "completed": sum(w.tasks_completed for w in workers),
            "failed": sum(w.tasks_failed for w in workers),
        }
