"""
Process Pool with FIFO Dispatch.

Owns a bounded set of worker processes and routes tasks to them.

Architecture:
- One OS process per slot, spawned from dynpool.modules.dp_worker
- Each worker owns one duplex pipe and runs one task at a time
- Pipe round trips block, so they run on a thread pool sized max_workers
- Tasks arriving while every worker is busy wait in a FIFO queue, never dropped
- All pool bookkeeping happens on the event loop thread

Worker states:
    IDLE -> BUSY -> IDLE          on task completion
    IDLE | BUSY -> TERMINATED     on shutdown, idle reaping or a crash
"""

import asyncio
import multiprocessing
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Deque, Dict, List, Optional

from ..config import PoolConfig, load_config
from ..error import PoolClosedError, WorkerCrashedError
from ..modules import dp_worker
from .log_adapter import CoreLogger
from .task import ExecutionResult, Task


log = CoreLogger(__name__)


class WorkerState(str, Enum):
    """Lifecycle state of a pooled worker process."""

    IDLE = "idle"
    BUSY = "busy"
    TERMINATED = "terminated"


class WorkerProcess:
    """
    One pooled OS process and the pipe used to talk to it.

    Args:
        worker_id: Sequence number inside the pool, used in logs.
        context: multiprocessing context the process is started from.
        log_level: Log level the worker process should use.
    """

    def __init__(self, worker_id: int, context, log_level: Optional[str] = None):
        self.worker_id = worker_id
        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.idle_since = time.monotonic()

        parent_conn, child_conn = context.Pipe(duplex=True)
        self.process = context.Process(
            target=dp_worker.worker_main,
            args=(child_conn, worker_id, log_level),
            name=f"dynpool-worker-{worker_id}",
            daemon=True,
        )
        self.process.start()
        child_conn.close()
        self._conn = parent_conn

    @property
    def pid(self) -> Optional[int]:
        """OS process id."""
        return self.process.pid

    def is_alive(self) -> bool:
        """True while the OS process is running."""
        return self.process.is_alive()

    def roundtrip(self, task: Task) -> ExecutionResult:
        """
        Sends a task and blocks until its result comes back.

        Raises:
            EOFError, OSError: The process exited before answering.
        """
        self._conn.send(task)
        return self._conn.recv()

    def stop(self, timeout: float) -> None:
        """
        Asks the process to exit, terminating it when it does not within timeout.
        Blocks, so callers on the event loop run it in an executor.
        """
        self.state = WorkerState.TERMINATED

        try:
            self._conn.send(None)
        except (OSError, ValueError):
            pass

        self.process.join(timeout)
        if self.process.is_alive():
            log.warning(f"Worker {self.worker_id} did not exit in {timeout}s, terminating")
            self.process.terminate()
            self.process.join(timeout)

        self._conn.close()

    def kill(self) -> None:
        """Terminates the process immediately."""
        self.state = WorkerState.TERMINATED
        if self.process.is_alive():
            self.process.terminate()
        self.process.join(1)
        self._conn.close()

    def __repr__(self) -> str:
        return f"<WorkerProcess {self.worker_id} pid={self.pid} {self.state.value}>"


class WorkerPool:
    """
    Bounded pool of worker processes with a FIFO queue of waiting tasks.

    The pool starts min_workers processes up front, grows on demand up to
    max_workers and, when idle_timeout is set, shrinks back to min_workers.
    """

    def __init__(self, config: PoolConfig):
        self.config = config.validate()
        self._context = multiprocessing.get_context(config.start_method)
        self._workers: List[WorkerProcess] = []
        self._idle: Deque[WorkerProcess] = deque()
        self._waiters: Deque[asyncio.Future] = deque()
        self._io = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="dynpool-io"
        )
        self._next_worker_id = 0
        self._closed = False

    # ------------------------------- Workers -------------------------------- #
    def _spawn(self) -> WorkerProcess:
        self._next_worker_id += 1
        worker = WorkerProcess(self._next_worker_id, self._context, log.level)
        self._workers.append(worker)
        log.debug(f"Started worker {worker.worker_id} (pid {worker.pid})")
        return worker

    def start(self) -> None:
        """Starts the min_workers processes."""
        for _ in range(self.config.min_workers):
            self._idle.append(self._spawn())
        log.info(
            f"Worker pool started with {self.config.min_workers} workers "
            f"(max {self.config.max_workers})"
        )

    def _discard(self, worker: WorkerProcess) -> None:
        if worker in self._workers:
            self._workers.remove(worker)
        if worker in self._idle:
            self._idle.remove(worker)
        worker.state = WorkerState.TERMINATED
        if not self._closed:
            # kill() joins the process, keep it off the event loop.
            self._io.submit(worker.kill)

    def _reap_idle(self) -> None:
        """Stops workers above min_workers that stayed idle longer than idle_timeout."""
        timeout = self.config.idle_timeout
        if timeout is None:
            return

        now = time.monotonic()
        for worker in list(self._idle):
            if len(self._workers) <= self.config.min_workers:
                break
            if now - worker.idle_since >= timeout:
                self._idle.remove(worker)
                self._workers.remove(worker)
                log.debug(f"Stopping idle worker {worker.worker_id}")
                self._io.submit(worker.stop, self.config.shutdown_timeout)

    # ------------------------------ Dispatching ----------------------------- #
    async def _acquire(self) -> WorkerProcess:
        if self._closed:
            raise PoolClosedError("Worker pool is shut down")

        while self._idle:
            worker = self._idle.popleft()
            if not worker.is_alive():
                log.warning(f"Idle worker {worker.worker_id} exited, discarding it")
                self._discard(worker)
                continue
            worker.state = WorkerState.BUSY
            return worker

        if len(self._workers) < self.config.max_workers:
            worker = self._spawn()
            worker.state = WorkerState.BUSY
            return worker

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        log.debug(f"All {len(self._workers)} workers busy, task queued")

        try:
            return await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                self._release(waiter.result())
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self, worker: WorkerProcess) -> None:
        if self._closed or worker.state is WorkerState.TERMINATED:
            return

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(worker)
                return

        worker.state = WorkerState.IDLE
        worker.idle_since = time.monotonic()
        self._idle.append(worker)
        self._reap_idle()

    def _settle(self, worker: WorkerProcess, roundtrip: asyncio.Future) -> None:
        """Returns a worker whose caller stopped waiting for its answer."""
        if roundtrip.cancelled() or roundtrip.exception() is not None:
            self._replace(worker)
            return
        worker.tasks_completed += 1
        self._release(worker)

    def _replace(self, worker: WorkerProcess) -> None:
        """Drops a dead worker and backfills queued tasks or min_workers."""
        self._discard(worker)
        if self._closed:
            return

        while self._waiters and len(self._workers) < self.config.max_workers:
            waiter = self._waiters.popleft()
            if not waiter.done():
                replacement = self._spawn()
                replacement.state = WorkerState.BUSY
                waiter.set_result(replacement)

        while len(self._workers) < self.config.min_workers:
            self._idle.append(self._spawn())

    async def run(self, task: Task) -> ExecutionResult:
        """
        Runs a task on the next available worker.

        Raises:
            PoolClosedError: The pool was shut down before the task got a worker.
        """
        worker = await self._acquire()
        loop = asyncio.get_running_loop()
        roundtrip = loop.run_in_executor(self._io, worker.roundtrip, task)

        try:
            result = await asyncio.shield(roundtrip)
        except asyncio.CancelledError:
            # The worker stays busy until its answer is read.
            roundtrip.add_done_callback(lambda future: self._settle(worker, future))
            raise
        except (EOFError, OSError) as err:
            exit_code = worker.process.exitcode
            log.error(f"Worker {worker.worker_id} died while running {task.target_name} "
                      f"(exit code {exit_code})")
            self._replace(worker)
            return ExecutionResult.failure(
                WorkerCrashedError(
                    f"Worker process {worker.pid} exited unexpectedly "
                    f"(exit code {exit_code}): {str(err) or type(err).__name__}"
                ),
                task_id=task.task_id,
                worker_pid=worker.pid,
                function_name=task.target_name,
            )
        except Exception as err:  # pylint: disable=broad-except
            # Pickling the task or unpickling the result failed, the pipe itself is intact.
            log.error(f"Round trip of {task.target_name} to worker {worker.worker_id} "
                      f"failed: {err}")
            if worker.is_alive():
                self._release(worker)
            else:
                self._replace(worker)
            return ExecutionResult.failure(
                err,
                task_id=task.task_id,
                worker_pid=worker.pid,
                function_name=task.target_name,
            )

        worker.tasks_completed += 1
        self._release(worker)
        return result

    # ------------------------------- Lifecycle ------------------------------ #
    def stats(self) -> Dict[str, int]:
        """Point-in-time counts, never blocks."""
        total = len(self._workers)
        idle = len(self._idle)
        return {
            "total_workers": total,
            "busy_workers": total - idle,
            "idle_workers": idle,
            "pending_tasks": sum(1 for waiter in self._waiters if not waiter.done()),
        }

    @property
    def closed(self) -> bool:
        """True once close() started."""
        return self._closed

    async def close(self) -> None:
        """
        Stops every worker, busy or idle, and fails queued tasks.
        """
        if self._closed:
            return
        self._closed = True

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(PoolClosedError("Worker pool shut down before the task ran"))

        workers = list(self._workers)
        self._workers.clear()
        self._idle.clear()

        loop = asyncio.get_running_loop()
        timeout = self.config.shutdown_timeout
        await asyncio.gather(*(
            loop.run_in_executor(None, worker.stop, timeout) for worker in workers
        ))
        self._io.shutdown(wait=False)
        log.info(f"Worker pool shut down, {len(workers)} workers stopped")


class PoolManager:
    """
    Lazily constructed, re-creatable worker pool.

    The pool is built on the first submit(), under a lock so concurrent first
    callers share one pool. After shutdown() the next submit() builds a new one.

    Usage:
        async with PoolManager(PoolConfig(max_workers=2)) as manager:
            result = await manager.submit(Task.injected(source, "add", [1, 2]))
    """

    def __init__(self, config: Optional[PoolConfig] = None):
        self.config = config or load_config()
        self._pool: Optional[WorkerPool] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def _construction_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def _get_pool(self) -> WorkerPool:
        pool = self._pool
        if pool is not None and not pool.closed:
            return pool

        async with self._construction_lock():
            if self._pool is None or self._pool.closed:
                pool = WorkerPool(self.config)
                pool.start()
                self._pool = pool
            return self._pool

    @property
    def started(self) -> bool:
        """True while a pool exists."""
        return self._pool is not None

    async def submit(self, task: Task) -> ExecutionResult:
        """
        Runs a task and returns its result.

        Failures inside the task come back as ExecutionResult(success=False).

        Raises:
            ConfigurationError: The pool configuration is invalid.
            PoolClosedError: The pool was shut down while the task was queued.
        """
        pool = await self._get_pool()

        with log.task_context(task.task_id):
            log.debug(f"Submitting {task.mode.value} {task.target_name}")
            result = await pool.run(task)
            if result.success:
                log.debug(f"{task.target_name} completed in {result.duration_ms}ms")
            else:
                log.debug(f"{task.target_name} failed: {result.error}")

        return result

    def stats(self) -> Dict[str, int]:
        """Point-in-time pool counts, all zero before the pool exists."""
        if self._pool is None:
            return {"total_workers": 0, "busy_workers": 0, "idle_workers": 0, "pending_tasks": 0}
        return self._pool.stats()

    async def shutdown(self) -> None:
        """Stops all workers and releases the pool."""
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()

    async def __aenter__(self) -> "PoolManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()


# ---------------------------------------------------------------------------- #
#                                Default Manager                               #
# ---------------------------------------------------------------------------- #
_default_manager: Optional[PoolManager] = None
_default_manager_lock = threading.Lock()


def get_pool_manager() -> PoolManager:
    """Returns the process-wide PoolManager, creating it on first use."""
    global _default_manager  # pylint: disable=global-statement
    with _default_manager_lock:
        if _default_manager is None:
            _default_manager = PoolManager()
        return _default_manager


async def submit(task: Task) -> ExecutionResult:
    """Submits a task to the process-wide pool."""
    return await get_pool_manager().submit(task)


def stats() -> Dict[str, int]:
    """Statistics of the process-wide pool."""
    return get_pool_manager().stats()


async def shutdown() -> None:
    """Shuts the process-wide pool down, the next submit re-creates it."""
    await get_pool_manager().shutdown()
