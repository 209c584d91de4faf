'''
dynpool | modules | dp_worker.py

Entry point of a pooled worker process.
The worker answers one task at a time over its pipe until it receives None
or the pipe is closed by the pool.
'''

import os
import pickle
import signal
import time
from multiprocessing.connection import Connection
from typing import Optional

from ..core.task import ExecutionResult, Task, TaskMode
from . import dp_runtime
from .dp_logger import DynPoolLogger

log = DynPoolLogger()


def run_task(task: Task) -> ExecutionResult:
    '''
    Routes a task to the protocol matching its mode.
    '''
    if task.mode is TaskMode.BUNDLE:
        result = dp_runtime.execute_bundle(task.source_code, task.target_name, task.arguments)
    elif task.mode is TaskMode.INJECTED_SYNC:
        result = dp_runtime.execute_sync(
            task.source_code, task.target_name, task.arguments, task.dependency_names
        )
    else:
        result = dp_runtime.execute(
            task.source_code, task.target_name, task.arguments, task.dependency_names
        )

    result.task_id = task.task_id
    return result


def _send_result(conn: Connection, result: ExecutionResult) -> None:
    '''
    Sends a result back to the pool, replacing values that do not pickle.
    '''
    try:
        conn.send(result)
    except (pickle.PicklingError, TypeError, AttributeError) as err:
        log.warn(f"Result of {result.function_name or 'task'} is not serializable: {err}",
                 result.task_id)
        failure = ExecutionResult.failure(
            TypeError(f"Result could not be serialized: {err}"),
            task_id=result.task_id,
            function_name=result.function_name,
            bundle_size=result.bundle_size,
            dependencies_loaded=result.dependencies_loaded,
            memory_usage=result.memory_usage,
            worker_pid=result.worker_pid,
            duration_ms=result.duration_ms,
        )
        conn.send(failure)


def worker_main(conn: Connection, worker_id: int, log_level: Optional[str] = None) -> None:
    '''
    Serves tasks received on conn until shutdown.
    '''
    # Ctrl-C is handled by the pool owner, which stops its workers.
    signal.signal(signal.SIGINT, signal.SIG_IGN)

    log.set_source(f"worker-{worker_id}")
    if log_level is not None:
        log.set_level(log_level)

    log.debug(f"Worker {worker_id} started with pid {os.getpid()}")
    served = 0

    while True:
        try:
            task = conn.recv()
        except (EOFError, OSError):
            break

        if task is None:
            break

        started = time.perf_counter()
        log.trace(f"Worker {worker_id} running {task.mode.value} {task.target_name}", task.task_id)
        result = run_task(task)
        log.trace(
            f"Worker {worker_id} finished in {(time.perf_counter() - started) * 1000:.1f}ms",
            task.task_id,
        )

        try:
            _send_result(conn, result)
        except (BrokenPipeError, OSError):
            break
        served += 1

    log.debug(f"Worker {worker_id} exiting after {served} tasks")
    conn.close()
