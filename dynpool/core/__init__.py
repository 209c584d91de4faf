"""
Pool Core Components.

Task and result types, the process pool and the logging adapter.
task is imported before pool: the worker module reached from pool imports
the task types back from this package.
"""

from .task import ExecutionResult, Task, TaskMode
from .pool import (
    PoolManager,
    WorkerPool,
    WorkerProcess,
    WorkerState,
    get_pool_manager,
    shutdown,
    stats,
    submit,
)
from .log_adapter import CoreLogger

__all__ = [
    "ExecutionResult",
    "Task",
    "TaskMode",
    "PoolManager",
    "WorkerPool",
    "WorkerProcess",
    "WorkerState",
    "get_pool_manager",
    "shutdown",
    "stats",
    "submit",
    "CoreLogger",
]
