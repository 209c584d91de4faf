"""
Logging Adapter for Core Components.

Gives the pool manager a Python-logging-like interface on top of
DynPoolLogger, so every line keeps the "LEVEL  | task_id | message" format
that the worker processes print as well.
"""

from typing import Optional
from contextvars import ContextVar
from ..modules.dp_logger import DynPoolLogger


# Context variable for tracking the task being dispatched
current_task_id: ContextVar[Optional[str]] = ContextVar("current_task_id", default=None)


class CoreLogger:
    """
    Logging adapter that provides a Python logging interface while using DynPoolLogger.

    Usage:
        log = CoreLogger(__name__)
        log.info("Pool started")

        with log.task_context("task-123"):
            log.debug("Dispatching")  # Output: DEBUG  | task-123 | Dispatching

        log.info("Finished.", task_id="task-123")
    """

    def __init__(self, name: str):
        self.name = name
        self._logger = DynPoolLogger()

    @property
    def level(self) -> str:
        """Current DynPoolLogger level name."""
        return self._logger.level

    def _get_task_id(self, task_id: Optional[str] = None) -> Optional[str]:
        if task_id is not None:
            return task_id
        return current_task_id.get()

    def debug(self, message: str, task_id: Optional[str] = None):
        """Log debug message."""
        self._logger.debug(message, self._get_task_id(task_id))

    def info(self, message: str, task_id: Optional[str] = None):
        """Log info message."""
        self._logger.info(message, self._get_task_id(task_id))

    def warning(self, message: str, task_id: Optional[str] = None):
        """Log warning message."""
        self._logger.warn(message, self._get_task_id(task_id))

    def warn(self, message: str, task_id: Optional[str] = None):
        """Log warning message (alias)."""
        self._logger.warn(message, self._get_task_id(task_id))

    def error(self, message: str, task_id: Optional[str] = None):
        """Log error message."""
        self._logger.error(message, self._get_task_id(task_id))

    def trace(self, message: str, task_id: Optional[str] = None):
        """Log trace message."""
        self._logger.trace(message, self._get_task_id(task_id))

    class TaskContext:
        """Context manager for associating logs with a task ID."""

        def __init__(self, task_id: str):
            self.task_id = task_id
            self.token = None

        def __enter__(self):
            self.token = current_task_id.set(self.task_id)
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            current_task_id.reset(self.token)

    def task_context(self, task_id: str) -> "CoreLogger.TaskContext":
        """
        Create context manager for task-specific logging.

        Example:
            with log.task_context("task-123"):
                log.info("Queued.")  # Output: INFO   | task-123 | Queued.
        """
        return self.TaskContext(task_id)
