"""
Task and result types exchanged between the pool manager and its workers.

Both types are plain dataclasses so they pickle across the worker pipe
without any custom reduction.
"""

import traceback
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple


class TaskMode(str, Enum):
    """Invocation protocol a task is routed to inside the worker."""

    INJECTED = "execute"
    INJECTED_SYNC = "execute_sync"
    BUNDLE = "execute_bundle"


def _new_task_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Task:
    """
    One request to run a named target.

    Args:
        mode: Protocol used inside the worker.
        source_code: Function source (injected modes) or bundle unit code (bundle mode).
        target_name: Name of the function to invoke.
        arguments: Positional arguments for the target.
        dependency_names: Modules bound ahead of the arguments (injected modes only).
        task_id: Identifier used to correlate log lines and results.
    """

    mode: TaskMode
    source_code: str
    target_name: str
    arguments: Tuple[Any, ...] = ()
    dependency_names: Tuple[str, ...] = ()
    task_id: str = field(default_factory=_new_task_id)

    def __post_init__(self):
        object.__setattr__(self, "mode", TaskMode(self.mode))
        object.__setattr__(self, "arguments", tuple(self.arguments or ()))
        object.__setattr__(self, "dependency_names", tuple(self.dependency_names or ()))

    @classmethod
    def injected(
        cls,
        function_source: str,
        function_name: str,
        args: Sequence[Any] = (),
        dependencies: Sequence[str] = (),
        is_async: bool = True,
    ) -> "Task":
        """Build a task for one of the injected-function protocols."""
        mode = TaskMode.INJECTED if is_async else TaskMode.INJECTED_SYNC
        return cls(mode, function_source, function_name, tuple(args), tuple(dependencies))

    @classmethod
    def bundle(cls, bundle_code: str, function_name: str, args: Sequence[Any] = ()) -> "Task":
        """Build a task for the bundle protocol."""
        return cls(TaskMode.BUNDLE, bundle_code, function_name, tuple(args))


def utc_timestamp() -> str:
    """ISO-8601 timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ExecutionResult:
    """
    Outcome of one task.

    value is only meaningful when success is True; error, error_type and stack
    only when it is False. dependencies_loaded is set by the injected protocols,
    bundle_size and function_name by the bundle protocol.
    """

    success: bool
    value: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    stack: Optional[str] = None
    timestamp: str = field(default_factory=utc_timestamp)
    memory_usage: Dict[str, int] = field(default_factory=dict)
    dependencies_loaded: Optional[List[str]] = None
    bundle_size: Optional[int] = None
    function_name: Optional[str] = None
    task_id: Optional[str] = None
    worker_pid: Optional[int] = None
    duration_ms: Optional[float] = None

    @classmethod
    def failure(cls, error: BaseException, **metadata) -> "ExecutionResult":
        """Wrap an exception, keeping its message and formatted trace."""
        return cls(
            success=False,
            error=str(error) or type(error).__name__,
            error_type=type(error).__name__,
            stack="".join(traceback.format_exception(type(error), error, error.__traceback__)),
            **metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Mapping with the fields that apply to this outcome."""
        result = {}
        for result_field in fields(self):
            value = getattr(self, result_field.name)
            if value is not None:
                result[result_field.name] = value
        result["success"] = self.success
        if self.success:
            result["value"] = self.value
        return result
