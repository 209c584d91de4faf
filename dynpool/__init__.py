""" Allows dynpool to be imported as a module. """

from .core import (
    ExecutionResult,
    PoolManager,
    Task,
    TaskMode,
    get_pool_manager,
    shutdown,
    stats,
    submit,
)
from .config import PoolConfig, load_config
from .error import (
    BundleError,
    CompileError,
    ConfigurationError,
    DependencyResolutionWarning,
    DynPoolError,
    EntryPointNotFoundError,
    ExportNotFoundError,
    PoolClosedError,
    ProcessorNotFoundError,
    WorkerCrashedError,
)
from .modules.dp_bundler import BundleOptions, BundleUnit, bundle
from .modules.dp_exports import analyze_exports
from .modules.dp_logger import DynPoolLogger
from .modules.dp_registry import ProcessorRegistry, get_registry
from .service import execute_from_bundle, execute_from_code, execute_function
from .utils.dp_tempfile import cleanup, create_temp_entry, temp_entry
from .version import __version__

__all__ = [
    # Pool
    "ExecutionResult",
    "PoolManager",
    "Task",
    "TaskMode",
    "get_pool_manager",
    "shutdown",
    "stats",
    "submit",
    # Configuration
    "PoolConfig",
    "load_config",
    # Errors
    "BundleError",
    "CompileError",
    "ConfigurationError",
    "DependencyResolutionWarning",
    "DynPoolError",
    "EntryPointNotFoundError",
    "ExportNotFoundError",
    "PoolClosedError",
    "ProcessorNotFoundError",
    "WorkerCrashedError",
    # Bundler
    "BundleOptions",
    "BundleUnit",
    "bundle",
    "analyze_exports",
    # Registry
    "ProcessorRegistry",
    "get_registry",
    # Service
    "execute_from_bundle",
    "execute_from_code",
    "execute_function",
    # Temporary entry files
    "cleanup",
    "create_temp_entry",
    "temp_entry",
    # Logger class
    "DynPoolLogger",
    # Version
    "__version__",
]
