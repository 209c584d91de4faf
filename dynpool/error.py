'''
dynpool | error.py

This file contains the error classes for the dynpool package.
'''

from typing import List, Optional


class DynPoolError(Exception):
    '''
    Base class for all dynpool errors
    '''
    def __init__(self, message: Optional[str] = None):
        super().__init__(message)
        self.message = message

    def __str__(self):
        if self.message:
            return self.message
        return super().__str__()


class ConfigurationError(DynPoolError):
    '''
    Raised when the pool is misconfigured or a required input is missing.
    Never retried, always surfaced to the submitter.
    '''


class CompileError(DynPoolError):
    '''
    Raised when supplied source can not be compiled.
    '''


class BundleError(CompileError):
    '''
    Raised when an entry point can not be bundled
    '''
    def __init__(self, message: Optional[str] = None, entry_point: Optional[str] = None):
        super().__init__(message)
        self.entry_point = entry_point


class EntryPointNotFoundError(BundleError, ConfigurationError):
    '''
    Raised when the bundle entry point file does not exist
    '''


class ExportNotFoundError(DynPoolError):
    '''
    Raised inside a worker when the requested function is not exported by a bundle
    '''
    def __init__(self, message: Optional[str] = None, available: Optional[List[str]] = None):
        super().__init__(message)
        self.available = available or []


class WorkerCrashedError(DynPoolError):
    '''
    Raised when a worker process exits while it owns a task
    '''


class PoolClosedError(DynPoolError):
    '''
    Raised for tasks still waiting on a pool that is shutting down
    '''


class ProcessorNotFoundError(DynPoolError):
    '''
    Raised when a registered processor or function can not be found
    '''


class DependencyResolutionWarning(UserWarning):
    '''
    Emitted when a named dependency can not be imported inside a worker
    '''
