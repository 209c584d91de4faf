'''
dynpool | utils | dp_tempfile.py

Temporary entry files for inline source, so the bundler can treat inline
code like any other entry point.
'''

import os
import tempfile
from contextlib import contextmanager
from typing import Iterator, Optional

from ..modules.dp_logger import DynPoolLogger

log = DynPoolLogger()

ENTRY_PREFIX = "entry_"
ENTRY_SUFFIX = ".py"


def default_scratch_dir() -> str:
    '''
    Scratch directory used when none is given, DYNPOOL_SCRATCH_DIR or ./.tmp
    '''
    return os.environ.get("DYNPOOL_SCRATCH_DIR") or os.path.join(os.getcwd(), ".tmp")


def create_temp_entry(code: str, scratch_dir: Optional[str] = None) -> str:
    '''
    Writes code to a uniquely named file under scratch_dir and returns its path.
    The directory is created when it does not exist.
    '''
    scratch_dir = scratch_dir or default_scratch_dir()
    os.makedirs(scratch_dir, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w", encoding="utf-8", dir=scratch_dir,
        prefix=ENTRY_PREFIX, suffix=ENTRY_SUFFIX, delete=False
    ) as entry_file:
        entry_file.write(code)

    log.trace(f"Created temporary entry {entry_file.name}")
    return entry_file.name


def cleanup(path: str) -> None:
    '''
    Removes a temporary entry file. Failures are logged, never raised.
    '''
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as err:
        log.warn(f"Failed to cleanup temp file: {path} ({err})")


@contextmanager
def temp_entry(code: str, scratch_dir: Optional[str] = None) -> Iterator[str]:
    '''
    Yields the path of a temporary entry file, removed on every exit path.

    Usage:
        with temp_entry("def f():\\n    return 1\\n") as entry_point:
            unit = bundle(entry_point)
    '''
    path = create_temp_entry(code, scratch_dir)
    try:
        yield path
    finally:
        cleanup(path)
