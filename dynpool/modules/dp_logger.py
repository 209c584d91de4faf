"""
dynpool | modules | dp_logger.py

Line oriented logger shared by the pool owner and its worker processes.
Workers tag their lines with a source ("worker-3") so interleaved output
from several processes can be told apart.

Log Levels (Level - Value - Where dynpool uses it)

NOTSET - 0 - Nothing is printed.
TRACE - 1 - Every task a worker receives and answers, with its timing.
DEBUG - 2 - Worker start and exit, dispatch, queueing and bundling details.
INFO - 3 - Pool start and shutdown. (Default)
WARN - 4 - Dependencies that failed to load, exports not found statically.
ERROR - 5 - Crashed workers, failed round trips and bundles.

DYNPOOL_LOG_LEVEL sets the starting level, DYNPOOL_LOG_FORMAT=json switches
to one JSON object per line.
"""

import json
import os
from typing import Optional

MAX_MESSAGE_LENGTH = 4096
LOG_LEVELS = ["NOTSET", "TRACE", "DEBUG", "INFO", "WARN", "ERROR"]


def _validate_log_level(log_level):
    """
    Returns the level name of a level given by name or value.
    """
    if isinstance(log_level, str):
        log_level = log_level.upper()

        if log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {log_level}")

        return log_level

    if isinstance(log_level, int):
        if log_level < 0 or log_level >= len(LOG_LEVELS):
            raise ValueError(f"Invalid log level: {log_level}")

        return LOG_LEVELS[log_level]

    raise ValueError(f"Invalid log level: {log_level}")


def _truncate(message: str) -> str:
    if len(message) <= MAX_MESSAGE_LENGTH:
        return message

    # Tracebacks carry the useful part at both ends.
    half = MAX_MESSAGE_LENGTH // 2
    note = f"\n...TRUNCATED {len(message) - MAX_MESSAGE_LENGTH} CHARACTERS...\n"
    return message[:half] + note + message[-half:]


class DynPoolLogger:
    """One logger per process, shared by every dynpool module."""

    __instance = None
    level = _validate_log_level(os.environ.get("DYNPOOL_LOG_LEVEL", "INFO"))
    source: Optional[str] = None

    def __new__(cls):
        if DynPoolLogger.__instance is None:
            DynPoolLogger.__instance = object.__new__(cls)
        return DynPoolLogger.__instance

    def set_level(self, new_level):
        """
        Set the level for logging.
        Can be set to the name or value of the log level.
        """
        self.level = _validate_log_level(new_level)
        self.debug(f"Log level set to {self.level}")

    def set_source(self, source: Optional[str]):
        """
        Tags every later line of this process, None removes the tag.
        """
        self.source = source

    def log(self, message, message_level="INFO", task_id=None):
        """
        Prints one line: level, then source and task id when known, then the message.
        """
        if self.level == "NOTSET":
            return

        if LOG_LEVELS.index(self.level) > LOG_LEVELS.index(message_level):
            return

        message = _truncate(str(message))

        if os.environ.get("DYNPOOL_LOG_FORMAT", "").lower() == "json":
            log_json = {"taskId": task_id, "message": message, "level": message_level}
            if self.source:
                log_json["source"] = self.source
            print(json.dumps(log_json), flush=True)
            return

        prefix = "".join(f"{tag} | " for tag in (self.source, task_id) if tag)
        print(f"{message_level.ljust(7)}| {prefix}{message}", flush=True)

    def debug(self, message, task_id: Optional[str] = None):
        """
        debug log
        """
        self.log(message, "DEBUG", task_id)

    def info(self, message, task_id: Optional[str] = None):
        """
        info log
        """
        self.log(message, "INFO", task_id)

    def warn(self, message, task_id: Optional[str] = None):
        """
        warn log
        """
        self.log(message, "WARN", task_id)

    def error(self, message, task_id: Optional[str] = None):
        """
        error log
        """
        self.log(message, "ERROR", task_id)

    def trace(self, message, task_id: Optional[str] = None):
        """
        trace log
        """
        self.log(message, "TRACE", task_id)
