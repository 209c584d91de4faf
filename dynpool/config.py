'''
dynpool | config.py

Pool configuration.
Defaults can be overridden by a TOML file located at ~/.dynpool/config.toml
(or the path in DYNPOOL_CONFIG) and then by DYNPOOL_* environment variables.

--- File Structure ---

[default]
min_workers = 1
max_workers = 4
idle_timeout = 30
scratch_dir = "/tmp/dynpool"
'''

import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional

import tomli as toml

from .error import ConfigurationError

CONFIG_FILE = os.path.expanduser('~/.dynpool/config.toml')
START_METHODS = ("spawn", "forkserver", "fork")

ENV_OVERRIDES = {
    "DYNPOOL_MIN_WORKERS": ("min_workers", int),
    "DYNPOOL_MAX_WORKERS": ("max_workers", int),
    "DYNPOOL_IDLE_TIMEOUT": ("idle_timeout", float),
    "DYNPOOL_SHUTDOWN_TIMEOUT": ("shutdown_timeout", float),
    "DYNPOOL_SCRATCH_DIR": ("scratch_dir", str),
    "DYNPOOL_START_METHOD": ("start_method", str),
}


def _default_scratch_dir() -> str:
    return os.path.join(os.getcwd(), '.tmp')


@dataclass
class PoolConfig:
    '''
    Settings for a worker pool.

    Args:
        min_workers: Worker processes started with the pool and kept alive when idle.
        max_workers: Upper bound on worker processes, and so on busy workers.
        idle_timeout: Seconds a worker above min_workers may sit idle, None keeps it forever.
        shutdown_timeout: Seconds to wait for a worker to exit before it is terminated.
        scratch_dir: Directory that hosts temporary entry files for inline code.
        start_method: multiprocessing start method for worker processes.
    '''
    min_workers: int = 1
    max_workers: int = 4
    idle_timeout: Optional[float] = None
    shutdown_timeout: float = 5.0
    scratch_dir: str = field(default_factory=_default_scratch_dir)
    start_method: str = "spawn"

    def validate(self) -> "PoolConfig":
        '''
        Raises ConfigurationError when the settings can not describe a pool.
        '''
        if self.min_workers < 0:
            raise ConfigurationError(f"min_workers must be >= 0, got {self.min_workers}")

        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")

        if self.min_workers > self.max_workers:
            raise ConfigurationError(
                f"min_workers ({self.min_workers}) exceeds max_workers ({self.max_workers})"
            )

        if self.idle_timeout is not None and self.idle_timeout < 0:
            raise ConfigurationError(f"idle_timeout must be >= 0, got {self.idle_timeout}")

        if self.start_method not in START_METHODS:
            raise ConfigurationError(
                f"Unknown start method: {self.start_method}. Use one of {', '.join(START_METHODS)}."
            )

        return self

    def to_dict(self) -> Dict[str, Any]:
        ''' Returns the settings as a plain dictionary. '''
        return asdict(self)


def _config_file() -> str:
    return os.environ.get("DYNPOOL_CONFIG", CONFIG_FILE)


def read_config_file(profile: str = "default") -> Dict[str, Any]:
    '''
    Returns the settings table for the profile, or an empty dict when there is none.
    '''
    config_file = _config_file()
    if not os.path.exists(config_file):
        return {}

    try:
        with open(config_file, 'rb') as config_fp:
            config = toml.load(config_fp)
    except toml.TOMLDecodeError as err:
        raise ConfigurationError(f"{config_file} is not a valid TOML file: {err}") from err

    return config.get(profile, {})


def load_config(profile: str = "default", **overrides) -> PoolConfig:
    '''
    Builds a PoolConfig from the config file, environment and keyword overrides,
    in increasing order of precedence.
    '''
    known = {config_field.name for config_field in fields(PoolConfig)}
    settings = {}

    for key, value in read_config_file(profile).items():
        if key not in known:
            raise ConfigurationError(f"Unknown setting in {_config_file()}: {key}")
        settings[key] = value

    for env_name, (key, cast) in ENV_OVERRIDES.items():
        raw_value = os.environ.get(env_name)
        if raw_value is None or raw_value == "":
            continue
        try:
            settings[key] = cast(raw_value)
        except ValueError as err:
            raise ConfigurationError(f"Invalid value for {env_name}: {raw_value}") from err

    for key, value in overrides.items():
        if key not in known:
            raise ConfigurationError(f"Unknown setting: {key}")
        if value is not None:
            settings[key] = value

    return PoolConfig(**settings)
