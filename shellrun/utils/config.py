# shellrun/utils/config.py
"""
Configuration for the command runner.

Holds the immutable `RunnerDefaults` merged into every CommandRunner and
loads YAML files of the form:

    shell:
      environment: {FOO: bar, LC_ALL: null}
      cwd: /srv/work
      stdin: "hello"
      timeout: 30            # seconds, or on_thread_exit
    defaults:
      grace_period: 2.0
      poll_interval: 0.1
      drain_period: 0.5
      working_directory: /tmp
      environment: {LC_ALL: C}
"""

import dataclasses
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Union

import yaml

from shellrun.runners.errors import ConfigError

SHELL_OPTIONS = ("environment", "cwd", "stdin", "timeout")


@dataclass(frozen=True)
class RunnerDefaults:
    """
    Default configuration applied to every CommandRunner.

    Attributes:
        environment: Variables every child receives unless the caller
            overrides or clears them.
        working_directory: Directory used when no cwd is given.
        grace_period: Seconds between TERM and KILL when a command overruns.
        poll_interval: Seconds between watchdog checks.
        drain_period: Seconds to keep reading output after the child has
            exited, for background commands that inherited its pipes.
    """

    environment: Mapping[str, str] = field(default_factory=lambda: {"LC_ALL": "C"})
    working_directory: str = field(default_factory=tempfile.gettempdir)
    grace_period: float = 2.0
    poll_interval: float = 0.1
    drain_period: float = 0.5

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "environment", MappingProxyType(dict(self.environment))
        )
        if self.grace_period < 0:
            raise ConfigError("grace_period should not be negative")
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval should be positive")
        if self.drain_period < 0:
            raise ConfigError("drain_period should not be negative")

    def replace(self, **changes: Any) -> "RunnerDefaults":
        return dataclasses.replace(self, **changes)


DEFAULTS = RunnerDefaults()


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Loads a YAML configuration file.

    Args:
        path: The path to the YAML file.

    Returns:
        A dictionary containing the configuration (empty for an empty file).
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration {path} should contain a mapping")
    return data


def runner_options(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extracts CommandRunner keyword options from the `shell:` section.

    Only keys present in the file are returned, so an absent `stdin` stays
    absent while `stdin: null` is passed through (and rejected by the runner).
    """
    section = cfg.get("shell") or {}
    unknown = sorted(set(section) - set(SHELL_OPTIONS))
    if unknown:
        raise ConfigError(f"Unknown shell option(s): {', '.join(unknown)}")
    return {key: section[key] for key in SHELL_OPTIONS if key in section}


def defaults_from_config(cfg: Dict[str, Any], base: RunnerDefaults = DEFAULTS) -> RunnerDefaults:
    """
    Returns `base` with the fields of the `defaults:` section applied.
    """
    section = cfg.get("defaults") or {}
    names = {f.name for f in dataclasses.fields(RunnerDefaults)}
    unknown = sorted(set(section) - names)
    if unknown:
        raise ConfigError(f"Unknown default(s): {', '.join(unknown)}")
    if not section:
        return base
    changes = dict(section)
    for key in ("grace_period", "poll_interval", "drain_period"):
        if key in changes:
            changes[key] = float(changes[key])
    if "working_directory" in changes:
        changes["working_directory"] = str(changes["working_directory"])
    return base.replace(**changes)
