# shellrun/runners/shell.py
"""
Bounded execution of a single shell command.

`CommandRunner` validates its configuration up front, then each `run()`
launches the command once, streams stdout and stderr into sinks, optionally
supervises it with a Watchdog and returns a `RunResult` once the child has
been reaped and every helper thread has stopped.
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from shellrun.runners import process
from shellrun.runners.base import StringSink, snapshot, supports_append
from shellrun.runners.errors import ConfigError, LaunchError
from shellrun.runners.process import ChildProcess, RunStatus
from shellrun.runners.watchdog import Watchdog
from shellrun.utils.config import DEFAULTS, RunnerDefaults, defaults_from_config, runner_options
from shellrun.utils.logging import get_logger

# Kill the child when the caller context ends instead of after a duration.
ON_THREAD_EXIT = "on_thread_exit"

_UNSET: Any = object()

Timeout = Union[None, int, float, timedelta, str]


@dataclass
class RunResult:
    """
    Outcome of one `CommandRunner.run()` call.
    """

    pid: int
    status: RunStatus
    stdout: str
    stderr: str
    elapsed: float = 0.0
    timed_out: bool = False
    signals: List[str] = field(default_factory=list)

    @property
    def exitstatus(self) -> Optional[int]:
        return self.status.exit_code

    @property
    def success(self) -> bool:
        return self.status.success


def merge_environment(
    base: Mapping[str, str], overlay: Optional[Mapping[str, Optional[str]]]
) -> Dict[str, str]:
    """
    Overlays `overlay` onto `base`.

    A key whose overlay value is None or empty is removed; every other value
    overrides or adds to the base. An overlay of None yields an empty mapping.
    """
    if overlay is None:
        return {}
    env = dict(base)
    for key, value in overlay.items():
        if value is None or value == "":
            env.pop(key, None)
        else:
            env[str(key)] = str(value)
    return env


def _check_timeout(timeout: Timeout) -> Union[None, float, str]:
    if timeout is None or timeout == ON_THREAD_EXIT:
        return timeout
    if isinstance(timeout, timedelta):
        seconds = timeout.total_seconds()
    elif isinstance(timeout, (int, float)) and not isinstance(timeout, bool):
        seconds = float(timeout)
    else:
        raise ConfigError(
            f"timeout should be a number of seconds or '{ON_THREAD_EXIT}', got {timeout!r}"
        )
    if seconds <= 0:
        raise ConfigError(f"timeout should be positive, got {timeout!r}")
    return seconds


class CommandRunner:
    """
    A configured, reusable description of one shell command.

    Args:
        command: The command line, handed verbatim to `/bin/sh -c`.
        environment: Variables overlaid on `defaults.environment`. A value of
            None or "" removes the variable; passing None instead of a
            mapping clears the defaults entirely.
        cwd: Existing directory to run in. Defaults to
            `defaults.working_directory`.
        stdin: Text written to the child's stdin. Must be a str if given.
        stdout: Sink receiving stdout. Anything with an `append` method.
        stderr: Sink receiving stderr. Anything with an `append` method.
        timeout: None, a positive duration in seconds (or a timedelta), or
            ON_THREAD_EXIT.
        defaults: The RunnerDefaults to build on.

    Raises:
        ConfigError: If any of the above is invalid.
    """

    def __init__(
        self,
        command: str,
        *,
        environment: Any = _UNSET,
        cwd: Union[None, str, Path] = None,
        stdin: Any = _UNSET,
        stdout: Any = _UNSET,
        stderr: Any = _UNSET,
        timeout: Timeout = None,
        defaults: RunnerDefaults = DEFAULTS,
    ) -> None:
        if not isinstance(command, str) or not command.strip():
            raise ConfigError("command must be a non-empty string")
        self._command = command
        self.defaults = defaults

        if environment is _UNSET:
            self._environment = dict(defaults.environment)
        else:
            self._environment = merge_environment(defaults.environment, environment)

        directory = str(cwd) if cwd is not None else defaults.working_directory
        if not os.path.isdir(directory):
            raise ConfigError(f"directory does not exist: {directory}", path=directory)
        self._cwd = directory

        if stdin is not _UNSET and not isinstance(stdin, str):
            raise ConfigError("stdin must be a string")
        self._stdin = None if stdin is _UNSET else stdin

        self._stdout = self._check_sink("stdout", stdout)
        self._stderr = self._check_sink("stderr", stderr)
        self._timeout = _check_timeout(timeout)

    @classmethod
    def from_config(cls, command: str, cfg: Dict[str, Any], **overrides: Any) -> "CommandRunner":
        """
        Builds a runner from a loaded configuration (see `shellrun.utils.config`).
        Keyword overrides take precedence over the `shell:` section.
        """
        options = runner_options(cfg)
        options.update(overrides)
        return cls(command, defaults=defaults_from_config(cfg), **options)

    @staticmethod
    def _check_sink(name: str, sink: Any) -> Any:
        if sink is _UNSET:
            return StringSink()
        if not supports_append(sink):
            raise ConfigError(f"{name} must support append")
        return sink

    @property
    def command(self) -> str:
        return self._command

    @property
    def environment(self) -> Dict[str, str]:
        return dict(self._environment)

    @property
    def cwd(self) -> str:
        return self._cwd

    @property
    def stdin(self) -> Optional[str]:
        return self._stdin

    @property
    def stdout(self) -> Any:
        return self._stdout

    @property
    def stderr(self) -> Any:
        return self._stderr

    @property
    def timeout(self) -> Union[None, float, str]:
        return self._timeout

    def child_environment(self) -> Dict[str, str]:
        """The full environment handed to the child: os.environ plus overlay."""
        env = os.environ.copy()
        env.update(self._environment)
        return env

    def run(self, context: Any = None) -> RunResult:
        """
        Runs the command once and blocks until it has finished or been killed.

        Args:
            context: Caller context watched in ON_THREAD_EXIT mode; any object
                with `is_alive()`. Defaults to the calling thread.

        Returns:
            A RunResult with the final status and the sinks' contents.

        Raises:
            LaunchError: If the operating system could not start the command.
        """
        log = get_logger(__name__)
        started = time.monotonic()
        try:
            child = process.launch(
                self._command,
                env=self.child_environment(),
                cwd=self._cwd,
                stdout=self._stdout,
                stderr=self._stderr,
                stdin=self._stdin,
            )
        except OSError as e:
            raise LaunchError(self._command, e) from e
        log.debug("Started process '%s' for: %s (cwd=%s)", child.pid, self._command, self._cwd)

        watchdog = self._arm(child, context)
        try:
            child.wait()
        except BaseException:
            # The caller is going away: take the child down with it.
            if watchdog is None:
                watchdog = self._watchdog(child, None, None).start()
            watchdog.fire()
            watchdog.join()
            child.kill_group()
            child.reap()
            child.join(self.defaults.drain_period)
            raise

        if watchdog is not None:
            watchdog.stop()
            watchdog.join()
            if watchdog.fired:
                # leftovers of a terminated command must not outlive the run
                child.kill_group()
        status = child.reap()
        child.join(self.defaults.drain_period)

        elapsed = time.monotonic() - started
        log.debug("Process '%s' finished with %s after %.3fs", child.pid, status, elapsed)
        return RunResult(
            pid=child.pid,
            status=status,
            stdout=snapshot(self._stdout),
            stderr=snapshot(self._stderr),
            elapsed=elapsed,
            timed_out=bool(watchdog and watchdog.fired),
            signals=list(watchdog.signals) if watchdog else [],
        )

    def _arm(self, child: ChildProcess, context: Any) -> Optional[Watchdog]:
        if self._timeout is None:
            return None
        if self._timeout == ON_THREAD_EXIT:
            caller = context if context is not None else threading.current_thread()
            return self._watchdog(child, None, caller).start()
        return self._watchdog(child, self._timeout, None).start()

    def _watchdog(self, child: ChildProcess, timeout: Optional[float], context: Any) -> Watchdog:
        return Watchdog(
            child.pid,
            timeout=timeout,
            context=context,
            grace_period=self.defaults.grace_period,
            poll_interval=self.defaults.poll_interval,
        )

    def __repr__(self) -> str:
        return f"CommandRunner({self._command!r}, cwd={self._cwd!r}, timeout={self._timeout!r})"
