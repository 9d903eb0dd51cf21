# shellrun/runners/errors.py
"""
Exceptions raised by the command runner.
"""

from typing import Optional


class ShellError(Exception):
    """Base class for all errors raised by shellrun."""


class ConfigError(ShellError, ValueError):
    """Invalid construction arguments for a CommandRunner."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class LaunchError(ShellError):
    """The operating system refused to start the command."""

    def __init__(self, command: str, error: OSError) -> None:
        super().__init__(f"Could not launch '{command}': {error.strerror or error}")
        self.command = command
        self.errno = error.errno
        self.strerror = error.strerror
