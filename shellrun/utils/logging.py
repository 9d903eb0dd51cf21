# shellrun/utils/logging.py
"""
This module provides centralized logging configuration for shellrun.
"""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "shellrun"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(logfile: Optional[Path] = None, verbose: bool = False) -> logging.Logger:
    """
    Configures the 'shellrun' root logger and returns it.

    - Sets up a RichHandler writing to stderr, so captured command output
      echoed on stdout stays clean.
    - Optionally sets up a FileHandler if a logfile path is provided.
    - Log level is set to DEBUG if verbose is True, otherwise INFO.

    Args:
        logfile: Optional path to a file for log output.
        verbose: If True, sets the log level to DEBUG.

    Returns:
        The configured 'shellrun' logger instance.
    """
    level = logging.DEBUG if verbose else logging.INFO

    log = logging.getLogger(ROOT_LOGGER)
    log.setLevel(level)
    log.propagate = False

    # Reconfiguring replaces handlers rather than stacking them
    if log.hasHandlers():
        for handler in list(log.handlers):
            handler.close()
        log.handlers.clear()

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
        log_time_format="[%X]",
    )
    console_handler.setLevel(level)
    log.addHandler(console_handler)

    if logfile:
        logfile = Path(logfile)
        logfile.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(logfile)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        log.addHandler(file_handler)
        log.debug("File logging enabled at: %s", logfile)

    log.debug("Logger configured with level=%s", logging.getLevelName(level))
    return log


def get_logger(name: str) -> logging.Logger:
    """
    Returns a logger instance, typically a child of the 'shellrun' logger
    when called with a module's __name__.
    """
    return logging.getLogger(name)
