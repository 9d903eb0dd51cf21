import logging

import pytest
from typer.testing import CliRunner

from shellrun.utils.config import DEFAULTS


@pytest.fixture
def cli_runner():
    """Reusable Typer CLI runner."""
    return CliRunner()


@pytest.fixture
def fast_defaults():
    """Defaults with a short grace period so escalation tests finish quickly."""
    return DEFAULTS.replace(grace_period=0.3, poll_interval=0.05)


@pytest.fixture(autouse=True)
def reset_shellrun_logger():
    """setup_logger() detaches the package logger from the root; undo that so caplog sees records."""
    yield
    log = logging.getLogger("shellrun")
    for handler in list(log.handlers):
        handler.close()
    log.handlers.clear()
    log.propagate = True
    log.setLevel(logging.NOTSET)
