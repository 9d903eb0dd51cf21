import dataclasses
import tempfile

import pytest

from shellrun.runners.errors import ConfigError
from shellrun.utils.config import (
    DEFAULTS,
    RunnerDefaults,
    defaults_from_config,
    load_config,
    runner_options,
)
from shellrun.utils.logging import get_logger, setup_logger


def test_load_config_reads_yaml(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        "shell:\n"
        "  environment:\n"
        "    foo: bar\n"
        "    LC_ALL: null\n"
        "  timeout: on_thread_exit\n"
    )

    data = load_config(cfg_path)
    assert data["shell"]["environment"] == {"foo": "bar", "LC_ALL": None}
    assert data["shell"]["timeout"] == "on_thread_exit"


def test_load_config_empty_file(tmp_path):
    cfg_path = tmp_path / "empty.yaml"
    cfg_path.write_text("")
    assert load_config(cfg_path) == {}


def test_load_config_rejects_non_mapping(tmp_path):
    cfg_path = tmp_path / "list.yaml"
    cfg_path.write_text("- a\n- b\n")
    with pytest.raises(ConfigError):
        load_config(cfg_path)


def test_runner_options_keeps_only_present_keys():
    assert runner_options({}) == {}
    assert runner_options({"shell": {"stdin": None}}) == {"stdin": None}
    assert runner_options({"shell": {"cwd": "/tmp", "timeout": 3}}) == {"cwd": "/tmp", "timeout": 3}


def test_runner_options_rejects_unknown_keys():
    with pytest.raises(ConfigError, match="shellx"):
        runner_options({"shell": {"shellx": 1}})


def test_defaults_are_immutable():
    assert DEFAULTS.environment == {"LC_ALL": "C"}
    assert DEFAULTS.working_directory == tempfile.gettempdir()
    assert DEFAULTS.grace_period == 2.0
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULTS.grace_period = 1
    with pytest.raises(TypeError):
        DEFAULTS.environment["foo"] = "bar"


def test_defaults_copy_their_environment():
    env = {"LC_ALL": "C"}
    defaults = RunnerDefaults(environment=env)
    env["foo"] = "bar"
    assert defaults.environment == {"LC_ALL": "C"}


@pytest.mark.parametrize("changes", [{"grace_period": -1}, {"poll_interval": 0}, {"drain_period": -0.1}])
def test_defaults_validate_intervals(changes):
    with pytest.raises(ConfigError):
        DEFAULTS.replace(**changes)


def test_defaults_from_config():
    defaults = defaults_from_config({"defaults": {"grace_period": "0.5", "environment": {"LANG": "C"}}})
    assert defaults.grace_period == 0.5
    assert defaults.environment == {"LANG": "C"}
    assert defaults.poll_interval == DEFAULTS.poll_interval
    assert defaults_from_config({}) is DEFAULTS


def test_defaults_from_config_reads_drain_period():
    defaults = defaults_from_config({"defaults": {"drain_period": 2}})
    assert defaults.drain_period == 2.0
    assert DEFAULTS.drain_period == 0.5


def test_defaults_from_config_rejects_unknown_keys():
    with pytest.raises(ConfigError, match="grace"):
        defaults_from_config({"defaults": {"grace": 1}})


def test_setup_logger_creates_file(tmp_path):
    log_path = tmp_path / "logs" / "shellrun.log"
    logger = setup_logger(logfile=log_path, verbose=True)
    child = get_logger("shellrun.tests")

    child.debug("debug message")
    child.info("info message")

    for handler in logger.handlers:
        flush = getattr(handler, "flush", None)
        if callable(flush):
            flush()

    assert log_path.is_file()
    contents = log_path.read_text()
    assert "info message" in contents
    assert "debug message" in contents


def test_setup_logger_replaces_handlers(tmp_path):
    setup_logger()
    logger = setup_logger()
    assert len(logger.handlers) == 1
    assert logger.propagate is False
