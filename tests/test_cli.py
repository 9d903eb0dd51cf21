from pathlib import Path

import yaml

from shellrun.cli import app, exit_code_for
from shellrun.runners.process import RunStatus
from shellrun.runners.shell import RunResult


def _write_config(base_dir: Path, cfg: dict) -> Path:
    cfg_path = base_dir / "shellrun.yaml"
    cfg_path.write_text(yaml.safe_dump(cfg))
    return cfg_path


def test_cli_help_lists_commands(cli_runner):
    result = cli_runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "Usage" in result.stdout
    assert "run" in result.stdout
    assert "env" in result.stdout


def test_run_echoes_stdout(cli_runner):
    result = cli_runner.invoke(app, ["run", "echo foo"])
    assert result.exit_code == 0
    assert result.stdout == "foo\n"


def test_run_exits_with_child_exit_code(cli_runner):
    result = cli_runner.invoke(app, ["run", "exit 3"])
    assert result.exit_code == 3


def test_run_passes_environment(cli_runner):
    result = cli_runner.invoke(app, ["run", "--env", "foo=bar", 'echo "$LC_ALL/$foo"'])
    assert result.exit_code == 0
    assert result.stdout == "C/bar\n"


def test_run_sends_stdin(cli_runner):
    result = cli_runner.invoke(app, ["run", "--stdin", "hello world", "cat"])
    assert result.exit_code == 0
    assert result.stdout == "hello world"


def test_run_timeout_exits_124(cli_runner):
    result = cli_runner.invoke(app, ["run", "--timeout", "0.3", "sleep 5"])
    assert result.exit_code == 124


def test_run_missing_cwd_is_a_config_error(cli_runner, tmp_path):
    result = cli_runner.invoke(app, ["run", "--cwd", str(tmp_path / "missing"), "true"])
    assert result.exit_code == 2


def test_run_rejects_malformed_env(cli_runner):
    result = cli_runner.invoke(app, ["run", "--env", "novalue", "true"])
    assert result.exit_code == 2


def test_run_reads_config(cli_runner, tmp_path):
    cfg_path = _write_config(
        tmp_path,
        {
            "shell": {"environment": {"foo": "from-config"}, "cwd": str(tmp_path)},
            "defaults": {"grace_period": 0.5},
        },
    )
    result = cli_runner.invoke(app, ["run", "--config", str(cfg_path), 'echo "$foo"'])
    assert result.exit_code == 0
    assert result.stdout == "from-config\n"


def test_run_cli_env_extends_config_env(cli_runner, tmp_path):
    cfg_path = _write_config(tmp_path, {"shell": {"environment": {"foo": "a"}}})
    result = cli_runner.invoke(
        app, ["run", "--config", str(cfg_path), "--env", "bar=b", 'echo "$foo$bar"']
    )
    assert result.stdout == "ab\n"


def test_env_shows_default_overlay(cli_runner):
    result = cli_runner.invoke(app, ["env"])
    assert result.exit_code == 0
    assert result.stdout == "LC_ALL=C\n"


def test_env_applies_overrides(cli_runner):
    result = cli_runner.invoke(app, ["env", "--unset", "LC_ALL", "--env", "A=b"])
    assert result.stdout == "A=b\n"
    result = cli_runner.invoke(app, ["env", "--no-env"])
    assert result.stdout == ""


def test_exit_code_for_results():
    def result(status, timed_out=False):
        return RunResult(pid=1, status=status, stdout="", stderr="", timed_out=timed_out)

    assert exit_code_for(result(RunStatus(exit_code=0))) == 0
    assert exit_code_for(result(RunStatus(exit_code=5))) == 5
    assert exit_code_for(result(RunStatus(signal=9))) == 137
    assert exit_code_for(result(RunStatus(signal=15), timed_out=True)) == 124
    assert exit_code_for(result(RunStatus.unknown())) == 1
