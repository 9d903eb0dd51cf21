# shellrun/cli.py
"""
Command-line interface for shellrun, powered by Typer.
"""

from pathlib import Path
from typing import Dict, List, Optional

import typer

from shellrun.runners.errors import ConfigError, LaunchError
from shellrun.runners.shell import ON_THREAD_EXIT, CommandRunner, RunResult
from shellrun.utils.config import load_config
from shellrun.utils.logging import get_logger, setup_logger

# Exit codes for failures that happen before or instead of the command.
EXIT_TIMEOUT = 124
EXIT_LAUNCH_FAILED = 127
EXIT_CONFIG_ERROR = 2

app = typer.Typer(
    no_args_is_help=True,
    help="shellrun: run a shell command with captured output and a deadline.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

state = {}


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose (DEBUG) logging."
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Also write log records to this file."
    ),
):
    """
    Main callback to set up logging and global state.
    """
    state["verbose"] = verbose
    state["log_file"] = log_file
    setup_logger(logfile=log_file, verbose=verbose)
    get_logger(__name__).debug("CLI context initialized. verbose=%s", verbose)


def _environment_overlay(
    pairs: Optional[List[str]],
    unset: Optional[List[str]],
    base: Optional[Dict[str, Optional[str]]] = None,
) -> Dict[str, Optional[str]]:
    overlay = dict(base or {})
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint="--env")
        overlay[key] = value
    for key in unset or []:
        overlay[key] = None
    return overlay


def exit_code_for(result: RunResult) -> int:
    """Maps a RunResult onto a shell-style exit code."""
    if result.timed_out:
        return EXIT_TIMEOUT
    if result.status.signaled:
        return 128 + result.status.signal
    if result.status.exit_code is None:
        return 1
    return result.status.exit_code


def _load(config_path: Optional[Path]) -> dict:
    if config_path is None:
        return {}
    try:
        return load_config(config_path)
    except ConfigError as e:
        get_logger(__name__).error("%s", e)
        raise typer.Exit(code=EXIT_CONFIG_ERROR)


@app.command()
def run(
    command: str = typer.Argument(..., help="The shell command to execute."),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Terminate the command after this many seconds."
    ),
    on_thread_exit: bool = typer.Option(
        False, "--on-thread-exit", help="Only terminate the command if shellrun itself is interrupted."
    ),
    cwd: Optional[Path] = typer.Option(None, "--cwd", "-C", help="Working directory."),
    env: Optional[List[str]] = typer.Option(
        None, "--env", "-e", help="KEY=VALUE to set in the environment (repeatable)."
    ),
    unset: Optional[List[str]] = typer.Option(
        None, "--unset", "-u", help="Variable to remove from the default environment (repeatable)."
    ),
    no_env: bool = typer.Option(
        False, "--no-env", help="Do not apply the default environment (LC_ALL=C)."
    ),
    stdin: Optional[str] = typer.Option(None, "--stdin", help="Text to send on stdin."),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        resolve_path=True,
        help="YAML file with 'shell' and 'defaults' sections.",
    ),
):
    """
    Run COMMAND, echo its output and exit with its exit code.
    """
    log = get_logger(__name__)
    cfg = _load(config_path)

    overrides = {}
    if no_env:
        overrides["environment"] = None
    elif env or unset:
        base = (cfg.get("shell") or {}).get("environment") or {}
        overrides["environment"] = _environment_overlay(env, unset, base)
    if cwd is not None:
        overrides["cwd"] = cwd
    if stdin is not None:
        overrides["stdin"] = stdin
    if on_thread_exit:
        overrides["timeout"] = ON_THREAD_EXIT
    elif timeout is not None:
        overrides["timeout"] = timeout

    try:
        runner = CommandRunner.from_config(command, cfg, **overrides)
        result = runner.run()
    except ConfigError as e:
        log.error("%s", e)
        raise typer.Exit(code=EXIT_CONFIG_ERROR)
    except LaunchError as e:
        log.error("%s", e)
        raise typer.Exit(code=EXIT_LAUNCH_FAILED)

    if result.stdout:
        typer.echo(result.stdout, nl=False)
    if result.stderr:
        typer.echo(result.stderr, nl=False, err=True)
    if result.timed_out:
        log.warning("Command exceeded its timeout; signals sent: %s", ", ".join(result.signals))
    raise typer.Exit(code=exit_code_for(result))


@app.command("env")
def show_env(
    env: Optional[List[str]] = typer.Option(None, "--env", "-e", help="KEY=VALUE to set (repeatable)."),
    unset: Optional[List[str]] = typer.Option(None, "--unset", "-u", help="Variable to remove (repeatable)."),
    no_env: bool = typer.Option(False, "--no-env", help="Start from an empty environment."),
):
    """
    Print the environment overlay a command would receive.
    """
    overlay = None if no_env else _environment_overlay(env, unset)
    try:
        runner = CommandRunner("true", environment=overlay)
    except ConfigError as e:
        get_logger(__name__).error("%s", e)
        raise typer.Exit(code=EXIT_CONFIG_ERROR)
    for key, value in sorted(runner.environment.items()):
        typer.echo(f"{key}={value}")


if __name__ == "__main__":
    app()
