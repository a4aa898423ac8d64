"""CLI commands for initialising a substrate and running the cycle loop."""

from __future__ import annotations

import logging
import signal
import sys
from pathlib import Path
from typing import Any, Optional

import typer

from .app import Application, build_application
from .config import DEFAULT_CONFIG_NAME, AppConfig, ConfigError, load_config, write_default_config
from .loop.types import LoopStateError
from .planning.plan_parser import TaskNotFoundError, parse_current_goal
from .substrate.store import SubstrateError, initialize_substrate
from .substrate.types import SubstrateConfig, SubstrateFileType

APP_HELP = "Psyche loop CLI: a planner, worker, auditor and drive generator sharing one markdown substrate."
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

LOGGER = logging.getLogger(__name__)

app = typer.Typer(help=APP_HELP)


def _load(config: str) -> AppConfig:
    try:
        return load_config(Path(config))
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _configure_logging(config: AppConfig) -> None:
    """Log to stderr and to ``<paths.logs>/psyche.log`` at the configured level."""
    log_dir = config.paths.logs
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stderr),
        logging.FileHandler(log_dir / "psyche.log", encoding="utf-8"),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
    logging.basicConfig(level=config.logging.level, handlers=handlers, force=True)


def _open(config: AppConfig) -> Application:
    application = build_application(config)
    if not application.store.exists(SubstrateFileType.PLAN):
        typer.echo(f"No substrate found at {config.substrate.path}; run `psyche init` first.")
        raise typer.Exit(code=1)
    return application


def _install_signal_handlers(application: Application) -> None:
    orchestrator = application.orchestrator

    def _stop(signum: int, frame: Any) -> None:
        LOGGER.info("Received signal %d; stopping after the current cycle", signum)
        orchestrator.stop()

    def _restart(signum: int, frame: Any) -> None:
        LOGGER.info("Received signal %d; restart requested", signum)
        orchestrator.request_restart()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _restart)


@app.command()
def init(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the agent configuration file.",
    ),
) -> None:
    """Write a default configuration (if missing) and create the substrate files."""
    config_path = Path(config)
    if config_path.exists():
        typer.echo(f"Using existing configuration at {config_path}.")
    else:
        write_default_config(config_path)
        typer.echo(f"Wrote default configuration to {config_path}.")

    app_config = _load(config)
    created = initialize_substrate(SubstrateConfig(app_config.substrate.path))
    if created:
        typer.echo(f"Created {len(created)} substrate file(s) in {app_config.substrate.path}:")
        for file_type in created:
            typer.echo(f"- {file_type.value}")
    else:
        typer.echo(f"Substrate already initialised at {app_config.substrate.path}.")


@app.command()
def run(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the agent configuration file.",
    ),
    cycles: Optional[int] = typer.Option(
        None,
        "--cycles",
        "-n",
        min=1,
        help="Run this many cycles synchronously and exit instead of looping.",
    ),
) -> None:
    """Run the cycle loop until stopped (SIGINT/SIGTERM) or a restart is requested (SIGHUP)."""
    app_config = _load(config)
    _configure_logging(app_config)
    application = _open(app_config)
    orchestrator = application.orchestrator

    if cycles is not None:
        try:
            for _ in range(cycles):
                result = orchestrator.run_one_cycle()
                label = f" {result.task_id}" if result.task_id else ""
                status = "ok" if result.success else "failed"
                typer.echo(f"Cycle {result.cycle_number}: {result.action}{label} [{status}] {result.summary}")
        finally:
            application.close()
        return

    _install_signal_handlers(application)
    try:
        orchestrator.start(background=False)
        exit_code = orchestrator.run_loop()
    except LoopStateError as error:
        typer.echo(f"Loop error: {error}")
        raise typer.Exit(code=1) from error
    finally:
        application.close()
    raise typer.Exit(code=exit_code)


@app.command()
def status(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the agent configuration file.",
    ),
) -> None:
    """Show loop bookkeeping, the current goal, the next task and tracked findings."""
    app_config = _load(config)
    application = _open(app_config)
    snapshot = application.orchestrator.status()
    plan = application.ego.read_plan()
    next_task = application.ego.dispatch_next()

    typer.echo(f"Cycle: {snapshot['cycle_number']}")
    if snapshot["rate_limit_until"]:
        typer.echo(f"Rate limited until: {snapshot['rate_limit_until']}")
    typer.echo(f"Current goal: {parse_current_goal(plan) or '(none)'}")
    if next_task is None:
        typer.echo("Next task: (none)")
    else:
        typer.echo(f"Next task: {next_task.task_id} {next_task.description}")

    signatures = application.tracker.tracked_findings()
    if not signatures:
        typer.echo("Tracked findings: none")
        return
    typer.echo("Tracked findings:")
    for signature in signatures:
        cycles = ", ".join(str(cycle) for cycle in application.tracker.get_finding_history(signature))
        typer.echo(f"- {signature}: cycles {cycles}")


@app.command("next-task")
def next_task(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the agent configuration file.",
    ),
) -> None:
    """Print the next actionable task."""
    application = _open(_load(config))
    dispatch = application.ego.dispatch_next()
    if dispatch is None:
        typer.echo("No actionable task.")
        return
    typer.echo(f"{dispatch.task_id}: {dispatch.description}")


@app.command()
def complete(
    task_id: str = typer.Argument(..., help="Task id as shown by next-task, e.g. task-2.1."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the agent configuration file.",
    ),
) -> None:
    """Mark a plan task complete."""
    application = _open(_load(config))
    try:
        application.subconscious.mark_task_complete(task_id)
    except TaskNotFoundError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    except SubstrateError as error:
        typer.echo(f"Failed to update plan: {error}")
        raise typer.Exit(code=1) from error
    typer.echo(f"Marked {task_id} complete.")


@app.command()
def audit(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the agent configuration file.",
    ),
) -> None:
    """Run an ad hoc governance audit without escalation tracking."""
    app_config = _load(config)
    application = _open(app_config)
    try:
        report = application.superego.audit()
    finally:
        application.close()

    typer.echo(f"Audit summary: {report.summary or '(none)'}")
    if not report.findings:
        typer.echo("No findings.")
        return
    for finding in report.findings:
        typer.echo(f"- [{finding.severity}] {finding.message}")


if __name__ == "__main__":
    app()
