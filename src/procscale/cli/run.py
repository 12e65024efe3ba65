"""``procscale run``: run an elastic worker pool with live terminal output."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from procscale._internal.config import TerminationMode, load_config
from procscale._internal.errors import ProcScaleError
from procscale._internal.logging import setup_logging
from procscale.engine.feeder import LoadFeeder
from procscale.engine.supervisor import PoolSupervisor

if TYPE_CHECKING:
    from procscale._internal.config import ScalingConfig
    from procscale.engine.supervisor import PoolStatus

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Config construction
# ---------------------------------------------------------------------------


def _build_config(
    initial: int | None,
    min_workers: int | None,
    max_workers: int | None,
    step: int | None,
    cooldown: float | None,
    max_requests: int | None,
    immediate_exit: bool,
) -> ScalingConfig:
    """Layer CLI flags over the environment configuration.

    Raises:
        ConfigError: If the combined configuration is invalid.
    """
    base = load_config()
    changes: dict[str, object] = {}
    if initial is not None:
        changes["initial_workers"] = initial
    if min_workers is not None:
        changes["min_workers"] = min_workers
    if max_workers is not None:
        changes["max_workers"] = max_workers
    if step is not None:
        changes["step_size"] = step
    if cooldown is not None:
        changes["cooldown_seconds"] = cooldown
    if max_requests is not None:
        changes["max_requests_per_worker"] = max_requests
    if immediate_exit:
        changes["termination_mode"] = TerminationMode.IMMEDIATE_EXIT
    return base.replace(**changes) if changes else base


# ---------------------------------------------------------------------------
# Rich live display
# ---------------------------------------------------------------------------


def _make_status_table(status: PoolStatus, submitted: int) -> Table:
    """Build a Rich table summarising the pool.

    Args:
        status: Current pool status.
        submitted: Jobs submitted by the feeder so far.

    Returns:
        Formatted Rich Table.
    """
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Pool", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Target", str(status.target))
    table.add_row("Live", str(status.live))
    table.add_row("Busy", str(status.busy))
    table.add_row("Jobs Submitted", str(submitted))
    table.add_row("Spawned", str(status.spawned))
    table.add_row("Retired", str(status.retired))
    table.add_row("Killed (scale-down)", str(status.killed))
    table.add_row("Failed", str(status.failed))
    table.add_row("Last Event", status.last_notification or "-")
    return table


def _print_summary(status: PoolStatus, submitted: int) -> None:
    table = Table(title="Pool Stopped", show_header=True, header_style="bold green", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Final Target", str(status.target))
    table.add_row("Jobs Submitted", str(submitted))
    table.add_row("Workers Spawned", str(status.spawned))
    table.add_row("Workers Retired", str(status.retired))
    table.add_row("Workers Killed", str(status.killed))
    table.add_row("Workers Failed", str(status.failed))
    console.print(table)


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def run_cmd(
    handler_file: Path = typer.Argument(
        ...,
        help="Path to the handler .py file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    initial: int | None = typer.Option(
        None,
        "--initial",
        "-n",
        help="Initial number of workers [env: PROCSCALE_INITIAL_WORKERS, default 1].",
    ),
    min_workers: int | None = typer.Option(
        None,
        "--min",
        help="Minimum worker target (default: initial pool size).",
    ),
    max_workers: int | None = typer.Option(
        None,
        "--max",
        help="Maximum worker target (default: 8).",
    ),
    step: int | None = typer.Option(
        None,
        "--step",
        help="Workers added or removed per adjustment (default: 5).",
    ),
    cooldown: float | None = typer.Option(
        None,
        "--cooldown",
        help="Seconds between an adjustment and the next scale-down (default: 5).",
    ),
    max_requests: int | None = typer.Option(
        None,
        "--max-requests",
        help="Retire a worker after this many units of work.",
    ),
    immediate_exit: bool = typer.Option(
        False,
        "--immediate-exit",
        help="Retiring workers exit inside the unit hook instead of cleaning up.",
    ),
    rate: float = typer.Option(
        10.0,
        "--rate",
        "-r",
        help="Synthetic jobs per second to feed the pool.",
        min=0.0,
    ),
    ramp_to: float | None = typer.Option(
        None,
        "--ramp-to",
        help="Ramp the feed rate linearly to this many jobs per second.",
    ),
    duration: float = typer.Option(
        30.0,
        "--duration",
        "-d",
        help="Run duration in seconds.",
        min=1.0,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
) -> None:
    """Run a worker pool fed with synthetic jobs, with a live status table."""
    log_level = logging.DEBUG if verbose else logging.INFO
    setup_logging(level=log_level)

    try:
        config = _build_config(
            initial,
            min_workers,
            max_workers,
            step,
            cooldown,
            max_requests,
            immediate_exit,
        )
        supervisor = PoolSupervisor(handler_file, config, log_level=log_level)
        feeder = LoadFeeder(supervisor.submit, rate, duration, ramp_to=ramp_to)
    except ProcScaleError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(
        Panel(
            f"[bold]Handler:[/bold]  {handler_file.name}\n"
            f"[bold]Workers:[/bold]  {config.initial_workers} "
            f"(min {config.lower_bound}, max {config.max_workers}, step {config.step_size})\n"
            f"[bold]Feed:[/bold]     {feeder.describe()}\n"
            f"[bold]Retire:[/bold]   "
            f"{config.max_requests_per_worker or 'never'} ({config.termination_mode.value})",
            title="procscale",
            border_style="cyan",
        )
    )

    try:
        with Live(
            get_renderable=lambda: _make_status_table(supervisor.snapshot(), feeder.submitted),
            console=console,
            refresh_per_second=4,
            transient=True,
        ):
            status = supervisor.run(duration, on_started=feeder.start)
    except ProcScaleError as exc:
        console.print(f"[red]Pool failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    finally:
        feeder.stop()

    _print_summary(status, feeder.submitted)
    console.print("[green]Pool stopped cleanly.[/green]")
