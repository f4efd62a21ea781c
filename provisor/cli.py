"""Command line interface for running provisioning plans."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

import typer

from provisor import Orchestrator, get_repository
from provisor.config import load_config
from provisor.contracts import Report
from provisor.errors import InvalidPlanError, ProvisorError
from provisor.host import HostContext
from provisor.plans import available_plans, resolve_plan
from provisor.report import format_report

logger = logging.getLogger(__name__)

app = typer.Typer(help="Declarative, idempotent host provisioning")

# Command groups
plans_app = typer.Typer(help="Commands for inspecting plans")
runs_app = typer.Typer(help="Commands for inspecting run history")

app.add_typer(plans_app, name="plans")
app.add_typer(runs_app, name="runs")


@app.callback()
def main() -> None:
    """Provisor CLI entry point."""
    pass


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _run_with_signals(
    orchestrator: Orchestrator, plan, host: HostContext, dry_run: bool
) -> Report:
    loop = asyncio.get_running_loop()
    installed = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, orchestrator.cancel)
            installed.append(signum)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Cannot install handler for signal {signum}")
    try:
        return await orchestrator.run(plan, host, dry_run=dry_run)
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


@app.command("run")
def run(
    plan: str = typer.Option(..., "--plan", "-p", help="Built-in plan name or YAML plan file"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report what would run without changing the host"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to a provisor.yaml file"),
    install_root: Optional[str] = typer.Option(None, "--install-root", help="Override the install root"),
    user: Optional[str] = typer.Option(None, "--user", help="User that will own provisioned files"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Maximum steps running at once"),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """
    Run a provisioning plan against this host.

    Steps whose work is already done are skipped, so running the same plan
    twice leaves the host unchanged the second time.

    Exit codes: 0 success, 1 aborted or invalid plan, 2 partial failure.

    Example:
        provisor run --plan workstation --dry-run
        sudo provisor run --plan adaptix --workers 4
    """
    config = load_config(config_path)
    _configure_logging("DEBUG" if verbose else config.log_level)

    updates = {}
    if install_root:
        updates["install_root"] = install_root
    if user:
        updates["user"] = user
    if updates:
        config = config.model_copy(update=updates)
    if workers:
        config = config.model_copy(
            update={"concurrency": config.concurrency.model_copy(update={"max_workers": workers})}
        )

    try:
        spec = resolve_plan(plan)
        host = HostContext.discover(config)
        built = spec.build(host, config)
    except InvalidPlanError as exc:
        typer.secho(f"Invalid plan: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    except ProvisorError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    orchestrator = Orchestrator.from_config(config, repository=get_repository(config=config))
    report = asyncio.run(_run_with_signals(orchestrator, built, host, dry_run))

    if as_json:
        typer.echo(report.model_dump_json(indent=2))
    else:
        for line in format_report(report):
            typer.echo(line)
        if not dry_run and report.exit_code == 0:
            for note in built.notes:
                typer.echo(note)
    raise typer.Exit(code=report.exit_code)


@plans_app.command("list")
def plans_list() -> None:
    """List the built-in plans."""
    for name, spec in sorted(available_plans().items()):
        typer.echo(f"{name}\t{len(spec.steps)} steps\t{spec.description or ''}")


@plans_app.command("show")
def plans_show(name: str) -> None:
    """
    Show the steps of a plan in declaration order.

    Example:
        provisor plans show adaptix
        # Output: dependencies (packages)
        #         cmake (snap) <- dependencies
    """
    try:
        spec = resolve_plan(name)
    except InvalidPlanError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Plan {spec.name}: {spec.description or ''}".rstrip())
    for step in spec.steps:
        deps = f" <- {', '.join(step.depends_on)}" if step.depends_on else ""
        typer.echo(f"{step.id} ({step.kind}){deps}")


@runs_app.command("list")
def runs_list() -> None:
    """List recorded runs with their final status."""
    repo = get_repository()
    runs = asyncio.run(repo.list_runs())
    if not runs:
        typer.echo("No runs found")
        return
    for record in runs:
        mode = "dry-run" if record.dry_run else "run"
        typer.echo(f"{record.run_id}\t{record.plan}\t{mode}\t{record.status}")


@runs_app.command("show")
def runs_show(run_id: str) -> None:
    """Show the recorded step results of a run."""
    repo = get_repository()
    record = asyncio.run(repo.get_run(run_id))
    if record is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Run {record.run_id} of {record.plan}: {record.status}")
    for step in record.steps:
        line = f"- {step.step_id}: {step.status} ({step.attempts} attempt(s))"
        if step.caused_by:
            line += f" caused by {step.caused_by}"
        if step.error:
            line += f" - {step.error}"
        typer.echo(line)


if __name__ == "__main__":
    app()
