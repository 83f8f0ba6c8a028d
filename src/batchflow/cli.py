"""Batchflow Command Line Interface.

Entry point for the batchflow CLI tool.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

import typer
from pydantic import ValidationError

from batchflow import __version__
from batchflow.connectors.registry import ConnectorRegistry
from batchflow.contracts import BatchflowError, ConnectorKind, RehydrationError
from batchflow.core.config import BatchflowSettings, load_settings
from batchflow.core.logging import configure_logging
from batchflow.core.store import Repository, open_repository
from batchflow.engine import BatchExecutor, DataFlowService, HeartbeatScheduler

app = typer.Typer(
    name="batchflow",
    help="Batchflow: scheduled, cursor-tracked batch data flows.",
    no_args_is_help=True,
)

SETTINGS_OPTION = typer.Option(
    ...,
    "--settings",
    "-s",
    help="Path to settings YAML file.",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"batchflow version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Batchflow: scheduled, cursor-tracked batch data flows."""
    pass


# === Shared plumbing ===


def _load(settings: str) -> BatchflowSettings:
    """Load and validate settings, exiting with readable errors."""
    settings_path = Path(settings)
    try:
        config = load_settings(settings_path)
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None

    configure_logging(config.logging.level, json_output=config.logging.json_output)
    return config


@dataclass
class _Services:
    config: BatchflowSettings
    repository: Repository
    service: DataFlowService
    scheduler: HeartbeatScheduler


@contextmanager
def _services(settings: str) -> Iterator[_Services]:
    """Wire repository, service and scheduler; translate domain errors."""
    config = _load(settings)
    registry = ConnectorRegistry.with_builtins()
    repository = open_repository(config.database)
    service = DataFlowService(repository, registry)
    scheduler = HeartbeatScheduler(
        service,
        BatchExecutor(repository, registry),
        staleness=config.scheduler.staleness_threshold,
        heartbeat_seconds=config.scheduler.heartbeat_seconds,
    )
    try:
        yield _Services(config, repository, service, scheduler)
    except BatchflowError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    finally:
        repository.close()


def _format_time(value: datetime | None) -> str:
    return value.isoformat(timespec="seconds") if value else "-"


# === Configuration ===


@app.command()
def validate(settings: str = SETTINGS_OPTION) -> None:
    """Validate configuration and every flow's connectors without running."""
    config = _load(settings)
    registry = ConnectorRegistry.with_builtins()

    errors: list[str] = []
    for flow in config.flows:
        definition = flow.to_definition()
        slots = [
            (ConnectorKind.SOURCE, definition.source),
            (ConnectorKind.SINK, definition.sink),
        ]
        if definition.runtime is not None:
            slots.append((ConnectorKind.RUNTIME, definition.runtime))
        for kind, descriptor in slots:
            try:
                registry.deserialize(descriptor, kind)
            except RehydrationError as e:
                errors.append(f"{flow.name}.{kind.value}: {e}")

    if errors:
        typer.echo("Flow errors:", err=True)
        for error in errors:
            typer.echo(f"  - {error}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Configuration valid: {Path(settings).name}")
    typer.echo(f"  Database: {config.database.backend} ({config.database.url})")
    typer.echo(f"  Flows: {', '.join(f.name for f in config.flows) or '(none)'}")


@app.command()
def register(settings: str = SETTINGS_OPTION) -> None:
    """Register (or update) every flow declared in settings."""
    with _services(settings) as ctx:
        for flow_settings in ctx.config.flows:
            flow = ctx.service.register_definition(flow_settings.to_definition())
            typer.echo(f"Registered {flow.name} ({flow.status.value})")
        if not ctx.config.flows:
            typer.echo("No flows declared in settings.")


# === Scheduling ===


@app.command()
def heartbeat(settings: str = SETTINGS_OPTION) -> None:
    """Run one heartbeat: execute every due flow once."""
    with _services(settings) as ctx:
        result = ctx.scheduler.heartbeat()
    typer.echo(
        f"Heartbeat: {result.due_flows} due, {len(result.succeeded)} succeeded, "
        f"{len(result.failed)} failed, {len(result.skipped)} skipped"
    )
    if result.failed:
        raise typer.Exit(1)


@app.command()
def startup(settings: str = SETTINGS_OPTION) -> None:
    """Run the startup sweep (interrupted, overdue and missing runs)."""
    with _services(settings) as ctx:
        result = ctx.scheduler.startup()
    typer.echo(
        f"Startup: {result.interrupted} interrupted, {result.cancelled} cancelled, "
        f"{result.created} created"
    )


@app.command()
def serve(
    settings: str = SETTINGS_OPTION,
    max_cycles: int | None = typer.Option(
        None,
        "--max-cycles",
        "-n",
        help="Stop after this many heartbeats (default: run until interrupted).",
    ),
) -> None:
    """Run the startup sweep, then heartbeat on a fixed cadence."""
    with _services(settings) as ctx:
        try:
            cycles = ctx.scheduler.serve(max_cycles=max_cycles)
        except KeyboardInterrupt:
            typer.echo("Interrupted.")
            return
    typer.echo(f"Served {cycles} heartbeat(s).")


# === Administration ===


@app.command()
def enable(
    name: str = typer.Argument(..., help="Data flow name."),
    settings: str = SETTINGS_OPTION,
) -> None:
    """Activate a flow and reschedule it."""
    with _services(settings) as ctx:
        ctx.service.enable(name)
    typer.echo(f"Enabled {name}")


@app.command()
def disable(
    name: str = typer.Argument(..., help="Data flow name."),
    settings: str = SETTINGS_OPTION,
) -> None:
    """Deactivate a flow, cancelling its pending runs."""
    with _services(settings) as ctx:
        ctx.service.disable(name)
    typer.echo(f"Disabled {name}")


@app.command()
def trigger(
    name: str = typer.Argument(..., help="Data flow name."),
    settings: str = SETTINGS_OPTION,
) -> None:
    """Schedule a run of a flow for now."""
    with _services(settings) as ctx:
        run = ctx.service.trigger_run(name)
    typer.echo(f"Triggered run {run.id} for {name}")


@app.command()
def status(settings: str = SETTINGS_OPTION) -> None:
    """Show the scheduling state of every flow."""
    with _services(settings) as ctx:
        reports = ctx.service.status_report()

    if not reports:
        typer.echo("No data flows registered.")
        return

    typer.echo(f"{'NAME':24} {'STATUS':9} {'PENDING':>7} {'DUE':4} {'NEXT IN':>9}  LAST RUN")
    for report in reports:
        next_in = (
            f"{report.seconds_until_next:.0f}s"
            if report.seconds_until_next is not None
            else "-"
        )
        typer.echo(
            f"{report.name:24} {report.status:9} {report.pending_runs:>7} "
            f"{'yes' if report.due_now else 'no':4} {next_in:>9}  "
            f"{_format_time(report.last_run_at)}"
        )
        if report.last_error:
            typer.echo(f"    last error: {report.last_error}")


@app.command()
def runs(
    name: str = typer.Argument(..., help="Data flow name."),
    settings: str = SETTINGS_OPTION,
    limit: int = typer.Option(20, "--limit", "-n", help="Show at most this many runs."),
) -> None:
    """List a flow's runs, newest first."""
    with _services(settings) as ctx:
        flow = ctx.service.get(name)
        flow_runs = ctx.repository.list_runs(flow, limit=limit)

    if not flow_runs:
        typer.echo(f"No runs for {name}.")
        return

    for run in flow_runs:
        line = (
            f"{run.id}  {run.status.value:11} after={_format_time(run.run_after)} "
            f"records={run.records_processed}"
        )
        if run.first_id is not None:
            line += f" ids={run.first_id}..{run.last_id}"
        if run.error_message:
            line += f" error={run.error_message!r}"
        typer.echo(line)


@app.command()
def cleanup(
    settings: str = SETTINGS_OPTION,
    days: int | None = typer.Option(
        None,
        "--days",
        "-d",
        help="Delete finished runs older than this many days "
        "(default: scheduler.run_retention_days).",
    ),
) -> None:
    """Delete old finished runs."""
    with _services(settings) as ctx:
        retention = days if days is not None else ctx.config.scheduler.run_retention_days
        cutoff = datetime.now(UTC) - timedelta(days=retention)
        deleted = ctx.service.cleanup_old_runs(cutoff)
    typer.echo(f"Deleted {deleted} run(s) older than {retention} days.")


# Connectors subcommand group
connectors_app = typer.Typer(help="Connector registry commands.")
app.add_typer(connectors_app, name="connectors")


@connectors_app.command("list")
def connectors_list(
    kind: str | None = typer.Option(
        None,
        "--kind",
        "-k",
        help="Filter by kind (source, sink, runtime).",
    ),
) -> None:
    """List registered connector and runtime type tags."""
    valid_kinds = {k.value for k in ConnectorKind}

    if kind and kind not in valid_kinds:
        typer.echo(f"Error: Invalid kind '{kind}'.", err=True)
        typer.echo(f"Valid kinds: {', '.join(sorted(valid_kinds))}", err=True)
        raise typer.Exit(1)

    registry = ConnectorRegistry.with_builtins()
    kinds = [ConnectorKind(kind)] if kind else list(ConnectorKind)
    getters = {
        ConnectorKind.SOURCE: registry.get_source_by_name,
        ConnectorKind.SINK: registry.get_sink_by_name,
        ConnectorKind.RUNTIME: registry.get_runtime_by_name,
    }

    for k in kinds:
        typer.echo(f"\n{k.value.upper()}S:")
        for tag in registry.tags(k):
            cls = getters[k](tag)
            doc = (cls.__doc__ or "").strip().splitlines()
            typer.echo(f"  {tag:14} - {doc[0] if doc else cls.__name__}")

    typer.echo()  # Final newline


if __name__ == "__main__":
    app()
