"""Command-line entry point for Songbird."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import List, Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from .app_context import build_cascade, determine_paths, load_context
from .config import ConfigError, ConfigPaths, bootstrap
from .errors import CacheUnavailableError, LocationConfigurationError
from .local_calendar import LocalCalendar, TimezoneFinderResolver
from .logging import configure_logging, get_logger
from .models import RefreshOutcome, RefreshRequest, RefreshResult, TriggerKind
from .supervisor import Supervisor
from .web import create_app

app = typer.Typer(help="Songbird daily bird card refresher.")
cache_app = typer.Typer(help="Inspect and maintain the update cache.")
app.add_typer(cache_app, name="cache")
console = Console()

_CONFIG_DIR_HELP = "Base directory for config files (defaults to ~/.songbird)."


def _bootstrap_logging(
    ctx: typer.Context,
    verbose: bool,
    json_logs: bool,
    log_file: Optional[Path],
) -> None:
    """Initialise logging once per CLI invocation."""

    if ctx.obj is None:
        ctx.obj = {}

    if ctx.obj.get("_logging_configured"):
        return

    level = "DEBUG" if verbose else "INFO"
    configure_logging(level=level, json_output=json_logs, log_file=log_file)
    ctx.obj["logger"] = get_logger("songbird.cli")
    ctx.obj["verbose"] = verbose
    ctx.obj["_logging_configured"] = True


@app.callback(invoke_without_command=True)
def cli(  # noqa: D401 - Typer generates help text.
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON-formatted logs."),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        dir_okay=False,
        file_okay=True,
        writable=True,
        resolve_path=True,
        help="Optional file to append structured logs to.",
    ),
) -> None:
    """Songbird command group."""

    _bootstrap_logging(ctx, verbose, json_logs, log_file)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def _logger(ctx: typer.Context):
    obj = ctx.obj or {}
    return obj.get("logger", get_logger("songbird.cli"))


def _config_dir_option():
    return typer.Option(
        None,
        "--config-dir",
        dir_okay=True,
        file_okay=False,
        resolve_path=True,
        help=_CONFIG_DIR_HELP,
    )


def _load(ctx: typer.Context, config_dir: Optional[Path], event: str):
    log = _logger(ctx)
    try:
        paths = determine_paths(config_dir)
        context = load_context(paths)
    except ConfigError as exc:
        log.error(f"{event}.failed", error=str(exc))
        typer.echo(f"Error loading configuration: {exc}")
        raise typer.Exit(code=1) from exc

    if not (ctx.obj or {}).get("verbose"):
        logging.getLogger().setLevel(context.global_config.runtime.log_level.upper())
    return context


def _results_table(title: str, results: List[RefreshResult]) -> Table:
    table = Table(title=title)
    table.add_column("Card", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Bird")
    table.add_column("Location")
    table.add_column("Date")
    table.add_column("Tier")
    table.add_column("Detail")

    styles = {
        RefreshOutcome.SUCCESS: "green",
        RefreshOutcome.ALREADY_UPDATED: "yellow",
        RefreshOutcome.ERROR: "red",
    }
    for result in results:
        style = styles[result.outcome]
        detail = result.error or result.warning or result.message or ""
        table.add_row(
            result.card_id or "-",
            f"[{style}]{result.outcome.value}[/{style}]",
            result.bird or "-",
            result.location or "-",
            result.date or "-",
            result.tier.value if result.tier else "-",
            detail,
        )
    return table


@app.command()
def init(
    ctx: typer.Context,
    config_dir: Optional[Path] = typer.Option(
        None,
        "--config-dir",
        dir_okay=True,
        file_okay=False,
        writable=True,
        resolve_path=True,
        help=_CONFIG_DIR_HELP,
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config.yml"),
) -> None:
    """Create the configuration directory and a starter config.yml."""

    log = _logger(ctx)

    try:
        paths = ConfigPaths.from_base_dir(config_dir) if config_dir else ConfigPaths.default()
        report = bootstrap(paths, overwrite=force)
    except (ConfigError, OSError) as exc:
        log.error("init.failed", error=str(exc))
        raise typer.Exit(code=1) from exc

    typer.echo(f"Configuration directory: {paths.base_dir}")
    typer.echo(f"State directory: {paths.state_dir}")

    if report.global_config_created:
        if report.global_config_overwritten:
            typer.echo(f"Global config overwritten at: {paths.global_config}")
        else:
            typer.echo(f"Global config created at: {paths.global_config}")
            typer.echo("Update Yoto credentials before refreshing cards.")
    else:
        typer.echo(f"Global config already exists at: {paths.global_config}")
        typer.echo("Use --force to regenerate with default values.")

    log.info(
        "init.completed",
        base_dir=str(paths.base_dir),
        state_dir=str(paths.state_dir),
        global_config=str(paths.global_config),
        force=force,
        base_created=report.base_created,
        state_dir_created=report.state_dir_created,
        global_config_created=report.global_config_created,
        global_config_overwritten=report.global_config_overwritten,
    )


@app.command()
def serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, help="Bind address (defaults to server.host)."),
    port: Optional[int] = typer.Option(None, help="Bind port (defaults to server.port)."),
    scheduler: bool = typer.Option(True, help="Run the daily sweep and cache purge in-process."),
    config_dir: Optional[Path] = _config_dir_option(),
) -> None:
    """Serve the HTTP triggers, optionally alongside the in-process scheduler."""

    log = _logger(ctx)
    context = _load(ctx, config_dir, "serve")
    config = context.global_config

    try:
        orchestrator = context.build_orchestrator(logger=log)
    except ConfigError as exc:
        log.error("serve.failed", error=str(exc))
        typer.echo(f"Yoto setup failed: {exc}")
        raise typer.Exit(code=1) from exc

    supervisor: Optional[Supervisor] = None
    if scheduler:
        supervisor = Supervisor(config=config, orchestrator=orchestrator, cache=context.cache, logger=log)
        supervisor.start()

    api = create_app(config, orchestrator, context.cache)
    bind_host = host or config.server.host
    bind_port = port or config.server.port
    log.info("serve.start", host=bind_host, port=bind_port, scheduler=scheduler)
    try:
        uvicorn.run(api, host=bind_host, port=bind_port, log_level=config.runtime.log_level.lower())
    finally:
        if supervisor is not None:
            supervisor.shutdown()


@app.command()
def schedule(
    ctx: typer.Context,
    once: bool = typer.Option(False, "--once", help="Run the daily sweep immediately and exit."),
    config_dir: Optional[Path] = _config_dir_option(),
) -> None:
    """Run the daily sweep scheduler without the HTTP server."""

    log = _logger(ctx)
    context = _load(ctx, config_dir, "schedule")

    try:
        orchestrator = context.build_orchestrator(logger=log)
    except ConfigError as exc:
        log.error("schedule.failed", error=str(exc))
        typer.echo(f"Yoto setup failed: {exc}")
        raise typer.Exit(code=1) from exc

    supervisor = Supervisor(
        config=context.global_config,
        orchestrator=orchestrator,
        cache=context.cache,
        logger=log,
    )
    if not once:
        supervisor.run()
        return

    results = supervisor.run_sweep()
    if not results:
        console.print("[yellow]No cards configured for the daily sweep.[/yellow]")
        raise typer.Exit(code=1)
    console.print(_results_table("Daily Sweep", results))
    if any(result.outcome is RefreshOutcome.ERROR for result in results):
        raise typer.Exit(code=1)


@app.command()
def refresh(
    ctx: typer.Context,
    card_id: Optional[str] = typer.Argument(None, help="Card to refresh (defaults to yoto.default_card_id)."),
    ip: Optional[str] = typer.Option(None, "--ip", help="Client IP used for the location lookup."),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="Device timezone, e.g. America/Chicago."),
    config_dir: Optional[Path] = _config_dir_option(),
) -> None:
    """Refresh one card now, as a manual trigger."""

    log = _logger(ctx)
    context = _load(ctx, config_dir, "refresh")

    try:
        orchestrator = context.build_orchestrator(logger=log)
    except ConfigError as exc:
        log.error("refresh.failed", error=str(exc))
        typer.echo(f"Yoto setup failed: {exc}")
        raise typer.Exit(code=1) from exc

    result = orchestrator.refresh(
        RefreshRequest(
            trigger=TriggerKind.MANUAL,
            card_id=card_id,
            client_ip=ip,
            device_timezone=timezone,
        )
    )
    console.print(_results_table("Card Refresh", [result]))
    if result.outcome is RefreshOutcome.ERROR:
        raise typer.Exit(code=1)


@app.command()
def resolve(
    ctx: typer.Context,
    ip: Optional[str] = typer.Option(None, "--ip", help="Client IP to look up."),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="Device timezone to map."),
    scheduled: bool = typer.Option(
        False,
        "--scheduled",
        help="Resolve as the daily sweep would, falling back to the rotation.",
    ),
    config_dir: Optional[Path] = _config_dir_option(),
) -> None:
    """Show where the location cascade lands for the given signals."""

    log = _logger(ctx)
    context = _load(ctx, config_dir, "resolve")
    config = context.global_config

    cascade = build_cascade(config, logger=log)
    trigger = TriggerKind.SCHEDULED if scheduled else TriggerKind.MANUAL
    try:
        resolution = cascade.resolve(trigger, ip, timezone)
    except LocationConfigurationError as exc:
        typer.echo(f"Location could not be resolved: {exc}")
        raise typer.Exit(code=1) from exc

    location = resolution.location
    local_date, zone = LocalCalendar(TimezoneFinderResolver(), logger=log).local_date(location)

    table = Table(title="Location Cascade")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("Tier", resolution.tier.value)
    table.add_row("Location", location.label)
    table.add_row("Coordinates", f"{location.latitude:.4f}, {location.longitude:.4f}")
    table.add_row("Placeholder", "yes" if location.placeholder else "no")
    table.add_row("Timezone", zone)
    table.add_row("Local date", local_date)
    table.add_row("Cache key", context.cache.location_key(location.latitude, location.longitude))
    console.print(table)

    if resolution.is_fallback_default:
        console.print(f"[yellow]No signal resolved; using default location {location.label}.[/yellow]")


@cache_app.command("stats")
def cache_stats(
    ctx: typer.Context,
    config_dir: Optional[Path] = _config_dir_option(),
) -> None:
    """Show update cache statistics."""

    log = _logger(ctx)
    context = _load(ctx, config_dir, "cache.stats")

    try:
        stats = context.cache.stats()
    except CacheUnavailableError as exc:
        log.error("cache.stats.failed", error=str(exc))
        typer.echo(f"Cache unavailable: {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title="Update Cache")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for name, value in stats.items():
        table.add_row(name.replace("_", " "), str(value))
    console.print(table)


@cache_app.command("list")
def cache_list(
    ctx: typer.Context,
    card_id: Optional[str] = typer.Option(None, "--card", help="Only show records for this card."),
    config_dir: Optional[Path] = _config_dir_option(),
) -> None:
    """List refresh records held in the cache."""

    log = _logger(ctx)
    context = _load(ctx, config_dir, "cache.list")

    try:
        records = context.cache.records()
    except CacheUnavailableError as exc:
        log.error("cache.list.failed", error=str(exc))
        typer.echo(f"Cache unavailable: {exc}")
        raise typer.Exit(code=1) from exc

    if card_id:
        records = [record for record in records if record.card_id == card_id]

    if not records:
        console.print("[yellow]No refresh records cached.[/yellow]")
        return

    table = Table(title="Refresh Records")
    table.add_column("Card", style="cyan", no_wrap=True)
    table.add_column("Date")
    table.add_column("Location Key")
    table.add_column("City")
    table.add_column("Bird")
    table.add_column("Recorded At")
    for record in records:
        table.add_row(
            record.card_id,
            record.local_date,
            record.location_key,
            record.city or "-",
            record.bird_name,
            record.created_at,
        )
    console.print(table)


@cache_app.command("purge")
def cache_purge(
    ctx: typer.Context,
    before: Optional[datetime] = typer.Option(
        None,
        "--before",
        formats=["%Y-%m-%d"],
        help="Drop records dated before this day (defaults to the retention window).",
    ),
    config_dir: Optional[Path] = _config_dir_option(),
) -> None:
    """Remove stale refresh records."""

    log = _logger(ctx)
    context = _load(ctx, config_dir, "cache.purge")

    if before is not None:
        cutoff = before.date()
    else:
        cutoff = date.today() - timedelta(days=context.global_config.cache.retention_days)

    try:
        removed = context.cache.purge(cutoff)
    except CacheUnavailableError as exc:
        log.error("cache.purge.failed", error=str(exc))
        typer.echo(f"Cache unavailable: {exc}")
        raise typer.Exit(code=1) from exc

    log.info("cache.purge.completed", removed=removed, before=cutoff.isoformat())
    typer.echo(f"Removed {removed} record(s) dated before {cutoff.isoformat()}")


def main() -> None:
    """Run the Typer application."""

    app()


if __name__ == "__main__":  # pragma: no cover - direct execution convenience
    main()
