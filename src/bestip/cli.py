from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from datetime import timedelta
from typing import Any, Dict, Optional

import click
from aiohttp import web
from rich.console import Console
from rich.table import Table

from . import __version__
from .cli_errors import CLIError, UpdateError, handle_cli_errors
from .config import AppSettings
from .extractor import is_valid_ipv4
from .logging_config import setup_logging
from .output import generate_fast_list, generate_formatted_list, generate_ip_list
from .pipeline import Orchestrator
from .scheduler import UpdateScheduler
from .server import create_app

console = Console()


def _build_orchestrator(settings: AppSettings) -> Orchestrator:
    return Orchestrator.from_settings(settings)


def _settings(ctx: click.Context) -> AppSettings:
    return ctx.obj["settings"]


def _print_sources(results: list[Dict[str, Any]]) -> None:
    table = Table(title="Sources")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Matches / Error")
    for item in results:
        ok = item.get("status") == "success"
        table.add_row(
            item.get("name", "?"),
            "[green]success[/green]" if ok else "[red]error[/red]",
            str(item.get("count", 0)) if ok else str(item.get("error", "")),
        )
    console.print(table)


def _print_fast(fast_ips: list[Dict[str, Any]]) -> None:
    table = Table(title=f"Fastest {len(fast_ips)} IPs")
    table.add_column("#", justify="right")
    table.add_column("IP")
    table.add_column("Country")
    table.add_column("Colo")
    table.add_column("Latency", justify="right")
    for index, item in enumerate(fast_ips, start=1):
        table.add_row(
            str(index),
            item["ip"],
            item.get("country", ""),
            item.get("colo", ""),
            f"{item.get('latencyMs', 0):.0f}ms",
        )
    console.print(table)


@click.group()
@click.version_option(version=__version__)
@click.option("--storage", "storage_path", type=click.Path(dir_okay=False), default=None)
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR.")
@click.pass_context
def cli(ctx: click.Context, storage_path: Optional[str], log_level: Optional[str]) -> None:
    """
    bestip: Cloudflare candidate IP collector and latency ranker.
    """
    settings = AppSettings()
    if storage_path:
        settings = replace(settings, STORAGE_PATH=storage_path)
    if log_level:
        settings = replace(settings, LOG_LEVEL=log_level)
    setup_logging(settings.LOG_LEVEL, log_file=settings.LOG_FILE or None)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command()
@click.option("--fast-count", type=int, help="Number of fast IPs to keep.")
@click.option("--no-probe", is_flag=True, help="Only collect and geolocate.")
@click.option("--show-metrics", is_flag=True)
@click.pass_context
@handle_cli_errors(context="Update")
def update(ctx: click.Context, fast_count: Optional[int], no_probe: bool, show_metrics: bool) -> None:
    """Collect, geolocate and store IPs, then probe and store the fastest."""
    settings = _settings(ctx)
    if fast_count is not None:
        settings = replace(settings, FAST_IP_COUNT=fast_count)
    orchestrator = _build_orchestrator(settings)

    try:
        with console.status("Collecting IPs and running speed tests..."):
            if no_probe:
                result = asyncio.run(orchestrator.run_full_update())
                result["success"] = True
            else:
                result = asyncio.run(orchestrator.perform_update())
    finally:
        orchestrator.close()

    if not result.get("success"):
        raise UpdateError(f"{result.get('step')}: {result.get('error')}")

    _print_sources(result.get("results", []))
    click.echo(f"Collected {result['totalIPs']} IPs in {result['durationMs']}ms")
    if not no_probe:
        click.echo(f"Kept {result['fastIPsCount']} fast IPs")
    if show_metrics and result.get("metrics"):
        console.print(result["metrics"])


@cli.command("fast-update")
@click.option("--fast-count", type=int, help="Number of fast IPs to keep.")
@click.pass_context
@handle_cli_errors(context="Speed test")
def fast_update(ctx: click.Context, fast_count: Optional[int]) -> None:
    """Probe the stored candidates again and store the fastest."""
    settings = _settings(ctx)
    if fast_count is not None:
        settings = replace(settings, FAST_IP_COUNT=fast_count)
    orchestrator = _build_orchestrator(settings)
    try:
        with console.status("Running speed tests..."):
            result = asyncio.run(orchestrator.run_fast_update())
    finally:
        orchestrator.close()
    _print_fast(result["fastIPs"])


@cli.command()
@click.argument("ip")
@click.option("--country", default=None, help="Known country used when the trace has none.")
@click.pass_context
@handle_cli_errors(context="Probe")
def probe(ctx: click.Context, ip: str, country: Optional[str]) -> None:
    """Probe a single IP once."""
    if not is_valid_ipv4(ip):
        raise CLIError(f"Invalid IP: {ip}")
    orchestrator = _build_orchestrator(_settings(ctx))
    try:
        outcome = asyncio.run(orchestrator.probe_one(ip, country))
    finally:
        orchestrator.close()
    if not outcome.ok:
        raise CLIError(f"{ip}: {outcome.detail}")
    click.echo(json.dumps(outcome.value.to_dict(), indent=2))


@cli.command()
@click.option("--fast", "fast", is_flag=True, help="Show the fast snapshot.")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["json", "text", "formatted"]),
    default="text",
)
@click.pass_context
@handle_cli_errors(context="Show")
def show(ctx: click.Context, fast: bool, fmt: str) -> None:
    """Print a stored snapshot."""
    orchestrator = _build_orchestrator(_settings(ctx))
    snapshot = orchestrator.get_fast_snapshot() if fast else orchestrator.get_full_snapshot()
    if fmt == "json":
        click.echo(json.dumps(snapshot, indent=2))
    elif fast:
        click.echo(generate_fast_list(snapshot))
    elif fmt == "formatted":
        click.echo(generate_formatted_list(snapshot))
    else:
        click.echo(generate_ip_list(snapshot))


@cli.command()
@click.option("--host", default="0.0.0.0")
@click.option("--port", type=int, default=8080)
@click.option("--interval", type=int, default=None, help="Seconds between scheduled updates.")
@click.option("--no-schedule", is_flag=True, help="Only update on POST /update.")
@click.pass_context
@handle_cli_errors(context="Server")
def serve(
    ctx: click.Context, host: str, port: int, interval: Optional[int], no_schedule: bool
) -> None:
    """Serve the HTTP API, updating on a timer."""
    settings = _settings(ctx)
    orchestrator = _build_orchestrator(settings)
    scheduler = None
    if not no_schedule:
        seconds = interval if interval is not None else settings.UPDATE_INTERVAL
        scheduler = UpdateScheduler(orchestrator, interval=timedelta(seconds=seconds))
    try:
        web.run_app(create_app(orchestrator, scheduler), host=host, port=port)
    finally:
        orchestrator.close()


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":  # pragma: no cover - module execution convenience
    main()
