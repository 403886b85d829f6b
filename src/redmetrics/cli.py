"""Command-line interface for redmetrics.

Commands:
    redmetrics show: Print the exposition text of every stored metric
    redmetrics families: Summarize stored metric families
    redmetrics push / push-add / delete: Talk to a push gateway
    redmetrics flush: Delete every stored metric
    redmetrics serve: Serve the metrics endpoint
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from redmetrics.config import ConfigError, MetricsConfig
from redmetrics.core import MetricsError
from redmetrics.exposition import generate_latest
from redmetrics.push import PushGateway
from redmetrics.registry import CollectorRegistry
from redmetrics.server import MetricsServer
from redmetrics.storage import create_storage

app = typer.Typer(
    name="redmetrics",
    help="Redis-backed Prometheus metrics shared across processes",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


# =============================================================================
# Type Aliases
# =============================================================================

ConfigOpt = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="YAML or JSON configuration file"),
]

JobOpt = Annotated[
    Optional[str],
    typer.Option("--job", "-j", help="Job name (defaults to the configured push job)"),
]

GroupOpt = Annotated[
    Optional[list[str]],
    typer.Option("--group", "-g", help="Grouping label as label=value, repeatable"),
]

GatewayOpt = Annotated[
    Optional[str],
    typer.Option("--gateway", help="Push gateway URL the job name is appended to"),
]


# =============================================================================
# Helper Functions
# =============================================================================


def load_config(path: Path | None) -> MetricsConfig:
    """Load configuration from a file, or from the environment."""
    try:
        if path is not None:
            return MetricsConfig.from_file(path)
        return MetricsConfig.from_environment()
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)


def build_registry(config: MetricsConfig) -> CollectorRegistry:
    return CollectorRegistry(create_storage("redis", config=config.redis))


def parse_grouping(pairs: list[str] | None) -> dict[str, str]:
    """Parse ``label=value`` pairs, keeping their order."""
    grouping: dict[str, str] = {}
    for pair in pairs or []:
        label, sep, value = pair.partition("=")
        if not sep or not label:
            raise typer.BadParameter(f"Expected label=value, got {pair!r}", param_hint="--group")
        grouping[label] = value
    return grouping


def build_gateway(config: MetricsConfig, gateway: str | None) -> PushGateway:
    return PushGateway(
        gateway or config.push_gateway_url,
        connect_timeout=config.push_connect_timeout,
        read_timeout=config.push_read_timeout,
    )


def fail(error: Exception) -> NoReturn:
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(1)


# =============================================================================
# Commands
# =============================================================================


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Redis-backed Prometheus metrics shared across processes."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command(name="show")
def show_cmd(config_file: ConfigOpt = None) -> None:
    """Print every stored metric in the text exposition format."""
    config = load_config(config_file)
    try:
        text = generate_latest(build_registry(config))
    except MetricsError as e:
        fail(e)
    typer.echo(text, nl=False)


@app.command(name="families")
def families_cmd(config_file: ConfigOpt = None) -> None:
    """Summarize stored metric families."""
    config = load_config(config_file)
    try:
        families = build_registry(config).collect()
    except MetricsError as e:
        fail(e)

    if not families:
        console.print("[yellow]No metrics stored.[/yellow]")
        return

    table = Table(title=f"Metric families ({config.redis.prefix})")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Labels")
    table.add_column("Series", justify="right")
    table.add_column("Help")
    for family in families:
        table.add_row(
            family.name,
            family.type.value,
            ", ".join(family.label_names),
            str(len(family.samples)),
            family.help,
        )
    console.print(table)


@app.command(name="push")
def push_cmd(
    config_file: ConfigOpt = None,
    job: JobOpt = None,
    group: GroupOpt = None,
    gateway: GatewayOpt = None,
) -> None:
    """Push every metric, replacing all series of the job."""
    config = load_config(config_file)
    grouping = parse_grouping(group)
    try:
        build_gateway(config, gateway).push(build_registry(config), job or config.push_job, grouping)
    except MetricsError as e:
        fail(e)
    typer.echo(f"Pushed to job {job or config.push_job}")


@app.command(name="push-add")
def push_add_cmd(
    config_file: ConfigOpt = None,
    job: JobOpt = None,
    group: GroupOpt = None,
    gateway: GatewayOpt = None,
) -> None:
    """Push every metric, replacing only series with the same names."""
    config = load_config(config_file)
    grouping = parse_grouping(group)
    try:
        build_gateway(config, gateway).push_add(
            build_registry(config), job or config.push_job, grouping
        )
    except MetricsError as e:
        fail(e)
    typer.echo(f"Pushed to job {job or config.push_job}")


@app.command(name="delete")
def delete_cmd(
    config_file: ConfigOpt = None,
    job: JobOpt = None,
    group: GroupOpt = None,
    gateway: GatewayOpt = None,
) -> None:
    """Delete every series of a job from the push gateway."""
    config = load_config(config_file)
    grouping = parse_grouping(group)
    try:
        build_gateway(config, gateway).delete(job or config.push_job, grouping)
    except MetricsError as e:
        fail(e)
    typer.echo(f"Deleted job {job or config.push_job}")


@app.command(name="flush")
def flush_cmd(
    config_file: ConfigOpt = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Do not ask for confirmation"),
    ] = False,
) -> None:
    """Delete every stored metric of the configured prefix."""
    config = load_config(config_file)
    if not yes:
        typer.confirm(f"Delete every metric under {config.redis.prefix}?", abort=True)
    try:
        build_registry(config).storage.flush()
    except MetricsError as e:
        fail(e)
    typer.echo(f"Flushed {config.redis.prefix}")


@app.command(name="serve")
def serve_cmd(
    config_file: ConfigOpt = None,
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Bind port")] = None,
) -> None:
    """Serve the metrics endpoint until interrupted."""
    config = load_config(config_file)
    server = MetricsServer(
        build_registry(config),
        host=host or config.http_host,
        port=port if port is not None else config.http_port,
        path=config.http_path,
    )
    typer.echo(f"Serving metrics at {server.url}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    app()
