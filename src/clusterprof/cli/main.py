#!/usr/bin/env python3
"""
Cluster Profiling Command Line Interface

Usage:
    clusterprof --help
    clusterprof [--config PATH] [--log-level LEVEL] [command] [options]

Examples:
    clusterprof profile kinds
    clusterprof profile start cpu
    clusterprof profile stop --output profile.zip
    clusterprof profile capture mem --duration 30
    clusterprof serve --port 8000

Environment Variables:
    CLUSTERPROF_CONFIG_PATH: Path to configuration file
    CLUSTERPROF_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    CLUSTERPROF_ADMIN_ENDPOINT: Base URL of the cluster admin API
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from clusterprof import __version__
from clusterprof.cli.commands.profile import profile_app
from clusterprof.config import Settings, load_settings
from clusterprof.core.exceptions import ConfigurationError
from clusterprof.monitoring.logging import configure_logging

console = Console()
logger = logging.getLogger(__name__)

app = typer.Typer(
    name="clusterprof",
    help="Capture cluster-wide profiles from the command line.",
    no_args_is_help=True,
)
app.add_typer(profile_app, name="profile")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"clusterprof {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", envvar="CLUSTERPROF_CONFIG_PATH", help="Path to a YAML or JSON config file."
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l", help="Override the configured log level."),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit."
    ),
) -> None:
    """Load settings and configure logging for every command."""
    try:
        settings = load_settings(str(config) if config else None)
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/] {exc.message}")
        raise typer.Exit(code=2) from exc

    if log_level:
        settings = settings.model_copy(update={"log_level": log_level.upper()})

    configure_logging(
        level=settings.log_level,
        handler=RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False),
    )
    ctx.obj = settings


@app.command("serve")
def serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (defaults to api_host)."),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (defaults to api_port)."),
) -> None:
    """Run the profiling HTTP API."""
    import uvicorn

    from clusterprof.api.app import create_app

    settings: Settings = ctx.obj
    try:
        api = create_app(settings)
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/] {exc.message}")
        raise typer.Exit(code=2) from exc

    logger.info("Starting cluster profiling API")
    uvicorn.run(api, host=host or settings.api_host, port=port or settings.api_port, log_config=None)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
