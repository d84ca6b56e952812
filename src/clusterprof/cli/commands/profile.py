"""Profiling CLI commands.

Purpose:
    Let operators start and stop cluster-wide profiling sessions and download
    the resulting archive without going through the HTTP API.
External Dependencies:
    Talks to the cluster through the configured admin gateway and renders
    output with the `rich` console library.
Fallback Semantics:
    Top-level failures are printed and the command exits with code 1. Per-node
    start failures are listed in the results table and do not change the exit
    code unless no node started.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from clusterprof.config import Settings, load_settings
from clusterprof.core.exceptions import ProfilingError
from clusterprof.core.models import ProfilingKind, ProfilingResultSet
from clusterprof.core.services.archive_delivery import (
    ArchiveStreamDeliverer,
    DeliveryResult,
    FileArchiveSink,
)
from clusterprof.core.services.profiling import ProfilingOrchestrator
from clusterprof.gateway import AdminGateway, create_gateway

logger = logging.getLogger(__name__)
console = Console()

profile_app = typer.Typer(name="profile", help="Capture cluster-wide profiles.", no_args_is_help=True)


def _settings(ctx: typer.Context) -> Settings:
    if isinstance(ctx.obj, Settings):
        return ctx.obj
    return load_settings()


def _orchestrator(settings: Settings, gateway: AdminGateway) -> ProfilingOrchestrator:
    return ProfilingOrchestrator(gateway, start_timeout=settings.start_timeout, stop_timeout=settings.stop_timeout)


def _render_results(result_set: ProfilingResultSet) -> Table:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Node")
    table.add_column("Status")
    table.add_column("Error", overflow="fold")

    for outcome in result_set.outcomes:
        status = "[green]started[/]" if outcome.success else "[red]failed[/]"
        table.add_row(outcome.node_name, status, outcome.error or "-")
    return table


def _report_start(kind: str, result_set: ProfilingResultSet) -> None:
    console.print(_render_results(result_set))
    console.print(
        f"{kind} profiling started on {len(result_set.succeeded)}/{result_set.total} nodes."
    )


async def _download(
    settings: Settings,
    orchestrator: ProfilingOrchestrator,
    output: Path,
) -> DeliveryResult:
    stream = await orchestrator.stop_session()
    sink = FileArchiveSink(output)
    deliverer = ArchiveStreamDeliverer(chunk_size=settings.chunk_size, filename=output.name)
    result = await deliverer.deliver(stream, sink)
    if not result.completed:
        await sink.discard()
    return result


async def _abandon_session(orchestrator: ProfilingOrchestrator) -> None:
    """Stop an interrupted capture so the cluster does not keep profiling."""
    try:
        stream = await orchestrator.stop_session()
    except ProfilingError as exc:
        logger.warning("Could not stop profiling after the capture was interrupted: %s", exc.message)
        return
    await stream.aclose()
    console.print("[yellow]Capture interrupted; profiling stopped and the archive discarded.[/]")


async def _run_start(settings: Settings, kind: str) -> ProfilingResultSet:
    gateway = create_gateway(settings)
    try:
        return await _orchestrator(settings, gateway).start_session(kind)
    finally:
        await gateway.aclose()


async def _run_stop(settings: Settings, output: Path) -> DeliveryResult:
    gateway = create_gateway(settings)
    try:
        return await _download(settings, _orchestrator(settings, gateway), output)
    finally:
        await gateway.aclose()


async def _run_capture(
    settings: Settings, kind: str, duration: float, output: Path
) -> tuple[ProfilingResultSet, DeliveryResult]:
    gateway = create_gateway(settings)
    try:
        orchestrator = _orchestrator(settings, gateway)
        result_set = await orchestrator.start_session(kind)
        _report_start(kind, result_set)
        console.print(f"Profiling for {duration:g}s...")
        try:
            await asyncio.sleep(duration)
        except (asyncio.CancelledError, KeyboardInterrupt):
            await _abandon_session(orchestrator)
            raise
        delivery = await _download(settings, orchestrator, output)
        return result_set, delivery
    finally:
        await gateway.aclose()


def _report_delivery(result: DeliveryResult, output: Path) -> None:
    if not result.completed:
        console.print(
            f"[bold red]Error:[/] archive download aborted after {result.bytes_sent} bytes: {result.error}"
        )
        raise typer.Exit(code=1)
    console.print(f"Profiling archive saved to [bold]{output}[/] ({result.bytes_sent} bytes).")


def _fail(exc: ProfilingError) -> NoReturn:
    logger.debug("Profiling command failed", exc_info=exc)
    console.print(f"[bold red]Error:[/] {exc.message}")
    raise typer.Exit(code=1) from exc


@profile_app.command("kinds")
def list_kinds() -> None:
    """List the accepted profiling types."""
    for kind in ProfilingKind:
        console.print(kind.value)


@profile_app.command("start")
def start(
    ctx: typer.Context,
    kind: str = typer.Argument(..., help="Profiling type: " + ", ".join(ProfilingKind.names())),
) -> None:
    """Start profiling on every cluster node."""
    settings = _settings(ctx)
    try:
        result_set = asyncio.run(_run_start(settings, kind))
    except ProfilingError as exc:
        _fail(exc)

    _report_start(kind, result_set)
    if result_set.total and not result_set.succeeded:
        raise typer.Exit(code=1)


@profile_app.command("stop")
def stop(
    ctx: typer.Context,
    output: Path = typer.Option(Path("profile.zip"), "--output", "-o", help="Where to save the archive."),
) -> None:
    """Stop profiling and download the archive."""
    settings = _settings(ctx)
    try:
        result = asyncio.run(_run_stop(settings, output))
    except ProfilingError as exc:
        _fail(exc)
    _report_delivery(result, output)


@profile_app.command("capture")
def capture(
    ctx: typer.Context,
    kind: str = typer.Argument(..., help="Profiling type: " + ", ".join(ProfilingKind.names())),
    duration: float = typer.Option(10.0, "--duration", "-d", min=0.0, help="Seconds to profile for."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to save the archive."),
) -> None:
    """Start profiling, wait, then stop and download the archive."""
    settings = _settings(ctx)
    output = output or Path(settings.archive_filename)
    try:
        _, delivery = asyncio.run(_run_capture(settings, kind, duration, output))
    except ProfilingError as exc:
        _fail(exc)
    _report_delivery(delivery, output)


__all__ = ["profile_app"]
