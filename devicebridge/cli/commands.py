"""CLI commands for devicebridge.

Every command opens the local device for the duration of one ``asyncio.run``,
awaits a single device operation and prints the outcome.
"""

import asyncio
import sys
from typing import Any, Awaitable, Callable, List

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from devicebridge import __version__
from devicebridge.utils.exceptions import DeviceBridgeError, classify_exception

app = typer.Typer(
    name="devicebridge",
    help="devicebridge - process control for the local device",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"devicebridge v{__version__}")
        raise typer.Exit()


_log_options: dict[str, Any] = {"verbose": False, "logs": None}


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Print debug logs to stderr"),
    logs: bool = typer.Option(None, "--logs/--no-logs", help="Write ~/.devicebridge/logs/devicebridge.log (default: logging.file)"),
):
    """devicebridge - process control for the local device."""
    _log_options["verbose"] = verbose
    _log_options["logs"] = logs


def _configure_logging(cfg: Any) -> None:
    from devicebridge.utils.logging_utils import ensure_rotating_log_file

    logs = cfg.logging.file if _log_options["logs"] is None else _log_options["logs"]
    if _log_options["verbose"]:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG", format="<dim>{time:HH:mm:ss.SSS}</dim> | <level>{level: <8}</level> | <level>{message}</level>")
        logger.enable("devicebridge")
    elif logs:
        logger.enable("devicebridge")
    else:
        logger.disable("devicebridge")
    if logs:
        ensure_rotating_log_file("devicebridge", level=cfg.logging.level)


def _run_on_device(action: Callable[[Any], Awaitable[Any]]) -> Any:
    """Open the local device, run action on it and map failures to exit code 1."""
    from devicebridge.bootstrap import local_device
    from devicebridge.config.access import get_config

    try:
        cfg = get_config()
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    _configure_logging(cfg)

    async def runner() -> Any:
        async with local_device(cfg) as device:
            return await action(device)

    try:
        return asyncio.run(runner())
    except (DeviceBridgeError, TypeError) as e:
        code, category = classify_exception(e)
        logger.error("Command failed ({}, {}): {}", code, category.value, e)
        message = e.message if isinstance(e, DeviceBridgeError) else str(e)
        console.print(f"[red]Error:[/red] {message}")
        raise typer.Exit(1)


# ============================================================================
# Device information
# ============================================================================


@app.command()
def info():
    """Show the local device."""

    async def action(device):
        return device.id, device.name, device.type

    device_id, name, dtype = _run_on_device(action)
    console.print(f"[cyan]{name}[/cyan] (id {device_id}, type {dtype})")


@app.command()
def ps():
    """List running processes."""

    async def action(device):
        processes = await device.enumerate_processes()
        rows = [(process.pid, process.name) for process in processes]
        for process in processes:
            process.close()
        return rows

    rows = _run_on_device(action)
    table = Table(title="Processes")
    table.add_column("PID", style="cyan", justify="right")
    table.add_column("Name")
    for pid, name in rows:
        table.add_row(str(pid), name)
    console.print(table)


@app.command()
def apps():
    """List installed applications."""

    async def action(device):
        applications = await device.enumerate_applications()
        rows = [(a.identifier, a.name, a.pid) for a in applications]
        for application in applications:
            application.close()
        return rows

    rows = _run_on_device(action)
    if not rows:
        console.print("No applications.")
        return
    table = Table(title="Applications")
    table.add_column("Identifier", style="cyan")
    table.add_column("Name")
    table.add_column("PID", justify="right")
    for identifier, name, pid in rows:
        table.add_row(identifier, name, str(pid) if pid else "[dim]-[/dim]")
    console.print(table)


@app.command()
def frontmost():
    """Show the frontmost application."""

    async def action(device):
        application = await device.get_frontmost_application()
        if application is None:
            return None
        with application:
            return application.identifier, application.name, application.pid

    row = _run_on_device(action)
    if row is None:
        console.print("No frontmost application.")
        return
    identifier, name, pid = row
    console.print(f"[cyan]{identifier}[/cyan] {name} (pid {pid})")


# ============================================================================
# Process control
# ============================================================================


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def spawn(
    argv: List[str] = typer.Argument(..., help="Program and its arguments"),
):
    """Spawn a program and resume it."""

    async def action(device):
        pid = await device.spawn(argv)
        await device.resume(pid)
        return pid

    pid = _run_on_device(action)
    console.print(f"[green]✓[/green] Spawned {argv[0]} as pid {pid}")


@app.command()
def resume(pid: int = typer.Argument(..., help="Process id")):
    """Resume a stopped process."""

    async def action(device):
        await device.resume(pid)

    _run_on_device(action)
    console.print(f"[green]✓[/green] Resumed {pid}")


@app.command()
def kill(pid: int = typer.Argument(..., help="Process id")):
    """Kill a process."""

    async def action(device):
        await device.kill(pid)

    _run_on_device(action)
    console.print(f"[green]✓[/green] Killed {pid}")


@app.command()
def attach(pid: int = typer.Argument(..., help="Process id")):
    """Attach to a process, then detach again."""

    async def action(device):
        session = await device.attach(pid)
        with session:
            detached = asyncio.get_running_loop().create_future()
            session.events.on("detached", lambda reason: detached.done() or detached.set_result(reason))
            attached_pid = session.pid
            await session.detach()
            reason = await asyncio.wait_for(detached, timeout=5.0)
        return attached_pid, reason

    attached_pid, reason = _run_on_device(action)
    console.print(f"[green]✓[/green] Attached to {attached_pid}, detached ({reason})")


if __name__ == "__main__":
    app()
