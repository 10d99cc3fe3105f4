"""Session pairing CLI commands."""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

console = Console()

pairing_app = typer.Typer(help="Manage the session pairing daemon")


def _socket_path(socket: Optional[Path]) -> Path:
    if socket:
        return socket
    from ami.config import load_config

    return load_config().pairing_socket


@pairing_app.command("start")
def pairing_start(
    task: str = typer.Option("default", "--task", help="Task ID to associate with the session"),
    socket: Optional[Path] = typer.Option(None, "--socket", help="Unix socket path"),
):
    """Start the pairing daemon (runs until interrupted)."""
    from ami.pairing import PairingListener

    socket_path = _socket_path(socket)
    listener = PairingListener(socket_path, task_id=task)

    async def run():
        await listener.start()
        console.print(f"[green]✓ Pairing daemon started at {socket_path} (Task: {task})[/green]")
        console.print("Listening for tool reports...")
        await listener.serve_forever()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Pairing daemon stopped[/yellow]")
    except OSError as e:
        console.print(f"[red]Error starting pairing daemon: {e}[/red]")
        raise typer.Exit(1)


@pairing_app.command("report")
def pairing_report(
    action: List[str] = typer.Argument(help="Action description"),
    source: str = typer.Option("cli", "--source", "-s", help="Tool or agent reporting the action"),
    task: str = typer.Option("default", "--task", help="Task ID"),
    socket: Optional[Path] = typer.Option(None, "--socket", help="Unix socket path"),
):
    """Report an action to a running pairing daemon (no-op if none is running)."""
    from ami.pairing import PairingAction, report_action

    delivered = report_action(
        PairingAction(task_id=task, action=" ".join(action), source=source),
        _socket_path(socket),
    )
    if not delivered:
        console.print("[dim]No pairing daemon running[/dim]")
