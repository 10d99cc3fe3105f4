"""Robot mode commands for agent integration (JSON only)."""

import typer

from ami import __version__
from ami.exceptions import AmiError

from .helpers import emit_json, get_manager

robot_app = typer.Typer(help="Robot mode commands for agent integration")


@robot_app.command("status")
def robot_status():
    """Memory system status (JSON)."""
    try:
        manager = get_manager()
        count = manager.count()
    except (AmiError, ImportError) as e:
        emit_json({"status": "error", "message": f"Database initialization failed: {e}", "version": __version__})
        raise typer.Exit(1)

    emit_json({"status": "ok", "memories": count, "version": __version__})


@robot_app.command("checkpoint")
def robot_checkpoint():
    """Auto-checkpoint for compression hooks (JSON)."""
    try:
        manager = get_manager()
        head = manager.checkpoint("auto-checkpoint before compression")
    except (AmiError, ImportError) as e:
        emit_json({"status": "error", "message": str(e), "checkpointed": False})
        raise typer.Exit(1)

    emit_json({"status": "ok", "checkpointed": True, "commit": head})
