"""CLI helper functions."""

import json
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import typer
from rich.console import Console

from ami.console import get_error_console
from ami.exceptions import AmiError
from ami.memory.schema import Memory

ROBOT_HELP = "Robot mode: output JSON"


def emit_json(data: Any) -> None:
    """Write JSON to stdout.

    Uses plain print to avoid Rich wrapping that breaks JSON.
    """
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def memory_to_dict(memory: Memory) -> Dict[str, Any]:
    return memory.model_dump(mode="json")


def memories_to_dicts(memories: List[Memory]) -> List[Dict[str, Any]]:
    return [memory_to_dict(m) for m in memories]


def ok(**fields) -> Dict[str, Any]:
    return {"status": "ok", **fields}


def fail(message: str, robot: bool, console: Console, **fields) -> None:
    """Report an error in the active output mode and exit non-zero."""
    if robot:
        emit_json({"status": "error", "message": message, **fields})
    else:
        get_error_console(robot, console).print(f"[red]Error: {message}[/red]")
    raise typer.Exit(1)


@contextmanager
def handle_errors(robot: bool, console: Console) -> Iterator[None]:
    """Turn AMI failures into the CLI error contract (robot JSON or red text, exit 1)."""
    try:
        yield
    except AmiError as e:
        fail(str(e), robot, console)
    except ImportError as e:
        fail(str(e), robot, console)


def parse_csv(value: Optional[str]) -> List[str]:
    """Split a comma-separated option into trimmed, non-empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def get_manager():
    """Open the local memory manager (lazy import keeps --help fast)."""
    from ami.memory.manager import get_memory_manager

    return get_memory_manager()


def short_id(memory_id: str) -> str:
    return memory_id[:8]
