"""Conflict resolution CLI commands."""

from typing import Optional

import typer
from rich.console import Console

from ami.exceptions import ValidationError

from .helpers import ROBOT_HELP, emit_json, get_manager, handle_errors, ok

console = Console()

conflict_app = typer.Typer(help="Detect and resolve conflicting memories")


@conflict_app.command("resolve")
def conflict_resolve(
    first_id: str = typer.Argument(help="First memory ID"),
    second_id: str = typer.Argument(help="Second memory ID"),
    action: Optional[str] = typer.Option(
        None, "--action", "-a", help="keep1, keep2, merge or noop (prompts when omitted)"
    ),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Resolve a conflict between two memories."""
    from ami.memory.conflict import MENU, ConflictAction, check_distinct

    with handle_errors(robot, console):
        manager = get_manager()
        check_distinct(first_id, second_id)
        m1 = manager.get(first_id)
        m2 = manager.get(second_id)

        if action is None:
            if robot:
                raise ValidationError("--action is required in robot mode")
            for label, memory in (("Memory 1", m1), ("Memory 2", m2)):
                console.print(f"[bold]{label}:[/bold]")
                console.print(f"  ID: {memory.id}")
                console.print(f"  Content: {memory.content}")
                console.print(f"  Category: {memory.category.value}\n")

            console.print("[bold]Resolution options:[/bold]")
            for number, (_, description) in enumerate(MENU, 1):
                console.print(f"{number}. {description}")
            action = typer.prompt("\nSelect option [1-4]")

        chosen = ConflictAction.from_choice(action)
        result = manager.resolve_conflict(first_id, second_id, chosen)

    if robot:
        emit_json(
            ok(
                action=result.action.value,
                deprecated=result.deprecated,
                merged_into=result.merged_into or None,
            )
        )
        return

    if result.action == ConflictAction.NOOP:
        console.print("No action taken.")
    elif result.action == ConflictAction.MERGE:
        console.print(f"[green]✓ Merged into {result.merged_into}, deprecated {', '.join(result.deprecated)}[/green]")
    else:
        console.print(f"[green]✓ Deprecated {', '.join(result.deprecated)}[/green]")
