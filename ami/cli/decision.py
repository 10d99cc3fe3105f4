"""Decision tracking CLI commands."""

from typing import List, Optional

import typer
from rich.console import Console

from ami.exceptions import ValidationError

from .helpers import ROBOT_HELP, emit_json, get_manager, handle_errors, ok, parse_csv

console = Console()

decision_app = typer.Typer(
    help="""Track decisions and reinforce memories that lead to good outcomes.

Examples:
  ami decision track "Use binary embeddings" --task "v0.4.0" --memories "abc,def"
  ami decision outcome abc-123 --outcome 0.9 --feedback "Worked perfectly"
  ami decision list v0.4.0"""
)


@decision_app.command("track")
def decision_track(
    text: List[str] = typer.Argument(help="Decision text"),
    task: str = typer.Option("", "--task", help="Task ID"),
    memories: Optional[str] = typer.Option(None, "--memories", "-m", help="Comma-separated memory IDs"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Track a new decision and the memories behind it."""
    with handle_errors(robot, console):
        manager = get_manager()
        decision = manager.track_decision(task, parse_csv(memories), " ".join(text))

    if robot:
        emit_json(ok(decision=decision.model_dump(mode="json")))
        return

    console.print(f"[green]✓ Decision tracked: {decision.id}[/green]")
    console.print(f"  Task: {decision.task_id}")
    console.print(f"  Text: {decision.decision_text}")
    if decision.memory_ids:
        console.print(f"  Linked memories: {len(decision.memory_ids)}")


@decision_app.command("outcome")
def decision_outcome(
    decision_id: str = typer.Argument(help="Decision ID"),
    outcome: str = typer.Option(..., "--outcome", "-o", help="Outcome value (0.0 to 1.0)"),
    feedback: str = typer.Option("", "--feedback", "-f", help="Optional feedback text"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Record the outcome of a decision.

    Outcomes above 0.8 reinforce every linked memory.
    """
    with handle_errors(robot, console):
        try:
            value = float(outcome)
        except ValueError:
            raise ValidationError(f"invalid outcome: {outcome}") from None
        manager = get_manager()
        result = manager.record_outcome(decision_id, value, feedback)

    if robot:
        emit_json(
            ok(
                decision_id=decision_id,
                outcome=value,
                reinforced=result.reinforced,
                failed=result.failed,
            )
        )
        return

    console.print(f"[green]✓ Outcome recorded: {value:.2f}[/green]")
    if result.was_reinforced:
        console.print(f"  → High success! {len(result.reinforced)} linked memories reinforced.")
    if result.failed:
        console.print(f"  [yellow]Could not reinforce: {', '.join(result.failed)}[/yellow]")


@decision_app.command("list")
def decision_list(
    task_id: Optional[str] = typer.Argument(None, help="Filter by task ID"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """List decisions, newest first."""
    with handle_errors(robot, console):
        manager = get_manager()
        decisions = manager.list_decisions(task_id)

    if robot:
        emit_json(ok(count=len(decisions), decisions=[d.model_dump(mode="json") for d in decisions]))
        return

    if not decisions:
        console.print("No decisions found.")
        return

    for d in decisions:
        outcome = f"{d.outcome:.2f}" if d.outcome > 0 else "pending"
        console.print(f"\n[cyan]{d.id}[/cyan]")
        console.print(f"  Task: {d.task_id}")
        console.print(f"  Decision: {d.decision_text}")
        console.print(f"  Outcome: {outcome}")
        if d.feedback:
            console.print(f"  Feedback: {d.feedback}")
        if d.memory_ids:
            console.print(f"  Linked memories: {len(d.memory_ids)}")
