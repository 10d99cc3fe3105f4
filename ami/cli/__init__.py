"""AMI CLI application - main entry point."""

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ami.exceptions import AmiError

from .helpers import (
    ROBOT_HELP,
    emit_json,
    fail,
    get_manager,
    handle_errors,
    memories_to_dicts,
    memory_to_dict,
    ok,
    parse_csv,
    short_id,
)

app = typer.Typer(
    name="ami",
    help="Versioned long-term memory for autonomous agents",
    no_args_is_help=True,
)

# Global console for CLI messages - uses stdout
console = Console()

HELP_AGENTS = """# AMI Command Reference for AI Agents

> This tool manages your long-term memory using a versioned, metabolic architecture.
> Use it to store facts, decisions, and patterns so you don't burn tokens re-learning them.

## Quick Start Workflow

1. **Before a Task**: Get focused context
   `ami context "your task description" --limit 5 --robot`

2. **During a Task**: Store important discoveries
   `ami add "Decision: pin the parser to v2 for this module" --category working --tags technical`

3. **During a Task**: Track decisions with linked memories
   `ami decision track "Use binary embeddings" --task "v0.4.0" --memories "abc,def"`

4. **After a Task**: Record decision outcomes
   `ami decision outcome <id> --outcome 0.9 --feedback "Worked perfectly"`

5. **After a Task**: Clean up and promote
   `ami promote <memory-id>` (if it's a permanent team truth)

6. **Periodic Maintenance**: Reflect on episodic noise
   `ami reflect --limit 10 --hours 24`

## Memory Categories

- **Core**: Foundational truths (User name, identity). Use for facts that NEVER change.
- **Semantic**: Learned patterns/habits. Use for general knowledge gained over time.
- **Working**: Task-specific context. Use for notes on the current session.
- **Episodic**: Event logs. Use for "I did X at time Y".

## Decision Tracking

**Track a Decision:**
   `ami decision track "your decision text" --task "project-id" --memories "id1,id2"`

**Record Outcome:**
   `ami decision outcome <decision-id> --outcome 0.8 --feedback "Notes"`

**Synaptic Boost:** When outcome > 0.8, linked memories automatically get priority reinforcement.

## Conflicts

   `ami conflict resolve <id1> <id2>` (interactive) or add `--action keep1|keep2|merge|noop`

## Reflection

   `ami reflect --limit 10 --hours 24`

Identifies episodic noise and suggests semantic synthesis for consolidation.

## Robot Mode

ALWAYS use the `--robot` flag for programmatic integration.
It returns pure JSON to stdout with a `status` field (`ok` or `error`).

## Best Practices

- **Atomic Memories**: One fact per memory. Don't mix user preferences with technical specs.
- **Source Attribution**: Always use `--source` so future you knows WHY you believe a fact.
- **Aggressive Tagging**: Use tags for project IDs and concepts to make filtering faster.
- **Decision Tracking**: Link memories to decisions so successful choices reinforce useful knowledge.
- **Regular Reflection**: Use `ami reflect` to convert episodic noise into semantic facts.
"""


def _print_memory_list(memories, heading: str) -> None:
    console.print(f"[bold]{heading}[/bold]\n")
    if not memories:
        console.print("[yellow]No memories found.[/yellow]")
        return
    for i, m in enumerate(memories, 1):
        console.print(f"{i}. [cyan]\\[{m.category.value}][/cyan] {m.id}")
        console.print(f"   Content: {m.content}")
        console.print(f"   [dim]Priority: {m.priority:.1f} | Accessed {m.access_count} times[/dim]")
        if m.tags:
            console.print(f"   [dim]Tags: {', '.join(m.tags)}[/dim]")
        console.print()


@app.command()
def add(
    content: List[str] = typer.Argument(help="Memory content"),
    category: str = typer.Option(
        "episodic", "--category", "-c", help="Memory category (core|semantic|working|episodic)"
    ),
    owner: str = typer.Option("", "--owner", help="ID of the agent owning this memory"),
    team: str = typer.Option("", "--team", help="Team the memory belongs to"),
    priority: float = typer.Option(0.5, "--priority", "-p", help="Priority (0.0-1.0)"),
    tags: Optional[str] = typer.Option(None, "--tags", "-t", help="Comma-separated tags"),
    source: str = typer.Option("", "--source", help="Source of the memory"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Add a new memory."""
    with handle_errors(robot, console):
        manager = get_manager()
        memory = manager.add(
            " ".join(content),
            owner_id=owner,
            category=category,
            priority=priority,
            tags=parse_csv(tags),
            source=source,
            team_id=team,
        )

    if robot:
        emit_json(ok(memory=memory_to_dict(memory)))
    else:
        console.print(
            f"[green]✓ Added memory {memory.id}[/green] "
            f"(category: {memory.category.value}, priority: {memory.priority:.1f})"
        )


@app.command()
def update(
    memory_id: str = typer.Argument(help="Memory ID"),
    content: Optional[List[str]] = typer.Argument(None, help="New content"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="New category"),
    owner: Optional[str] = typer.Option(None, "--owner", help="New owner"),
    priority: Optional[float] = typer.Option(None, "--priority", "-p", help="New priority (0.0-1.0)"),
    tags: Optional[str] = typer.Option(None, "--tags", "-t", help="Replace tags (comma-separated)"),
    source: Optional[str] = typer.Option(None, "--source", help="New source"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Update an existing memory. Only the given fields change."""
    from ami.memory.manager import UpdateParams

    params = UpdateParams(
        id=memory_id,
        content=" ".join(content) if content else None,
        owner_id=owner,
        category=category,
        priority=priority,
        source=source,
        tags=parse_csv(tags) if tags is not None else None,
    )

    with handle_errors(robot, console):
        manager = get_manager()
        manager.update(params)

    if robot:
        emit_json(ok(message=f"updated memory {memory_id}"))
    else:
        console.print(f"[green]✓ Updated memory {memory_id}[/green]")


@app.command()
def recall(
    query: Optional[str] = typer.Argument(None, help="Search text"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum number of results"),
    tags: Optional[str] = typer.Option(None, "--tags", "-t", help="Filter by tags (all tags must match)"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Filter by category"),
    owner: Optional[str] = typer.Option(None, "--owner", help="Filter by memory owner"),
    team: Optional[str] = typer.Option(None, "--team", help="Filter by team"),
    decay: bool = typer.Option(False, "--decay", help="Use decay-weighted scoring for recall"),
    semantic: bool = typer.Option(False, "--semantic", help="Use embeddings-based semantic search"),
    include_deprecated: bool = typer.Option(False, "--include-deprecated", help="Include deprecated memories"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Recall memories by text, tags and category."""
    from ami.memory.manager import RecallOptions
    from ami.memory.schema import Category

    tag_list = parse_csv(tags)
    with handle_errors(robot, console):
        opts = RecallOptions(
            query=query or "",
            limit=limit,
            tags=tag_list,
            category=Category.parse(category) if category else None,
            owner_id=owner,
            team_id=team,
            with_decay=decay,
            semantic=semantic,
            include_deprecated=include_deprecated,
        )
        manager = get_manager()
        memories = manager.recall(opts)

    if robot:
        emit_json(
            ok(
                query=query or "",
                filters={"tags": tag_list, "category": category or "", "owner": owner or ""},
                count=len(memories),
                memories=memories_to_dicts(memories),
            )
        )
        return

    filters = []
    if query:
        filters.append(f"matching '{query}'")
    if tag_list:
        filters.append(f"with tags: {', '.join(tag_list)}")
    if category:
        filters.append(f"in category: {category}")
    description = " and ".join(filters) or "(all memories)"
    _print_memory_list(memories, f"Found {len(memories)} memory(ies) {description}:")


@app.command()
def catchup(
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum number of results"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Filter by category"),
    since: Optional[str] = typer.Option(None, "--since", help="Only memories created after (e.g. 12h, 7d, 2024-12-01)"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Catch up on recently created memories."""
    from ami.memory.manager import CatchupOptions
    from ami.memory.schema import Category

    with handle_errors(robot, console):
        opts = CatchupOptions(limit=limit, category=Category.parse(category) if category else None, since=since)
        manager = get_manager()
        memories = manager.catchup(opts)

    if robot:
        emit_json(ok(count=len(memories), memories=memories_to_dicts(memories)))
        return

    console.print(f"[bold]Recent memories ({len(memories)}):[/bold]\n")
    for i, m in enumerate(memories, 1):
        created = m.created_at.strftime("%Y-%m-%d %H:%M") if m.created_at else "-"
        console.print(f"{i}. [cyan]\\[{m.category.value}][/cyan] {m.id} [dim]({created})[/dim]")
        console.print(f"   {m.content}\n")


@app.command()
def history(
    memory_id: str = typer.Argument(help="Memory ID"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Show the version history of a memory."""
    with handle_errors(robot, console):
        manager = get_manager()
        versions = manager.history(memory_id)

    if robot:
        emit_json(ok(id=memory_id, history=[v.model_dump(mode="json") for v in versions]))
        return

    if not versions:
        console.print(f"[yellow]No history for memory {memory_id}[/yellow]")
        return

    table = Table(title=f"History for memory {memory_id}")
    table.add_column("Commit", style="cyan", no_wrap=True)
    table.add_column("Date", style="dim")
    table.add_column("Priority", justify="right")
    table.add_column("Status")
    table.add_column("Content")
    for v in versions:
        date = v.commit_date.strftime("%Y-%m-%d %H:%M") if v.commit_date else "-"
        table.add_row(v.commit_hash, date, f"{v.priority:.2f}", v.status.value, v.content)
    console.print(table)


@app.command()
def rollback(
    memory_id: str = typer.Argument(help="Memory ID"),
    commit_hash: str = typer.Argument(help="Commit to restore from"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Roll a memory back to its state at a given commit."""
    with handle_errors(robot, console):
        manager = get_manager()
        manager.rollback(memory_id, commit_hash)

    if robot:
        emit_json(ok(message=f"rolled back memory {memory_id} to {commit_hash}"))
    else:
        console.print(f"[green]✓ Rolled back memory {memory_id} to {commit_hash}[/green]")


@app.command()
def link(
    first: str = typer.Argument(help="Source memory ID, or 'show'"),
    second: str = typer.Argument(help="Target memory ID (or the memory to show links for)"),
    relation: str = typer.Option("related", "--relation", "-r", help="Relation type"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Link two memories, or list a memory's links.

    Examples:
        ami link ID1 ID2 --relation supports
        ami link show ID1
    """
    if first == "show":
        with handle_errors(robot, console):
            manager = get_manager()
            links = manager.links(second)
        if robot:
            emit_json(ok(id=second, count=len(links), links=[lk.model_dump() for lk in links]))
            return
        console.print(f"[bold]Links for {second}:[/bold]")
        for lk in links:
            console.print(f"- {lk.from_id} -> {lk.to_id} ({lk.relation})")
        return

    with handle_errors(robot, console):
        manager = get_manager()
        created = manager.link(first, second, relation)

    if robot:
        emit_json(ok(message=f"linked {first} to {second} as {created.relation}"))
    else:
        console.print(f"[green]✓ Linked {first} to {second} as {created.relation}[/green]")


@app.command()
def keystones(
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum number of results"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Show foundational memories (high priority and access)."""
    with handle_errors(robot, console):
        manager = get_manager()
        memories = manager.keystones(limit)

    if robot:
        emit_json(ok(count=len(memories), keystones=memories_to_dicts(memories)))
        return

    console.print(f"[bold]Keystone Memories ({len(memories)}):[/bold]\n")
    for i, m in enumerate(memories, 1):
        console.print(
            f"{i}. [cyan]\\[{m.category.value}][/cyan] {m.id} "
            f"(Priority: {m.priority:.1f}, Accesses: {m.access_count})"
        )
        console.print(f"   {m.content}\n")


@app.command()
def stats(robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP)):
    """Show memory statistics."""
    with handle_errors(robot, console):
        manager = get_manager()
        data = manager.stats()

    if robot:
        emit_json(ok(**data))
        return

    metrics = data["metrics"]
    lines = [f"[bold]Total Memories:[/bold] {data['total_memories']}", "", "[bold]Distribution by Category:[/bold]"]
    for category, count in sorted(data["distribution"].items()):
        lines.append(f"- {category:<10}: {count}")
    lines.extend(
        [
            "",
            "[bold]Metrics:[/bold]",
            f"- Avg Priority:    {metrics['avg_priority']:.2f}",
            f"- Avg Access:      {metrics['avg_access_count']:.2f}",
            f"- Avg Decay Score: {metrics['avg_decay_score']:.2f}",
        ]
    )
    console.print(Panel("\n".join(lines), title="AMI Memory Statistics", border_style="cyan"))


@app.command()
def context(
    task: Optional[List[str]] = typer.Argument(None, help="Task description"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum number of task-related memories"),
    tokens: int = typer.Option(4000, "--tokens", help="Maximum token budget for context"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Build token-budgeted prompt context for a task."""
    task_text = " ".join(task) if task else ""
    with handle_errors(robot, console):
        manager = get_manager()
        memories = manager.context(task_text, limit=limit, token_budget=tokens)

    if robot:
        emit_json(ok(task=task_text, budget=tokens, memories=memories_to_dicts(memories)))
        return

    console.print(f"[bold]Optimized Context for Task: {task_text} (Budget: {tokens} tokens)[/bold]\n")
    if not memories:
        console.print("[yellow]No relevant memories found.[/yellow]")
        return
    for m in memories:
        console.print(f"[cyan]\\[{m.category.value}][/cyan] {m.content}")


@app.command()
def promote(
    memory_id: Optional[str] = typer.Argument(None, help="Memory ID (omit with --auto)"),
    auto: bool = typer.Option(False, "--auto", help="Auto-promote memories meeting criteria"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show candidates without promoting"),
    path: Optional[Path] = typer.Option(None, "--path", help="Path to the global AMI store"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Promote memories to the global team store."""
    from ami.config import resolve_global_db_path

    with handle_errors(robot, console):
        manager = get_manager()
        global_path = path or resolve_global_db_path(manager.config)

        if not auto:
            if not memory_id:
                fail("memory ID required (unless using --auto)", robot, console)
            manager.get(memory_id)
            global_repo = _open_global(global_path)
            try:
                manager.promote(memory_id, global_repo)
            finally:
                global_repo.close()
            if robot:
                emit_json(ok(message=f"promoted memory {memory_id} to global store"))
            else:
                console.print(f"[green]✓ Promoted memory {memory_id} to global store ({global_path})[/green]")
            return

        candidates = manager.promotion_candidates()

    if not candidates:
        if robot:
            emit_json(ok(count=0, promoted=[]))
        else:
            console.print("[yellow]No memories meet the promotion criteria.[/yellow]")
        return

    if dry_run:
        if robot:
            emit_json(ok(dry_run=True, count=len(candidates), candidates=memories_to_dicts(candidates)))
            return
        console.print(f"Found {len(candidates)} candidate(s) for promotion:")
        for m in candidates:
            console.print(
                f"  - \\[{short_id(m.id)}] {m.content} "
                f"(access_count: {m.access_count}, priority: {m.priority:.2f}, category: {m.category.value})"
            )
        return

    if not robot and not yes and not typer.confirm(f"Promote {len(candidates)} memories to global brain?"):
        console.print("Promotion cancelled.")
        return

    promoted, failed = [], []
    with handle_errors(robot, console):
        global_repo = _open_global(global_path)
    try:
        for m in candidates:
            try:
                manager.promote(m.id, global_repo)
                promoted.append(m.id)
                if not robot:
                    console.print(f"[green]✓ Promoted {short_id(m.id)}[/green]")
            except AmiError as e:
                failed.append(m.id)
                if not robot:
                    console.print(f"[red]Error promoting {m.id}: {e}[/red]")
    finally:
        global_repo.close()

    if robot:
        emit_json(ok(count=len(promoted), promoted=promoted, failed=failed))
    if failed:
        raise typer.Exit(1)


def _open_global(path: Path):
    from ami.store.duckdb_store import DuckDBRepository

    return DuckDBRepository(path)


@app.command("help-agents")
def help_agents():
    """Output agent-optimized command reference."""
    print(HELP_AGENTS)


@app.command()
def delete(
    memory_id: str = typer.Argument(help="Memory ID"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Delete a memory by ID."""
    with handle_errors(robot, console):
        manager = get_manager()
        manager.delete(memory_id)

    if robot:
        emit_json(ok(message=f"deleted memory {memory_id}"))
    else:
        console.print(f"[green]✓ Deleted memory {memory_id}[/green]")


@app.command()
def tags(robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP)):
    """List all unique tags."""
    with handle_errors(robot, console):
        manager = get_manager()
        all_tags = manager.tags()

    if robot:
        emit_json(ok(tags=all_tags))
        return

    console.print("[bold]Unique Tags:[/bold]")
    for tag in all_tags:
        console.print(f"- {tag}")


@app.command()
def checkpoint(
    description: Optional[List[str]] = typer.Argument(None, help="Checkpoint description"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Create a version checkpoint of the current state."""
    text = " ".join(description) if description else ""
    with handle_errors(robot, console):
        manager = get_manager()
        head = manager.checkpoint(text)

    if robot:
        emit_json(ok(commit=head))
    else:
        console.print(f"[green]✓ Checkpointed current state[/green] [dim]{head or '(no commits yet)'}[/dim]")


@app.command()
def reflect(
    hours: int = typer.Option(24, "--hours", help="Hours to look back"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum number of memories to reflect on"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Reflect on recent episodic memories and suggest synthesis."""
    from ami.memory.reflection import SYNTHESIS_PROMPT, format_reflection

    with handle_errors(robot, console):
        manager = get_manager()
        memories = manager.reflect(hours=hours, limit=limit)

    if robot:
        emit_json(ok(hours=hours, count=len(memories), memories=memories_to_dicts(memories), prompt=SYNTHESIS_PROMPT))
        return

    if not memories:
        console.print("No episodic memories found for reflection.")
        return
    # Plain print keeps the prompt copy-pasteable
    print(format_reflection(memories, hours))


@app.command()
def version():
    """Show version information."""
    from ami import __version__

    console.print(f"AMI version {__version__}")


# Register subcommands from separate modules
from .config import config_app  # noqa: E402
from .conflict import conflict_app  # noqa: E402
from .decision import decision_app  # noqa: E402
from .pairing import pairing_app  # noqa: E402
from .robot import robot_app  # noqa: E402
from .sync import sync_app  # noqa: E402

app.add_typer(decision_app, name="decision")
app.add_typer(conflict_app, name="conflict")
app.add_typer(robot_app, name="robot")
app.add_typer(pairing_app, name="pairing")
app.add_typer(sync_app, name="sync")
app.add_typer(config_app, name="config")


def main():
    app()
