"""Synchronize memory material from external sources."""

import typer
from rich.console import Console

from .helpers import ROBOT_HELP, emit_json, get_manager, handle_errors, ok

console = Console()

sync_app = typer.Typer(help="Synchronize memories from external sources")


@sync_app.command("mattermost")
def sync_mattermost(
    channel: str = typer.Option(..., "--channel", help="Mattermost Channel ID"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of messages to pull"),
    robot: bool = typer.Option(False, "--robot", help=ROBOT_HELP),
):
    """Pull recent channel messages and extract candidate facts for review.

    Requires MATTERMOST_URL and MATTERMOST_TOKEN in the environment.
    """
    from ami.integrations.mattermost import MattermostClient, join_messages

    with handle_errors(robot, console):
        manager = get_manager()
        client = MattermostClient.from_env(manager.config.mattermost_url)
        try:
            messages = client.get_recent_messages(channel, limit)
        finally:
            client.close()

        if not robot:
            console.print(f"[green]✓ Pulled {len(messages)} messages from Mattermost.[/green] Processing...")

        facts = manager.extract_facts(join_messages(messages)) if messages else []

    if robot:
        emit_json(ok(channel=channel, messages=len(messages), count=len(facts), facts=facts))
        return

    console.print(f"[green]✓ Extracted {len(facts)} potential facts for review:[/green]")
    for fact in facts:
        console.print(f"- {fact}")
