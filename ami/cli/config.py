"""Configuration management CLI commands."""

import typer
from rich.console import Console

console = Console()

config_app = typer.Typer(help="Manage AMI configuration")


@config_app.command("show")
def config_show():
    """Show current configuration."""
    from ami.config import get_config_path, load_config, resolve_db_path, resolve_global_db_path

    config_path = get_config_path()
    config = load_config()

    console.print(f"[cyan]Configuration file:[/cyan] [dim]{config_path}[/dim]\n")
    console.print(f"[bold]Database:[/bold] {resolve_db_path(config)}")
    console.print(f"[bold]Global database:[/bold] {resolve_global_db_path(config)}\n")

    for key, value in config.model_dump(exclude={"db_path", "global_db_path"}).items():
        if value is None:
            console.print(f"  {key}: [dim]not set[/dim]")
        else:
            console.print(f"  {key}: {value}")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Configuration key (e.g. embedding_model)"),
    value: str = typer.Argument(help="New value"),
):
    """Set a configuration value.

    Examples:
        ami config set embedding_model "ollama:nomic-embed-text"
        ami config set context_token_budget 8000
    """
    from pydantic import ValidationError as PydanticValidationError

    from ami.config import get_config_path, set_config_value

    try:
        set_config_value(key, value)
    except PydanticValidationError as e:
        console.print(f"[red]Invalid value for {key}: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(1)
    except OSError as e:
        console.print(f"[red]Failed to save configuration: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ {key} set to:[/green] {value}")
    console.print(f"[dim]Saved to: {get_config_path()}[/dim]")
