# Copyright (c) Syntropy Systems
"""schemasmith init command."""

from pathlib import Path

import typer
import yaml
from rich.console import Console

from schemasmith.config import CONFIG_FILENAME, default_config_dict

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Write a schemasmith.yaml with the default settings.

    Edit it to point at other service endpoints or to tune timeouts.
    Credentials are never stored in it; they come from the environment.
    """
    target = path.resolve()
    config_path = target / CONFIG_FILENAME

    if config_path.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {config_path}")
        return

    target.mkdir(parents=True, exist_ok=True)
    with config_path.open("w") as f:
        yaml.dump(default_config_dict(), f, default_flow_style=False, sort_keys=False)

    console.print(f"[green]Initialized schemasmith config:[/green] {config_path}")
    console.print("  [dim]credentials:[/dim] APIFY_TOKEN, GITHUB_TOKEN, REDASH_API_KEY")
