# Copyright (c) Syntropy Systems
"""schemasmith doctor command."""

from rich.console import Console

from schemasmith.config import Credentials, find_config_file, get_global_config_dir, load_config

console = Console()

# Credential attribute, environment variable, stages that need it
_CREDENTIALS = (
    ("platform_token", "APIFY_TOKEN", "input generation, schema generation, enhancement, validation"),
    ("metrics_api_key", "REDASH_API_KEY", "production sampling and dataset discovery"),
    ("github_token", "GITHUB_TOKEN", "pull request creation"),
)


def doctor() -> None:
    """Check schemasmith setup and diagnose issues.

    Verifies:
    - which config file is in effect
    - which credentials are present
    """
    issues: list[str] = []
    warnings: list[str] = []

    config_path = find_config_file()
    if config_path is None:
        global_config = get_global_config_dir() / "config.yaml"
        config_path = global_config if global_config.exists() else None

    if config_path is None:
        console.print("[dim]•[/dim] No schemasmith.yaml found, using defaults")
        console.print("  Run [bold]schemasmith init[/bold] to write one")
    else:
        console.print(f"[green]✓[/green] Config: {config_path}")

    config = load_config(config_path)
    console.print(f"[dim]•[/dim] Platform: {config.platform_url}")
    console.print(f"[dim]•[/dim] Model: {config.llm_model}")

    credentials = Credentials.from_env()
    for attribute, variable, used_by in _CREDENTIALS:
        if getattr(credentials, attribute):
            console.print(f"[green]✓[/green] {variable} is set")
        elif attribute == "platform_token":
            console.print(f"[red]✗[/red] {variable} is not set ({used_by})")
            issues.append(f"{variable} missing")
        else:
            console.print(f"[yellow]⚠[/yellow] {variable} is not set ({used_by})")
            warnings.append(f"{variable} missing")

    # Summary
    console.print()
    if issues:
        console.print(f"[red]Found {len(issues)} issue(s)[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
    elif warnings:
        console.print(f"[yellow]Found {len(warnings)} warning(s)[/yellow]")
        for warning in warnings:
            console.print(f"  - {warning}")
    else:
        console.print("[green]All checks passed[/green]")
