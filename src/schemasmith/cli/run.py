# Copyright (c) Syntropy Systems
"""schemasmith run command."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from schemasmith.config import Credentials, load_config
from schemasmith.controller import open_controller
from schemasmith.log import configure_logging
from schemasmith.models import (
    STAGE_ORDER,
    PipelineReport,
    PipelineRequest,
    QueryWindow,
    SchemaSource,
    Stage,
    StageStatus,
    StageToggles,
    TestInputSet,
)

console = Console()

STATUS_STYLES = {
    StageStatus.COMPLETED: "green",
    StageStatus.FAILED: "red",
    StageStatus.SKIPPED: "dim",
}

_TOGGLE_FIELDS = {
    Stage.INPUT_GENERATION: "generate_inputs",
    Stage.SCHEMA_GENERATION: "generate_schema",
    Stage.SCHEMA_ENHANCEMENT: "enhance_schema",
    Stage.SCHEMA_VALIDATION: "validate_schema",
    Stage.PR_CREATION: "create_pr",
}


def _load_json(path: Path | None, label: str) -> object | None:
    """Read a JSON substitute file, exiting with an error if it is unreadable."""
    if path is None:
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error:[/red] Cannot read {label} from {path}: {e}")
        raise typer.Exit(1) from e


def print_report(report: PipelineReport) -> None:
    """Print the stage table and the outcome of a run."""
    table = Table(title=f"Pipeline: {report.target}")
    table.add_column("Stage")
    table.add_column("Status")
    for stage in STAGE_ORDER:
        status = report.progress.status_of(stage)
        style = STATUS_STYLES[status]
        table.add_row(stage.value, f"[{style}]{status.value}[/{style}]")
    console.print(table)

    validation = report.artifacts.validation
    if validation is not None and validation.total_datasets:
        console.print(
            f"  [dim]validation:[/dim] {validation.valid_datasets}/"
            f"{validation.total_datasets} datasets valid"
        )

    if report.success:
        console.print("[green]Pipeline completed[/green]")
        if report.publish_url:
            console.print(f"  [dim]pull request:[/dim] {report.publish_url}")
    else:
        console.print(f"[red]Error:[/red] {report.error}")


def run(
    target: str = typer.Argument(..., help="Technical name of the workload, e.g. acme/demo-scraper"),
    repo: Optional[str] = typer.Option(
        None,
        "--repo", "-r",
        help="Repository URL or owner/name to open the pull request against",
    ),
    skip: Optional[list[Stage]] = typer.Option(
        None,
        "--skip",
        help="Stage to skip (repeatable)",
    ),
    source: SchemaSource = typer.Option(
        SchemaSource.TEST_RUNS,
        "--source",
        help="Infer the draft schema from test runs or from production datasets",
    ),
    views: bool = typer.Option(
        False,
        "--views/--no-views",
        help="Ask the model to design dataset views",
    ),
    test_inputs: Optional[Path] = typer.Option(
        None,
        "--test-inputs",
        help="JSON file with test inputs, used when input generation is skipped",
    ),
    draft_schema: Optional[Path] = typer.Option(
        None,
        "--draft-schema",
        help="JSON file with a draft schema, used when schema generation is skipped",
    ),
    refined_schema: Optional[Path] = typer.Option(
        None,
        "--refined-schema",
        help="JSON file with a refined schema, used when enhancement is skipped",
    ),
    days_back: int = typer.Option(5, "--days-back", help="Discovery lookback in days"),
    max_results: int = typer.Option(10, "--max-results", help="Maximum datasets to discover"),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to schemasmith.yaml",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Write the full report as JSON to this file",
    ),
    platform_token: Optional[str] = typer.Option(
        None,
        "--platform-token",
        envvar="APIFY_TOKEN",
        help="Workload platform token",
    ),
    github_token: Optional[str] = typer.Option(
        None,
        "--github-token",
        envvar="GITHUB_TOKEN",
        help="Source-control token",
    ),
    metrics_key: Optional[str] = typer.Option(
        None,
        "--metrics-key",
        envvar="REDASH_API_KEY",
        help="Metrics backend API key",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Run the schema pipeline for a workload.

    Stages run in order and the first failure stops the run:

        schemasmith run acme/demo-scraper --repo acme/demo-scraper

    Skipped stages take their output from the matching substitute file:

        schemasmith run acme/demo-scraper --skip input_generation --test-inputs inputs.json
    """
    configure_logging(verbose)
    config = load_config(config_path)
    credentials = Credentials(
        platform_token=platform_token,
        github_token=github_token,
        metrics_api_key=metrics_key,
    )

    skipped = set(skip or [])
    toggles = StageToggles(
        **{field: stage not in skipped for stage, field in _TOGGLE_FIELDS.items()}
    )

    raw_inputs = _load_json(test_inputs, "test inputs")
    raw_draft = _load_json(draft_schema, "draft schema")
    raw_refined = _load_json(refined_schema, "refined schema")

    try:
        request = PipelineRequest(
            target=target,
            stages=toggles,
            schema_source=source,
            want_views=views,
            window=QueryWindow(days_back=days_back, maximum_results=max_results),
            repository_url=repo,
            test_inputs=TestInputSet.model_validate(raw_inputs) if raw_inputs is not None else None,
            draft_schema=raw_draft,
            refined_schema=raw_refined,
        )
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid request: {e}")
        raise typer.Exit(1) from e

    with open_controller(config, credentials) as controller:
        report = controller.run(request)

    print_report(report)

    if output is not None:
        output.write_text(report.model_dump_json(indent=2, by_alias=True), encoding="utf-8")
        console.print(f"  [dim]report:[/dim] {output}")

    if not report.success:
        raise typer.Exit(1)
