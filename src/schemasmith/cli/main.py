# Copyright (c) Syntropy Systems
"""Main CLI entry point for schemasmith."""

import typer

from schemasmith.cli.doctor import doctor
from schemasmith.cli.init_cmd import init
from schemasmith.cli.run import run

app = typer.Typer(
    name="schemasmith",
    help=(
        "Generate, refine and validate a dataset schema for a workload, "
        "then open a pull request with it."
    ),
    no_args_is_help=True,
    add_completion=False,
)

# Register commands
_ = app.command()(init)
_ = app.command()(run)
_ = app.command()(doctor)


if __name__ == "__main__":
    app()
