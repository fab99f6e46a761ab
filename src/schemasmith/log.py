# Copyright (c) Syntropy Systems
"""Logging setup for the command line."""

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Send schemasmith and httpx log records to a rich handler on stderr.

    Library code only calls ``logging.getLogger(__name__)``; this is the one
    place handlers are attached.
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Request lines are only interesting when debugging
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
