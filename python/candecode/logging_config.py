"""Logging helpers for candecode."""
from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbose: bool = False, level: int | None = None) -> None:
    """Route log records through rich; DEBUG when *verbose*, else INFO."""

    resolved_level = level or (logging.DEBUG if verbose else logging.INFO)
    logging.basicConfig(
        level=resolved_level,
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[
            RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_time=False),
        ],
    )
    logging.getLogger("can").setLevel(logging.WARNING)
    logging.getLogger("cantools").setLevel(logging.WARNING)
