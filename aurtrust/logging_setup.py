"""Logging configuration for the CLI. Library code only uses getLogger()."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbosity: int = 0) -> None:
    """Route `aurtrust` logs to stderr through rich.

    0: warnings, 1: info, 2+: debug (including httpx request logs).
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger("aurtrust")
    root.handlers[:] = [handler]
    root.setLevel(level)
    root.propagate = False

    # httpx logs every request at INFO; only show it when asked for debug output
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbosity >= 2 else logging.WARNING)
