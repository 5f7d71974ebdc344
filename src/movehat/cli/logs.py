"""Logging setup for CLI runs: rich-formatted records on stderr."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_LOGGER_NAME = "movehat"


def configure_logging(verbose: bool = False, *, level: int | None = None) -> None:
    """Attach one RichHandler to the ``movehat`` logger.

    Calling it again replaces the handler, so commands can raise the level
    (``fork serve`` wants INFO for its request log) after the root callback ran.
    """
    if level is None:
        level = logging.DEBUG if verbose else logging.WARNING

    logger = logging.getLogger(_LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
        markup=False,
        rich_tracebacks=verbose,
    )
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
