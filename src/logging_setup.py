"""Centralized logging configuration for the folio CLI."""

from __future__ import annotations

import logging
import os
from typing import Final

from rich.console import Console
from rich.logging import RichHandler

__all__ = ["configure_logging", "console"]

_LOG_LEVEL_ENV: Final[str] = "FOLIO_LOG_LEVEL"
_DEFAULT_LEVEL_NAME: Final[str] = "WARNING"

console = Console(stderr=True)


def _resolve_level(verbose: bool = False) -> int:
    """Return the level from ``--verbose`` or the environment."""
    if verbose:
        return logging.DEBUG
    level_name = os.getenv(_LOG_LEVEL_ENV, _DEFAULT_LEVEL_NAME).upper()
    level = getattr(logging, level_name, logging.WARNING)
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(verbose: bool = False) -> int:
    """Install a single Rich handler on the root logger and return the level."""
    root_logger = logging.getLogger()
    level = _resolve_level(verbose)

    managed = [h for h in root_logger.handlers if getattr(h, "_folio_managed", False)]
    if not managed:
        handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._folio_managed = True  # type: ignore[attr-defined]
        root_logger.addHandler(handler)

    root_logger.setLevel(level)
    logging.captureWarnings(True)
    return level
