"""Logging configuration for the watcher process.

All diagnostics (listing failures, report failures, scheduler errors) go to
stderr through a Rich handler. An optional plain-text file handler can be
added for long-running deployments.
"""

from __future__ import annotations

import logging
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler

Verbosity = Literal["debug", "info", "warning", "error"]


def setup_logging(
    verbosity: Verbosity = "info",
    log_file_path: str | None = None,
) -> logging.Logger:
    """Configure the root logger for the watcher process.

    Args:
        verbosity: Console verbosity level (debug, info, warning, error)
        log_file_path: Optional path for an additional file log.

    Returns:
        Configured root logger instance
    """
    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    log_level = level_map.get(verbosity, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers on re-initialization
    root_logger.handlers.clear()

    rich_handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    rich_handler.setLevel(log_level)
    rich_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    root_logger.addHandler(rich_handler)

    if log_file_path:
        try:
            file_handler = logging.FileHandler(log_file_path, mode="a", encoding="utf-8")
        except OSError as e:
            root_logger.warning(f"Failed to setup file logging: {e}")
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            root_logger.addHandler(file_handler)

    # httpx logs every request at INFO; one request per tick is noise
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a named logger for a specific module.

    Args:
        name: Logger name (typically __name__ of the module)
    """
    return logging.getLogger(name)
