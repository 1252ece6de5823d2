"""Logging utilities for toolgate."""

import logging
from typing import Literal

from rich.console import Console
from rich.logging import RichHandler

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def get_logger(name: str) -> logging.Logger:
    """Get a logger nested under the toolgate namespace.

    Args:
        name: the name of the logger, which will be prefixed with 'toolgate.'
            unless it already lives there

    Returns:
        a configured logger instance
    """
    if name != "toolgate" and not name.startswith("toolgate."):
        name = f"toolgate.{name}"
    return logging.getLogger(name)


def configure_logging(level: LogLevel = "INFO") -> None:
    """Configure logging for toolgate.

    Log records go to stderr; stdout is left alone because the stdio
    transport frames protocol messages on it.

    Args:
        level: the log level to use
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )