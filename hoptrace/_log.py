"""Console and logger shared across hoptrace."""

from __future__ import annotations

import logging
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

console = Console()
FORMAT = "%(message)s"

logger = logging.getLogger("hoptrace")


def setup_logging(level: Union[int, str] = "INFO") -> logging.Logger:
    """Attach a rich handler to the hoptrace logger.

    Safe to call more than once; the handler is only installed the first time.
    """
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            markup=True,
            show_time=False,
        )
        handler.setFormatter(logging.Formatter(FORMAT, datefmt="[%X]"))
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger
