"""
Logging setup for the SPVM tools.

Library modules only create loggers (logging.getLogger(__name__)); the
CLI calls setup_logging() once. Console output goes through rich's
RichHandler on stderr so it never mixes with program output on stdout.
An optional log file captures everything at DEBUG.
"""

from __future__ import annotations
from pathlib import Path
from typing import Optional
import logging

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"


def setup_logging(
    level: int = logging.WARNING,
    log_file: Optional[Path] = None,
    name: str = "spvm",
) -> logging.Logger:
    """Configure and return the package logger.

    Calling it again replaces the previous handlers rather than stacking
    new ones, so the CLI can be invoked repeatedly in one process (tests).
    """
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG)

    console = RichHandler(
        level=level,
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    console.setLevel(level)
    logger.addHandler(console)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(fh)
        logger.debug("Logging to %s", log_file)

    return logger
