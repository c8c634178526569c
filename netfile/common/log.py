# common/log.py
"""Logging setup: stdlib loggers rendered through rich."""
import logging
from rich.console import Console
from rich.logging import RichHandler

# operator output goes to stderr so downloads piped to stdout stay clean
console = Console(stderr=True)


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, markup=False)],
        force=True,
    )
