import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "chatsync"
_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(level: str = "WARNING", console: Console | None = None) -> logging.Logger:
    """
    Installs a single RichHandler on the package logger.

    Safe to call repeatedly; earlier handlers are replaced rather than stacked.
    Output goes to stderr so command output on stdout stays clean.
    """
    level = level.upper()
    if level not in _LEVELS:
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
