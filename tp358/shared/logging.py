"""Logging setup shared by the scanner service and the console scanner."""

import logging
from typing import Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that flood the output below WARNING
NOISY_LOGGERS: Dict[str, int] = {
    "bleak": logging.WARNING,
    "asyncio": logging.WARNING,
    "aiohttp.access": logging.WARNING,
}


def build_handler(console: Optional[Console] = None) -> logging.Handler:
    """Create the root log handler.

    The service logs plain lines to stderr. The console scanner passes its
    rich Console so records are printed above the live table instead of
    tearing it.

    Args:
        console: Console of a running rich Live display, if any.

    Returns:
        A configured handler.
    """
    if console is None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        return handler

    handler = RichHandler(console=console, show_path=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    return handler


def setup_logging(
    level: str = "INFO",
    console: Optional[Console] = None,
    quiet_loggers: Optional[Dict[str, int]] = None,
) -> None:
    """Configure logging for TP358 tools.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        console: Route records through this rich Console.
        quiet_loggers: Extra logger name to level overrides, applied after
            the defaults in NOISY_LOGGERS.

    Raises:
        ValueError: If level is not a known level name.
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(level=log_level, handlers=[build_handler(console)])

    for logger_name, logger_level in {**NOISY_LOGGERS, **(quiet_loggers or {})}.items():
        logging.getLogger(logger_name).setLevel(logger_level)
