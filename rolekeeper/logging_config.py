"""Logging setup shared by the bot process and the health server."""

import logging
import sys
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that flood INFO with gateway and access chatter
NOISY_LOGGERS = ("discord", "discord.http", "discord.gateway", "aiohttp", "uvicorn.access")


def parse_level(level: Optional[str]) -> int:
    """``"debug"`` -> ``logging.DEBUG``; unknown or empty names fall back to INFO."""
    if not level:
        return logging.INFO
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: Optional[str] = None, quiet: Iterable[str] = NOISY_LOGGERS) -> None:
    """
    Configure logging for the whole process.

    Args:
        level: Level name for the ``rolekeeper`` loggers (DEBUG, INFO, ...).
               Defaults to INFO.
        quiet: Loggers capped at WARNING whatever ``level`` is
    """
    log_level = parse_level(level)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("rolekeeper").setLevel(log_level)

    logging.getLogger(__name__).info("Logging initialized at level: %s", logging.getLevelName(log_level))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
