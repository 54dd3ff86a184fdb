from __future__ import annotations

import logging

from .config import Options

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(options: Options) -> int:
    """Install the timestamped stream handler; ``debug_logging`` forces DEBUG."""
    level = logging.DEBUG if options.debug_logging else LOG_LEVELS.get(options.log_level.lower(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("git_statusline").setLevel(level)
    # watchdog is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(max(level, logging.INFO))
    return level
