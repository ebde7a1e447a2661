"""Root logger setup for the portal process.

Every module logs through ``logging.getLogger(__name__)``; this module only
decides where records go. ``LOG_LEVEL`` picks the threshold (INFO when unset
or unrecognised).
"""

import logging
import os
import sys
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    name: getattr(logging, name) for name in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
}


def get_log_level() -> int:
    """Threshold named by LOG_LEVEL, case insensitive."""
    return _LEVELS.get(os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)


def setup_server_logging(log_file: str = "logs/server.log") -> None:
    """Send all portal logs to the console and to a log file.

    Args:
        log_file: File receiving a copy of every record; parent directories
            are created as needed

    Calling this again replaces the handlers installed by the previous call.
    """
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    level = get_log_level()
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(path)):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # aiosqlite logs every cursor operation at DEBUG
    logging.getLogger("aiosqlite").setLevel(max(level, logging.INFO))


__all__ = ["get_log_level", "setup_server_logging"]
