"""Logging setup shared by the CLI commands and the scheduler.

Every module logs through ``logging.getLogger(__name__)``; `configure_logging`
installs the root handlers once per process. HTTP and MongoDB driver loggers
are held at WARNING so a DEBUG run shows pipeline decisions rather than
connection chatter.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

NOISY_LOGGERS = ("urllib3", "requests", "pymongo")


def resolve_level(level: int | str) -> int:
    """Return a numeric level for an int or a name such as ``"debug"``.

    Unknown names fall back to INFO.
    """
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(log_path: Path | None = None, level: int | str = logging.INFO) -> None:
    """Configure root logging handlers and formatting.

    Args:
        log_path: Optional path to a file where logs will be written.
        level: Logging level or level name, typically `Settings.log_level`.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(level=resolve_level(level), format=LOG_FORMAT, handlers=handlers)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
