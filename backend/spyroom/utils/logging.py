"""
Process logging for the room server.

Everything goes through the root logger: one stdout stream, plus a file per
server start when ``LOG_DIR`` is set.
"""

import logging
import sys
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import Config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Engine.IO and Socket.IO report every packet once they log at INFO.
TRANSPORT_LOGGERS = ("engineio.server", "socketio.server")


def _setting(config: Any, key: str, default: Any) -> Any:
    if isinstance(config, Mapping):
        return config.get(key, default)
    return getattr(config, key, default)


def parse_level(value: int | str | None) -> int:
    """Turn ``LOG_LEVEL`` ("debug", "WARNING", 20, ...) into a logging level, INFO if unrecognised."""
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value or "").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def log_file_path(log_dir: str | Path, now: datetime | None = None) -> Path:
    stamp = (now or datetime.now(tz=timezone.utc)).strftime("%Y%m%d-%H%M%S")
    return Path(log_dir) / f"spyroom-{stamp}.log"


def setup_logging(config: Any = None) -> Path | None:
    """
    Configure the root logger from ``LOG_LEVEL`` and ``LOG_DIR``.

    ``config`` is a config object or mapping (``Config`` when omitted).
    Calling it again replaces the handlers from the previous call.
    Returns the log file path when file logging is on.
    """
    if config is None:
        config = Config

    level = parse_level(_setting(config, "LOG_LEVEL", "INFO"))
    log_dir = _setting(config, "LOG_DIR", "") or None

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    file_path = None
    if log_dir:
        file_path = log_file_path(log_dir)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(file_path, encoding="utf-8"))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return file_path
