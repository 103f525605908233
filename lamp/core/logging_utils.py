"""Log file setup for the command line.

Library modules only create loggers; handlers are attached here.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class LogRotation:
    max_bytes: int = 5 * 1024 * 1024
    max_age_hours: int = 24
    backup_count: int = 5

    @classmethod
    def from_env(cls) -> "LogRotation":
        """Read LAMP_LOG_MAX_BYTES / _MAX_AGE_HOURS / _MAX_FILES; bad values keep the default."""
        defaults = cls()
        values = {}
        for attr, name in (
            ("max_bytes", "LAMP_LOG_MAX_BYTES"),
            ("max_age_hours", "LAMP_LOG_MAX_AGE_HOURS"),
            ("backup_count", "LAMP_LOG_MAX_FILES"),
        ):
            raw = os.environ.get(name, "").strip()
            try:
                values[attr] = int(raw) if raw else getattr(defaults, attr)
            except ValueError:
                values[attr] = getattr(defaults, attr)
        return cls(**values)


class LampFileHandler(RotatingFileHandler):
    """Size-rotated log file that also rolls over a stale file when opened.

    A file last written more than ``max_age_hours`` ago starts a fresh log,
    the old one moving to ``<name>.1`` like a size rollover.
    """

    def __init__(self, path: Path, rotation: LogRotation) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        stale = self._is_stale(path, rotation.max_age_hours)
        super().__init__(
            path,
            maxBytes=max(rotation.max_bytes, 0),
            backupCount=max(rotation.backup_count, 0),
            encoding="utf-8",
        )
        self.rotation = rotation
        if stale:
            self.doRollover()

    @staticmethod
    def _is_stale(path: Path, max_age_hours: int) -> bool:
        if max_age_hours <= 0 or not path.is_file():
            return False
        stat = path.stat()
        return stat.st_size > 0 and time.time() - stat.st_mtime >= max_age_hours * 3600


def _is_ours(handler: logging.Handler) -> bool:
    return getattr(handler, "_lamp_configured", False)


def configure_logging(path: Optional[Path] = None, level: Optional[str] = None) -> logging.Handler:
    """Attach one handler to the ``lamp`` logger, replacing any earlier one.

    With a path, records go to a rotated log file; otherwise to stderr.
    """
    level = (level or os.environ.get("LAMP_LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger("lamp")
    root.setLevel(level)
    for old in [h for h in root.handlers if _is_ours(h)]:
        root.removeHandler(old)
        old.close()

    if path is not None:
        handler: logging.Handler = LampFileHandler(path, LogRotation.from_env())
    else:
        handler = logging.StreamHandler()
    handler._lamp_configured = True
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    return handler
