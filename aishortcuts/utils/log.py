"""Logging utilities for AI Shortcuts.

One process logger, ``aishortcuts``. The console handler writes to stderr
at the level from ``AISHORTCUTS_LOG_LEVEL`` (or runtime config); an
optional daily file under ``<home>/logs`` records everything at DEBUG
with any ``extra={...}`` context appended as JSON.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# Attributes every LogRecord carries; anything else on a record came from ``extra``.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """``<UTC timestamp> [LEVEL] message | {"context": ...}``"""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if not context:
            return message
        return f"{message} | {json.dumps(context, sort_keys=True, ensure_ascii=True, default=str)}"


def _level_from_name(level_name: Optional[str]) -> Optional[int]:
    level = logging.getLevelName((level_name or "").strip().upper())
    return level if isinstance(level, int) else None


class AIShortcutsLogger:
    """Thin wrapper that owns the console and file handlers."""

    def __init__(self, name: str = "aishortcuts"):
        self.logger = logging.getLogger(name)
        # The logger passes everything; each handler applies its own threshold.
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        self._console: Optional[logging.Handler] = next(
            (h for h in self.logger.handlers if not isinstance(h, logging.FileHandler)), None
        )
        if self._console is None:
            self._console = logging.StreamHandler(sys.stderr)
            self._console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
            self.logger.addHandler(self._console)
        self._console.setLevel(
            _level_from_name(os.getenv("AISHORTCUTS_LOG_LEVEL")) or logging.WARNING
        )

        self._file_handler: Optional[logging.FileHandler] = None

    def set_console_level(self, level_name: str) -> None:
        """Adjust the stderr threshold; unknown level names are ignored."""
        level = _level_from_name(level_name)
        if level is not None and self._console is not None:
            self._console.setLevel(level)

    def attach_file_handler(self, log_file: Path) -> Path:
        """Log to *log_file*, replacing any file handler attached earlier."""
        if self._file_handler is not None:
            if Path(self._file_handler.baseFilename) == log_file.resolve():
                return log_file
            self.logger.removeHandler(self._file_handler)
            self._file_handler.close()

        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(StructuredFormatter("%(asctime)s [%(levelname)s] %(message)s"))
        self.logger.addHandler(handler)
        self._file_handler = handler
        return log_file

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.logger.warning(message, *args, **kwargs)


_logger: Optional[AIShortcutsLogger] = None


def get_logger() -> AIShortcutsLogger:
    """Get the process-wide logger."""
    global _logger
    if _logger is None:
        _logger = AIShortcutsLogger()
    return _logger


def enable_file_logging(home_dir: Path) -> Path:
    """Also write logs to ``<home>/logs/aishortcuts_<YYYYMMDD>.log``."""
    log_file = home_dir / "logs" / f"aishortcuts_{datetime.now().strftime('%Y%m%d')}.log"
    get_logger().attach_file_handler(log_file)
    get_logger().debug("[logging] File logging enabled", extra={"path": str(log_file)})
    return log_file
