"""JSON file helpers for AI Shortcuts."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from aishortcuts.utils.log import get_logger


logger = get_logger()


def read_json_object(path: Path, *, component: str = "json_utils") -> Optional[Dict[str, Any]]:
    """Return the JSON object stored at *path*.

    Missing files yield ``{}``. Unreadable or malformed files yield ``None``
    so callers can tell "empty" from "broken".
    """
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning(
            "[%s] Failed reading JSON file: %s: %s",
            component,
            type(exc).__name__,
            exc,
            extra={"path": str(path)},
        )
        return None
    if not isinstance(payload, dict):
        logger.warning(
            "[%s] JSON file root must be an object",
            component,
            extra={"path": str(path)},
        )
        return None
    return payload


def write_json_atomic(path: Path, data: Dict[str, Any], *, mode: Optional[int] = None) -> None:
    """Atomically write JSON content to disk, optionally tightening permissions."""

    path.parent.mkdir(parents=True, exist_ok=True)
    serialized = json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True)
    fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix=".aishortcuts_", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(serialized)
            handle.write("\n")
        if mode is not None:
            try:
                os.chmod(temp_path, mode)
            except OSError:
                logger.debug("[json_utils] Failed to set strict permissions", extra={"path": str(path)})
        os.replace(temp_path, path)
    finally:
        try:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
        except OSError:
            pass
