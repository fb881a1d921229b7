from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from loguru import logger


LOG_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message}\n{exception}"


def configure_logging() -> None:
    """Route loguru output to stdout and, when ``LOG_FILE_PATH`` is set, a file."""
    from opsconsole.core.config import get_settings

    logger.remove()
    logger.add(sink=sys.stdout, format=LOG_FORMAT)

    log_path = get_settings().log_file_path
    if not log_path:
        return
    log_path = log_path.expanduser()
    if not _ensure_log_path(log_path):
        return
    try:
        logger.add(str(log_path), format=LOG_FORMAT, level="INFO", encoding="utf-8", enqueue=True)
    except Exception as exc:  # pragma: no cover - logging setup
        logger.warning(f"LOG FILE DISABLED - unable to open file path={log_path} error={exc}")


def _ensure_log_path(path: Path) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning(f"LOG FILE DISABLED - unable to create directory path={path.parent} error={exc}")
        return False
    return True


def _format_meta(meta: dict[str, Any]) -> str:
    return " ".join(f"{key}={meta[key]}" for key in sorted(meta))


def _emit(level: str, message: str, meta: dict[str, Any]) -> None:
    if not meta:
        logger.log(level, message)
        return
    logger.bind(**meta).log(level, f"{message} | {_format_meta(meta)}")


def log_error(message: str, **meta) -> None:
    _emit("ERROR", message, meta)


def log_warning(message: str, **meta) -> None:
    _emit("WARNING", message, meta)


def log_info(message: str, **meta) -> None:
    _emit("INFO", message, meta)


def log_debug(message: str, **meta) -> None:
    _emit("DEBUG", message, meta)


def log_audit_event(
    event_type: str,
    action: str,
    *,
    actor: str | None = None,
    entity_type: str | None = None,
    ip_address: str | None = None,
    **extra_meta,
) -> None:
    """Log an administrative action as ``{event_type} {action} | key=value ...``."""
    meta: dict[str, Any] = {
        key: value
        for key, value in (("actor", actor), ("entity_type", entity_type), ("ip", ip_address))
        if value
    }
    meta.update(extra_meta)
    _emit("INFO", f"{event_type} {action}", meta)
