from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from . import config

LOGGER = logging.getLogger("skoolharvest")
_LOGGER_INITIALISED = False
_CURRENT_LOG_FILE: Path = config.LOG_FILE


def _configure_logger(log_path: Path) -> None:
    """Configure the shared application logger to write to ``log_path``."""

    global _LOGGER_INITIALISED, _CURRENT_LOG_FILE

    log_path.parent.mkdir(parents=True, exist_ok=True)

    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        try:
            handler.close()
        except Exception:  # noqa: BLE001
            continue

    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)

    if LOGGER.level == logging.NOTSET:
        LOGGER.setLevel(logging.DEBUG if config.DEBUG else logging.INFO)
    LOGGER.addHandler(stream_handler)
    LOGGER.addHandler(file_handler)
    LOGGER.propagate = False

    _CURRENT_LOG_FILE = log_path
    _LOGGER_INITIALISED = True


def _ensure_logger() -> None:
    """Initialise the logger lazily using the default log file."""

    if _LOGGER_INITIALISED:
        return

    _configure_logger(config.LOG_FILE)


def setup_run_logger(*, debug: bool | None = None) -> Path:
    """Rotate to a fresh timestamped log file for the current run."""

    if debug is not None:
        set_debug(debug)
    timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    log_path = config.LOG_DIR / f"harvest_{timestamp}.log"
    _configure_logger(log_path)
    LOGGER.info("Logging to %s", log_path)
    return log_path


def set_debug(enabled: bool) -> None:
    """Toggle DEBUG output for the shared logger."""

    LOGGER.setLevel(logging.DEBUG if enabled else logging.INFO)


def get_current_log_path() -> Path:
    """Return the path to the log file currently receiving log lines."""

    _ensure_logger()
    return _CURRENT_LOG_FILE


def ensure_dirs() -> None:
    """Ensure that the application's expected directory structure exists."""

    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    config.LOG_DIR.mkdir(parents=True, exist_ok=True)


def log_line(message: str, level: int = logging.INFO) -> None:
    """Write a timestamped log line to stdout and the active log file."""

    _ensure_logger()
    LOGGER.log(level, message)


def log_warning(message: str) -> None:
    log_line(message, logging.WARNING)


def log_error(message: str) -> None:
    log_line(message, logging.ERROR)


def log_debug(message: str) -> None:
    log_line(message, logging.DEBUG)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def save_json_file(path: Path, payload: Any) -> None:
    """Persist ``payload`` as pretty JSON, replacing ``path`` atomically."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2, default=_json_default)
    tmp_path.replace(path)


def page_backup_path(backup_dir: Path, page_number: int) -> Path:
    """Return the backup file for ``page_number`` (zero padded to 4 digits)."""

    return Path(backup_dir) / f"page_{int(page_number):04d}.json"


__all__ = [
    "ensure_dirs",
    "setup_run_logger",
    "set_debug",
    "get_current_log_path",
    "log_line",
    "log_warning",
    "log_error",
    "log_debug",
    "save_json_file",
    "page_backup_path",
]
