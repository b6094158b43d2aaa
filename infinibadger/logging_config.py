"""Logging setup for infinibadger.

Download cycles log with a fixed set of structured fields passed through
``extra=`` (see :data:`CYCLE_FIELDS`). The ``json`` format emits them as
top-level keys. The ``human`` and ``simple`` formats append them to the
message as ``key=value`` pairs.

Environment variables:
    INFINIBADGER_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (LOG_LEVEL is a fallback)
    INFINIBADGER_LOG_FORMAT: human, json or simple
    INFINIBADGER_LOG_FILE: path of an additional rotating JSON log file
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

CYCLE_FIELDS = (
    "cycle",
    "log_file",
    "marker",
    "bytes_written",
    "watermark",
    "files",
    "duration_seconds",
    "error_code",
)

_TEXT_FORMATS = {
    "human": "[%(levelname)s] %(asctime)s - %(name)s - %(message)s",
    "simple": "%(levelname)s: %(message)s",
}


def _cycle_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {name: getattr(record, name) for name in CYCLE_FIELDS if hasattr(record, name)}


class CycleJSONFormatter(logging.Formatter):
    """One JSON object per record with the cycle fields as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_cycle_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class CycleTextFormatter(logging.Formatter):
    """Plain text formatter that appends cycle fields as ``key=value``."""

    def __init__(self, format_type: str = "human"):
        super().__init__(fmt=_TEXT_FORMATS[format_type], datefmt="%Y-%m-%d %H:%M:%S")

    def formatMessage(self, record: logging.LogRecord) -> str:
        text = super().formatMessage(record)
        fields = _cycle_fields(record)
        if fields:
            text += " " + " ".join(f"{key}={value}" for key, value in fields.items())
        return text


def get_log_level_from_env() -> int:
    """Read INFINIBADGER_LOG_LEVEL, then LOG_LEVEL. Unknown names give INFO."""
    name = os.environ.get("INFINIBADGER_LOG_LEVEL") or os.environ.get("LOG_LEVEL", "INFO")
    name = name.upper()
    if name == "WARN":
        name = "WARNING"
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(
    level: Optional[int] = None,
    format_type: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> None:
    """Configure the root logger.

    Args:
        level: Logging level, defaults to the environment
        format_type: 'human', 'json' or 'simple', defaults to INFINIBADGER_LOG_FORMAT
        log_file: Extra rotating JSON log file, defaults to INFINIBADGER_LOG_FILE
    """
    if level is None:
        level = get_log_level_from_env()

    if format_type is None:
        format_type = os.environ.get("INFINIBADGER_LOG_FORMAT", "human").lower()

    if log_file is None and os.environ.get("INFINIBADGER_LOG_FILE"):
        log_file = Path(os.environ["INFINIBADGER_LOG_FILE"])

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        handler.close()
        root_logger.removeHandler(handler)

    if format_type == "json":
        formatter: logging.Formatter = CycleJSONFormatter()
    else:
        formatter = CycleTextFormatter(format_type if format_type in _TEXT_FORMATS else "human")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        # 10MB max, 5 backups
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=5
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(CycleJSONFormatter())
        root_logger.addHandler(file_handler)

    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(max(level, logging.INFO))


def log_exception(logger: logging.Logger, message: str, exc: Exception) -> None:
    """Log ``exc`` with its traceback, tagged with its error code when it has one."""
    extra = {}
    error_code = getattr(exc, "error_code", None)
    if error_code:
        extra["error_code"] = error_code
    logger.error("%s: %s", message, exc, exc_info=True, extra=extra)


def log_performance(logger: logging.Logger, operation: str, duration_seconds: float, **fields: Any) -> None:
    logger.info(
        "%s completed in %.2fs",
        operation,
        duration_seconds,
        extra={"duration_seconds": round(duration_seconds, 3), **fields},
    )
