"""Loguru logging configuration.

Operational messages go to stderr as text. Per-cycle sync summaries, logged
through :func:`sync_summary_logger`, are additionally serialized as JSON so
an election-night timeline can be rebuilt from the logs. With a ``log_dir``
both streams are also written to rotating files.
"""

import sys
from pathlib import Path
from typing import Any

from loguru import logger

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} | {message}"

SYNC_SUMMARY_KEY = "sync_summary"
LOG_FILE_NAME = "servel-api.log"
SYNC_SUMMARY_FILE_NAME = "servel-sync.jsonl"


def _is_sync_summary(record: Any) -> bool:
    return bool(record["extra"].get(SYNC_SUMMARY_KEY, False))


def sync_summary_logger(**fields: Any) -> Any:
    """Logger whose records also reach the JSON sync-summary sinks."""
    return logger.bind(**{SYNC_SUMMARY_KEY: True}, **fields)


def setup_logging(log_level: str = "INFO", log_dir: str | None = None) -> None:
    """Configure Loguru sinks.

    Args:
        log_level: Minimum log level to emit.
        log_dir: Optional directory for log files.  When set, the text log
            and the sync-summary JSON lines are written there, rotated every
            24 hours and retained 7 days.
    """
    level = log_level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=_LOG_FORMAT, serialize=False)
    logger.add(sys.stderr, level=level, serialize=True, filter=_is_sync_summary)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(log_path / LOG_FILE_NAME, level=level, format=_LOG_FORMAT, rotation="24h", retention="7 days")
        logger.add(
            log_path / SYNC_SUMMARY_FILE_NAME,
            level=level,
            serialize=True,
            filter=_is_sync_summary,
            rotation="24h",
            retention="7 days",
        )
