"""
JSON-lines logging for the ask pipeline.

Each component logs under ``chat-recall.<component>`` (search, context,
answer, storage, ...); one handler on the namespace root renders them all.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO


ROOT_LOGGER_NAME = "chat-recall"


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, component, message and event fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": ROOT_LOGGER_NAME,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Structured events carry their fields on the record
        if hasattr(record, "extra") and record.extra:
            log_data.update(record.extra)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(log_level: str = "INFO", stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Install the JSON handler on the ``chat-recall`` namespace.

    Replaces any handler from a previous call and stops propagation, so
    host applications do not see pipeline records twice. The CLI passes
    stderr to keep stdout for its JSON answer.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream, stdout by default

    Returns:
        The ``chat-recall`` root logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(getattr(logging, log_level.upper()))
    handler.setFormatter(StructuredFormatter())

    logger.addHandler(handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


class StructuredLogger:
    """
    Event logger for the CLI and other callers.

    ``log.info("cli_start", {"chat_id": 42})`` emits a record whose message
    is the event name and whose fields are merged into the JSON line.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _log(self, level: str, event: str, extra: Optional[Dict[str, Any]] = None):
        level_no = getattr(logging, level.upper())
        if not self.logger.isEnabledFor(level_no):
            return

        log_record = self.logger.makeRecord(
            self.logger.name,
            level_no,
            "",
            0,
            event,
            (),
            None,
        )
        log_record.extra = extra or {}
        self.logger.handle(log_record)

    def debug(self, event: str, extra: Optional[Dict[str, Any]] = None):
        self._log("DEBUG", event, extra)

    def info(self, event: str, extra: Optional[Dict[str, Any]] = None):
        self._log("INFO", event, extra)

    def warning(self, event: str, extra: Optional[Dict[str, Any]] = None):
        self._log("WARNING", event, extra)

    def error(self, event: str, extra: Optional[Dict[str, Any]] = None):
        self._log("ERROR", event, extra)
