"""
Logging configuration for analysis events.

Report generation emits structured events on the ``sonarcwe.events``
logger: ``analysis_started``, ``analysis_complete``,
``auxiliary_signal_degraded`` and ``rule_fallback_used``. This module installs a JSON formatter for that logger so the
events can be shipped to a file and analysed later.
"""

import json
import logging
from logging.handlers import TimedRotatingFileHandler
from typing import Any

EVENTS_LOGGER_NAME = "sonarcwe.events"

# Extra attributes copied into the JSON entry when present on the record
EVENT_FIELDS = (
    "event",
    "project_key",
    "signal",
    "status",
    "error",
    "duration_ms",
    "total_issues",
    "issues_with_weakness",
    "rule_count",
    "fallback_count",
)


class AnalysisEventFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in EVENT_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_logging(
    log_file: str | None = None,
    log_level: str = "INFO",
    enable_console: bool = True,
) -> logging.Logger:
    """
    Configure the analysis events logger.

    Args:
        log_file: Path to a log file; rotated hourly, one week kept (optional)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_console: Whether to also log to the console

    Returns:
        The configured events logger
    """
    logger = logging.getLogger(EVENTS_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.propagate = False

    logger.handlers.clear()
    formatter = AnalysisEventFormatter()

    if log_file:
        file_handler = TimedRotatingFileHandler(
            log_file,
            when="H",
            interval=1,
            backupCount=168,
            encoding="utf-8",
            utc=False,
        )
        file_handler.suffix = "%Y%m%d_%H%M%S.log"
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if enable_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def get_events_logger() -> logging.Logger:
    """Get the analysis events logger."""
    return logging.getLogger(EVENTS_LOGGER_NAME)
