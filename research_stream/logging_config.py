"""Structured logging configuration for research-stream."""

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import DEFAULT_LOG_PATH

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Chatty third-party loggers and the level they are held at
QUIET_LOGGERS = {
    "aiosqlite": "WARNING",
    "httpx": "WARNING",
    "uvicorn.access": "WARNING",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; run and viewer ids are lifted to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        context = getattr(record, "context", None)
        if context:
            for key in ("run_id", "viewer_id"):
                if key in context:
                    log_data[key] = context[key]
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def log_context(**fields) -> dict:
    """Build the ``extra`` mapping for a log call, dropping empty fields."""
    return {"context": {k: v for k, v in fields.items() if v is not None}}


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    console_format: str | None = None,
) -> None:
    """
    Setup logging for the server process.

    Args:
        log_level: Root level. Defaults to LOG_LEVEL env var or INFO.
        log_file: JSON log file. Defaults to LOG_FILE env var or logs/app.log.
        console_format: "json" or "text" for stdout. Defaults to LOG_FORMAT or json.
    """
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("LOG_FILE", str(DEFAULT_LOG_PATH))
    console_format = (console_format or os.getenv("LOG_FORMAT", "json")).lower()
    if console_format not in ("json", "text"):
        raise ValueError(f"Unknown LOG_FORMAT: {console_format!r}")

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": "research_stream.logging_config.JSONFormatter"},
                "text": {"format": TEXT_FORMAT},
            },
            "handlers": {
                "file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "filename": log_file,
                    "maxBytes": 10 * 1024 * 1024,
                    "backupCount": 5,
                    "formatter": "json",
                    "encoding": "utf-8",
                },
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": console_format,
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                name: {"level": level} for name, level in QUIET_LOGGERS.items()
            },
            "root": {
                "level": log_level,
                "handlers": ["file", "console"],
            },
        }
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically ``get_logger(__name__)``)."""
    return logging.getLogger(name)
