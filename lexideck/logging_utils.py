"""Logging setup shared by the CLI, the runtime and the tests."""

from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Mapping

LOGGER_NAME = "LexiDeck"
LOG_FILENAME = "lexideck.log"

CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# httpx logs every request at INFO, which drowns out queue progress lines.
NOISY_LOGGERS = ("httpx", "httpcore")

# Keys accepted through ``extra=`` and copied into JSON log lines.
CONTEXT_FIELDS = ("queue", "job_id", "word", "backend")

LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
RESET = "\033[0m"


class ColorFormatter(logging.Formatter):
    """Colours the level name when writing to an interactive terminal."""

    def __init__(self, fmt: str, *, use_color: bool, stream=None) -> None:
        super().__init__(fmt)
        stream = stream or sys.stderr
        self.use_color = use_color and hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - terminal only
        if not self.use_color or record.levelno not in LEVEL_COLORS:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{LEVEL_COLORS[record.levelno]}{original}{RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class JsonFormatter(logging.Formatter):
    """One JSON object per line, including any job context passed via ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(
    config: Mapping[str, object],
    *,
    level_override: str | None = None,
) -> logging.Logger:
    """Install console and (optionally) rotating file handlers.

    ``config`` is the ``logging`` section of the configuration with
    ``log_dir`` added by the caller. ``level_override`` replaces the console
    level; it is how ``--log-level`` reaches this function. Calling this again
    replaces the handlers from the previous call.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_level = _coerce_level(level_override or config.get("console_level"))
    logger.addHandler(_console_handler(console_level, use_color=bool(config.get("color", True))))

    log_dir = config.get("log_dir") or config.get("logs")
    if log_dir:
        logger.addHandler(
            _file_handler(
                Path(str(log_dir)),
                _coerce_level(config.get("file_level")),
                json_logs=bool(config.get("json_logs")),
            )
        )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, console_level))
    return logger


def get_logger(suffix: str | None = None) -> logging.Logger:
    """Return the application logger or one of its children."""

    if suffix:
        return logging.getLogger(f"{LOGGER_NAME}.{suffix}")
    return logging.getLogger(LOGGER_NAME)


def _console_handler(level: int, *, use_color: bool) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(ColorFormatter(CONSOLE_FORMAT, use_color=use_color, stream=handler.stream))
    return handler


def _file_handler(log_dir: Path, level: int, *, json_logs: bool) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILENAME,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter() if json_logs else logging.Formatter(FILE_FORMAT))
    return handler


def _coerce_level(level: object) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        named = logging.getLevelName(level.strip().upper())
        if isinstance(named, int):
            return named
    return logging.INFO


__all__ = ["configure_logging", "get_logger", "LOGGER_NAME", "JsonFormatter", "ColorFormatter"]
