#!/usr/bin/env python3
"""
🔍 Centralized Logging System for Jukebox
Console logging with colours in development, structured JSON on demand and
an optional rotating file under ~/.jukebox/logs.
"""

import json
import logging
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

ENABLE_JSON_LOGS = os.getenv('JUKEBOX_JSON_LOGS', '0') == '1'
ENABLE_FILE_LOGGING = os.getenv('JUKEBOX_FILE_LOGS', '0') == '1'
MAX_LOG_SIZE = 5 * 1024 * 1024
BACKUP_COUNT = 3

LOG_LEVEL = logging.INFO
_env_level = os.getenv('JUKEBOX_LOG_LEVEL')
if _env_level:
    LOG_LEVEL = getattr(logging, _env_level.upper(), LOG_LEVEL)


def _get_app_log_dir() -> Path:
    """Get application log directory path-agnostically"""
    env_log_dir = os.getenv('JUKEBOX_LOG_DIR')
    if env_log_dir:
        return Path(env_log_dir)
    app_name = os.getenv("JUKEBOX_APP_NAME", "jukebox")
    return Path.home() / f".{app_name}" / "logs"


LOG_DIR = _get_app_log_dir()

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset((
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
    'taskName', 'asctime', 'no_color',
))


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'
    }

    def __init__(self) -> None:
        super().__init__('%(asctime)s | %(name)s | %(levelname)s | %(message)s')

    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, 'no_color', False):
            return super().format(record)

        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']
        original = record.levelname
        record.levelname = f"{color}{original}{reset}"
        try:
            formatted = super().format(record)
        finally:
            record.levelname = original

        context = _extra_fields(record)
        if context:
            formatted += " | " + " ".join(f"{k}={v}" for k, v in context.items())
        return formatted


class JSONFormatter(logging.Formatter):
    """Structured JSON formatter.

    Example output:
        {"timestamp": "2026-01-04T10:30:00.123000Z", "level": "WARNING",
         "logger": "jukebox.http", "message": "http.retry",
         "attempt": 1, "backoff_ms": 1000}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        if record.levelno >= logging.WARNING:
            log_data['source'] = f"{record.filename}:{record.lineno}"
            log_data['function'] = record.funcName

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        for key, value in _extra_fields(record).items():
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, ensure_ascii=True, sort_keys=True)


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


def setup_logger(name: str = "jukebox", level: Optional[str] = None) -> logging.Logger:
    """
    Sets up a logger with appropriate handlers based on environment

    Args:
        name: Logger name (child loggers like ``jukebox.http`` propagate here)
        level: Optional level name overriding JUKEBOX_LOG_LEVEL

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    resolved_level = getattr(logging, level.upper(), LOG_LEVEL) if level else LOG_LEVEL
    logger.setLevel(resolved_level)

    # Prevent duplicate handlers if logger already exists
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(JSONFormatter() if ENABLE_JSON_LOGS else ColoredFormatter())
    logger.addHandler(console_handler)

    if ENABLE_FILE_LOGGING:
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                LOG_DIR / "jukebox.log",
                maxBytes=MAX_LOG_SIZE,
                backupCount=BACKUP_COUNT,
                encoding='utf-8'
            )
            if ENABLE_JSON_LOGS:
                file_handler.setFormatter(JSONFormatter())
            else:
                file_handler.setFormatter(logging.Formatter(
                    '%(asctime)s | %(name)s | %(levelname)s | %(filename)s:%(lineno)d | %(message)s'
                ))
            logger.addHandler(file_handler)
        except OSError as exc:
            logger.warning("File logging disabled: %s", exc)

    return logger


def mask_token(token: Optional[str]) -> str:
    """Shorten a credential so it can appear in logs."""
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}…{token[-4:]}"


def log_structured(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Log a message with structured context fields.

    In JSON mode the context fields become separate keys, the coloured
    console formatter appends them as key=value pairs.
    """
    logger.log(level, message, extra=context)
