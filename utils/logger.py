# utils/logger.py
import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

_DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
_DEFAULT_FILE  = os.getenv("LOG_FILE", "logs/bot.log")
_AUDIT_FILE = os.getenv("AUDIT_LOG_FILE", "logs/audit.log")
_DEFAULT_MAX_MB = int(os.getenv("LOG_MAX_MB", "5"))      # 5 MB
_DEFAULT_BACKUPS = int(os.getenv("LOG_BACKUPS", "5"))    # keep 5 rotated files


def _rotating_handler(path: str, formatter: logging.Formatter, level: int) -> RotatingFileHandler:
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=_DEFAULT_MAX_MB * 1024 * 1024,
        backupCount=_DEFAULT_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def setup_logger(name: str,
                 level: Union[str, int] = _DEFAULT_LEVEL,
                 log_file: Optional[str] = _DEFAULT_FILE,
                 to_console: bool = True) -> logging.Logger:
    """
    Create/get a logger with both console and rotating-file handlers.
    Re-using the same name returns the same configured logger (no duplicate handlers).
    """
    logger = logging.getLogger(name)
    if logger.handlers:  # already configured
        return logger

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if log_file:
        logger.addHandler(_rotating_handler(log_file, formatter, level))

    if to_console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(level)
        logger.addHandler(stream_handler)

    # HTTP client chatter (requests / python-telegram-bot)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logger


def setup_audit_logger(log_file: Optional[str] = _AUDIT_FILE) -> logging.Logger:
    """One JSON line per processed signal, nothing else."""
    logger = logging.getLogger("audit")
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)
    logger.propagate = False
    if log_file:
        logger.addHandler(_rotating_handler(log_file, logging.Formatter("%(message)s"), logging.INFO))
    else:
        logger.addHandler(logging.NullHandler())
    return logger


def log_audit_record(outcome) -> None:
    """Event-bus subscriber for 'trade_outcome'."""
    record = outcome.to_dict() if hasattr(outcome, "to_dict") else dict(outcome)
    setup_audit_logger().info(json.dumps(record, default=str, ensure_ascii=False))
