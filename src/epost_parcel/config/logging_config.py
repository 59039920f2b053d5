from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union
import os
import sys

# Tag configured loggers so repeated calls don't stack handlers.
_EPOST_LOGGER_MARK = "_epost_parcel_logger_configured"

# timestamp | level | logger | message
_DEFAULT_FMT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Carrier bodies can be large; keep log lines readable.
PAYLOAD_PREVIEW_CHARS = 2000

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}


def _coerce_level(level: Optional[Union[int, str]]) -> int:
    """
    Accepts logging levels as int or str (e.g., 'INFO', 'debug').
    Falls back to LOG_LEVEL env, then INFO.
    """
    if level is None:
        env_level = os.getenv("LOG_LEVEL")
        if env_level:
            level = env_level

    if isinstance(level, int):
        return level

    if isinstance(level, str):
        return _LEVELS.get(level.strip().upper(), logging.INFO)

    return logging.INFO


def default_log_path_for(path: Union[str, Path]) -> Path:
    """
    Log file that sits next to a data file: /data/shipments.json -> /data/shipments.log
    """
    return Path(path).with_suffix(".log")


def mask_secret(value: Optional[str], keep: int = 4) -> str:
    """'abcdef1234' -> '***1234'. Never log a key in full."""
    if not value:
        return "NOT_SET"
    return "***" + value[-keep:]


def preview(text: Optional[str], limit: int = PAYLOAD_PREVIEW_CHARS) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."


def get_logger(
    name: Optional[str] = None,
    *,
    level: Optional[Union[int, str]] = None,
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    propagate: bool = False,
    fmt: str = _DEFAULT_FMT,
    datefmt: str = _DEFAULT_DATEFMT,
    max_bytes: int = 5_000_000,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Create/configure a logger. Safe to call multiple times:
    - Won't duplicate existing handlers
    - Will add missing targets (e.g., add file later)
    """
    logger = logging.getLogger(name)
    logger.setLevel(_coerce_level(level))
    logger.propagate = propagate

    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    def _has_console() -> bool:
        for h in logger.handlers:
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
                if getattr(h, "stream", None) in (sys.stderr, sys.stdout):
                    return True
        return False

    def _has_file(path: Path) -> bool:
        for h in logger.handlers:
            if isinstance(h, RotatingFileHandler):
                try:
                    if Path(h.baseFilename) == path.resolve():
                        return True
                except OSError:
                    pass
        return False

    if console and not _has_console():
        sh = logging.StreamHandler(stream=sys.stderr)
        sh.setFormatter(formatter)
        sh.setLevel(logger.level)
        logger.addHandler(sh)

    if log_file is not None:
        log_path = Path(log_file)
        if not _has_file(log_path):
            log_path.parent.mkdir(parents=True, exist_ok=True)
            fh = RotatingFileHandler(
                filename=str(log_path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
                delay=True,
            )
            fh.setFormatter(formatter)
            fh.setLevel(logger.level)
            logger.addHandler(fh)

    # Mark configured for external checks, but don't early-return above.
    setattr(logger, _EPOST_LOGGER_MARK, True)
    return logger
