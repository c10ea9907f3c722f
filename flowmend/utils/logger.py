# flowmend/utils/logger.py
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler

ROOT_LOGGER = "flowmend"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Lowest level first; a record takes the color of the highest threshold it reaches.
_COLORS = ((logging.INFO, "92"), (logging.WARNING, "93"), (logging.ERROR, "91"))


def parse_level(value: str | int | None) -> int | None:
    """'debug' / 'WARN' / 10 -> numeric level; None for empty or unknown names."""
    if isinstance(value, int):
        return value
    if not value:
        return None
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else None


class _ColorFormatter(logging.Formatter):
    """ANSI-colored lines, only when stderr is a terminal."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if not sys.stderr.isatty():
            return text
        code = None
        for threshold, color in _COLORS:
            if record.levelno >= threshold:
                code = color
        return f"\033[{code}m{text}\033[0m" if code else text


def _file_handler(log_dir: str | Path, file_name: str, max_mb: int, backups: int) -> logging.Handler:
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path / file_name),
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def init_logger(
    name: str = ROOT_LOGGER,
    level: int | None = None,
    log_dir: str | Path | None = None,
    file_name: str = "flowmend.log",
    file_max_mb: int = 5,
    file_backup: int = 3,
) -> logging.Logger:
    """
    (Re)configure the project logger.

    Level comes from `level`, else LOG_LEVEL, else INFO. Records go to stderr
    (stdout carries CLI reports) and, when `log_dir` or LOG_DIR is set, to a
    rotating file in that directory.
    """
    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.propagate = False
    if level is None:
        level = parse_level(os.getenv("LOG_LEVEL"))
    if level is None:
        level = logging.INFO
    logger.setLevel(level)

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(_ColorFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    handlers = [stream]

    log_dir = log_dir or os.getenv("LOG_DIR")
    if log_dir:
        handlers.append(_file_handler(log_dir, file_name, file_max_mb, file_backup))

    for handler in handlers:
        handler.setLevel(level)
        logger.addHandler(handler)
    return logger


def get_logger(child: str) -> logging.Logger:
    """Child of the project logger, e.g. get_logger("autofix") -> 'flowmend.autofix'."""
    return logging.getLogger(ROOT_LOGGER).getChild(child)
