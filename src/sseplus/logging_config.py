"""Structured logging via structlog, with optional hourly rotating file output.

The library only logs through ``structlog.get_logger()``; applications call
``setup_logging`` once at startup if they want this configuration.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler
from typing import TextIO

import structlog

from .config import ClientSettings

LOG_FILENAME = "sseplus.jsonl"


class _TeeWriter:
    """Write structured log lines to stderr and, optionally, a log file."""

    def __init__(self, log_file: TextIO | None) -> None:
        self._log_file = log_file

    def write(self, message: str) -> None:
        if self._log_file is not None:
            self._log_file.write(message)
            self._log_file.flush()
        sys.stderr.write(message)

    def flush(self) -> None:
        if self._log_file is not None:
            self._log_file.flush()
        sys.stderr.flush()


def setup_logging(
    log_level: str = "INFO",
    log_dir: str | None = None,
    settings: ClientSettings | None = None,
) -> None:
    """Configure structlog with JSON output to stderr (+ hourly files if log_dir).

    When ``settings`` is given, its ``log_level`` and ``log_dir`` are used.
    """
    if settings is not None:
        log_level, log_dir = settings.log_level, settings.log_dir
    log_level = log_level.upper()
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    log_file = None
    if log_dir is not None:
        os.makedirs(log_dir, exist_ok=True)
        log_path = os.path.join(log_dir, LOG_FILENAME)

        # File handler for stdlib loggers (httpx, httpcore): hourly rotation
        file_handler = TimedRotatingFileHandler(
            filename=log_path,
            when="H",
            interval=1,
            backupCount=168,  # 7 days of hourly logs
            utc=True,
        )
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)
        log_file = open(log_path, "a")  # noqa: SIM115

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level)
        ),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=_TeeWriter(log_file)),
        cache_logger_on_first_use=True,
    )
