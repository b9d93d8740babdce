"""Logging setup for the gateway CLI.

stdout carries the MCP protocol while serving, so logs go to stderr or to a
file and never to stdout. structlog events share the stdlib handler.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from logging.config import dictConfig
from pathlib import Path
from typing import Annotated

import structlog
import typer

ENV_LOG_FILE = "MCP_GUARD_LOG_FILE"
ENV_LOG_LEVEL = "MCP_GUARD_LOG_LEVEL"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def configure_logging(level: LogLevel | str = LogLevel.INFO, log_file: Path | None = None) -> None:
    """Route stdlib and structlog logging to stderr, or to ``log_file`` when given.

    Raises:
        ValueError: If ``level`` is not a LogLevel name
    """
    level = LogLevel(str(level).upper())
    if log_file is None:
        handler = {"class": "logging.StreamHandler", "stream": "ext://sys.stderr"}
    else:
        handler = {"class": "logging.FileHandler", "filename": str(log_file.resolve()), "encoding": "utf-8"}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"gateway": {"format": LOG_FORMAT}},
            "handlers": {"gateway": {**handler, "formatter": "gateway"}},
            "root": {"level": level.value, "handlers": ["gateway"]},
        }
    )
    structlog.configure(
        processors=[structlog.processors.add_log_level, structlog.processors.KeyValueRenderer(key_order=["event"])],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.value)),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def make_logging_callback(default_level: LogLevel = LogLevel.INFO):
    """Typer callback exposing --log-level and --log-file on every command."""

    def _callback(
        log_level: Annotated[
            LogLevel, typer.Option("--log-level", envvar=ENV_LOG_LEVEL, case_sensitive=False, help="Log level")
        ] = default_level,
        log_file: Annotated[
            Path | None,
            typer.Option("--log-file", envvar=ENV_LOG_FILE, dir_okay=False, help="Log to this file instead of stderr"),
        ] = None,
    ) -> None:
        """Aggregate MCP servers behind one moderated endpoint."""
        configure_logging(log_level, log_file)

    return _callback
