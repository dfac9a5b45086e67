"""structlog logger factories for Arc.

Loggers are built with `structlog.wrap_logger` and never touch global
structlog configuration, so several runtimes (and tests) can coexist in
one process with different levels and sinks.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from os import getenv
from pathlib import Path
from typing import Literal, cast

import structlog
from structlog.typing import FilteringBoundLogger, Processor

LogFormatType = Literal["json", "text"]

DEBUG_ENV = "ARC_DEBUG"
LEVEL_ENV = "ARC_LOG_LEVEL"


def resolve_log_level(level: str | None = None) -> int:
    """Pick the effective log level.

    Precedence: ``ARC_DEBUG`` (any non-empty value forces DEBUG), then
    `level`, then ``ARC_LOG_LEVEL``, then INFO. Unknown names map to INFO.

    Args:
        level: Level name from configuration or the command line.

    Returns:
        A stdlib logging level.
    """
    if getenv(DEBUG_ENV):
        return logging.DEBUG
    name = level if level is not None else getenv(LEVEL_ENV, "info")
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)


def _processors(log_format: LogFormatType) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if log_format == "json":
        processors.extend(
            [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
        )
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def _file_sink(path: Path, level: int, max_bytes: int, backup_count: int) -> logging.Logger:
    # One stdlib logger per file; handlers are replaced so repeated calls
    # for the same file do not duplicate lines.
    sink = logging.getLogger(f"arc.file.{path}")
    sink.handlers.clear()
    sink.propagate = False
    sink.setLevel(level)
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count)
    handler.setFormatter(logging.Formatter("%(message)s"))
    sink.addHandler(handler)
    return sink


def create_logger(
    *,
    level: str | None = None,
    log_format: LogFormatType = "json",
    log_file: str = "",
    max_bytes: int = 0,
    backup_count: int = 0,
) -> FilteringBoundLogger:
    """Create a standalone logger.

    Args:
        level: Level name; see `resolve_log_level` for precedence.
        log_format: ``json`` for one JSON object per line, ``text`` for
            human-readable key=value output.
        log_file: File to append to; stderr when empty.
        max_bytes: Rotate the file at this size; 0 never rotates.
        backup_count: Rotated files kept when rotating.

    Returns:
        A bound logger filtering below the effective level.
    """
    effective_level = resolve_log_level(level)

    raw_logger: object
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        if max_bytes > 0:
            raw_logger = _file_sink(path, effective_level, max_bytes, backup_count)
        else:
            raw_logger = structlog.WriteLoggerFactory(file=path.open("a", encoding="utf-8"))()
    else:
        raw_logger = structlog.PrintLoggerFactory(file=sys.stderr)()

    return cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            raw_logger,
            processors=_processors(log_format),
            wrapper_class=structlog.make_filtering_bound_logger(effective_level),
            context_class=dict,
        ),
    )


def default_logger(component: str) -> FilteringBoundLogger:
    """Text logger on stderr for components built without one."""
    return create_logger(log_format="text").bind(component=component)
