"""Shared utilities: logger factories and instance naming."""

from ._logging import LogFormatType, create_logger, default_logger, resolve_log_level
from ._names import generate_name, generate_unique_name, is_valid_name, sanitize_name

__all__ = [
    "LogFormatType",
    "create_logger",
    "default_logger",
    "generate_name",
    "generate_unique_name",
    "is_valid_name",
    "resolve_log_level",
    "sanitize_name",
]
