"""Utilities for the alignopt package."""

from alignopt.utils.logging import (
    get_logger,
    log_operation,
    set_log_level,
)

__all__ = [
    "get_logger",
    "set_log_level",
    "log_operation",
]
