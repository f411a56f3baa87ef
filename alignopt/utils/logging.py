"""
Minimal logging infrastructure for the alignopt package.

All loggers live under the ``alignopt`` namespace so that a single handler
on the package root controls optimizer, metric and estimator output.
"""

import inspect
import logging
import time
from contextlib import contextmanager
from typing import Optional

_DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class MinimalLogger:
    """Singleton logger manager for the alignopt package."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._configured = False
        self._root_logger_name = "alignopt"
        self._initialized = True

    def configure(self, level: str = "INFO", format_string: Optional[str] = None):
        """Attach a stream handler to the package root logger once."""
        if self._configured:
            return

        root_logger = logging.getLogger(self._root_logger_name)
        root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

        if not root_logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(format_string or _DEFAULT_FORMAT))
            root_logger.addHandler(handler)

        self._configured = True

    def set_level(self, level):
        """Change the level of the package root logger."""
        if isinstance(level, str):
            level = getattr(logging, level.upper(), logging.WARNING)
        logging.getLogger(self._root_logger_name).setLevel(level)

    def get_logger(self, name: str) -> logging.Logger:
        """Get or create a logger with hierarchical naming."""
        if name.startswith(self._root_logger_name):
            full_name = name
        elif name == "__main__":
            full_name = f"{self._root_logger_name}.main"
        else:
            full_name = f"{self._root_logger_name}.{name}"

        if not self._configured:
            self.configure()

        return logging.getLogger(full_name)


_logger_manager = MinimalLogger()


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance with automatic naming.

    Args:
        name: Logger name. If None, uses caller's module name.

    Returns:
        Logger under the ``alignopt`` namespace.
    """
    if name is None:
        frame = inspect.currentframe()
        try:
            caller_frame = frame.f_back
            if caller_frame:
                name = caller_frame.f_globals.get("__name__", "unknown")
        finally:
            del frame

    return _logger_manager.get_logger(name or "unknown")


def set_log_level(level) -> None:
    """Set the level for every alignopt logger (name or ``logging`` constant)."""
    _logger_manager.set_level(level)


@contextmanager
def log_operation(
    operation_name: str,
    logger: Optional[logging.Logger] = None,
    level: int = logging.INFO,
):
    """
    Context manager for logging timed operations.

    Args:
        operation_name: Name of the operation.
        logger: Logger to use. If None, creates one for caller's module.
        level: Logging level to use.
    """
    if logger is None:
        logger = get_logger()

    logger.log(level, f"Starting operation: {operation_name}")
    start_time = time.perf_counter()

    try:
        yield logger
        duration = time.perf_counter() - start_time
        logger.log(level, f"Completed operation: {operation_name} in {duration:.3f}s")
    except Exception as e:
        duration = time.perf_counter() - start_time
        logger.log(
            logging.ERROR,
            f"Failed operation: {operation_name} after {duration:.3f}s: {e}",
        )
        raise
