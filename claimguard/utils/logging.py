"""Structured logging setup for the claim lifecycle coordinator."""

import contextvars
import functools
import inspect
import logging
from typing import Optional, Dict, Any
from pathlib import Path


# Per-task logging context; asyncio copies it into every new task
_log_context: contextvars.ContextVar = contextvars.ContextVar("claimguard_log_context", default={})


class ContextFilter(logging.Filter):
    """Add context information (claim id, operation, ...) to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context fields to log record."""
        for key, value in _log_context.get().items():
            setattr(record, key, value)
        return True

    @property
    def context(self) -> Dict[str, Any]:
        return dict(_log_context.get())

    def set_context(self, **kwargs):
        """Set context fields for logging."""
        updated = dict(_log_context.get())
        updated.update(kwargs)
        _log_context.set(updated)

    def clear_context(self):
        """Clear all context fields."""
        _log_context.set({})


# Global context filter instance
_context_filter = ContextFilter()


def setup_logging(
    level: str = "INFO",
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up structured logging with optional file output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format string for log messages
        log_file: Optional path to log file

    Returns:
        Configured root logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(_context_filter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(_context_filter)
        root_logger.addHandler(file_handler)

    return root_logger


def set_context(**kwargs):
    """
    Set context fields for all subsequent log messages in the current task.

    Example:
        set_context(claim_id="claim-1700000000000-0xabc", operation="decrypt_and_verify")
        logger.info("Submitting proof")  # Record carries claim_id and operation

    Args:
        **kwargs: Context key-value pairs
    """
    _context_filter.set_context(**kwargs)


def clear_context():
    """Clear all context fields."""
    _context_filter.clear_context()


def get_context() -> Dict[str, Any]:
    """Return a copy of the current logging context."""
    return _context_filter.context


def with_context(**context_kwargs):
    """
    Decorator to add context to all log messages within a function.

    Works for plain functions and coroutine functions. Context set inside the
    call is discarded when the call returns.

    Example:
        @with_context(operation="refresh_claims")
        async def refresh_claims(self):
            logger.info("Refreshing")  # Record carries operation

    Args:
        **context_kwargs: Context key-value pairs
    """
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                token = _log_context.set({**_log_context.get(), **context_kwargs})
                try:
                    return await func(*args, **kwargs)
                finally:
                    _log_context.reset(token)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            token = _log_context.set({**_log_context.get(), **context_kwargs})
            try:
                return func(*args, **kwargs)
            finally:
                _log_context.reset(token)

        return wrapper
    return decorator
