"""Utility modules for configuration, logging, and error handling."""

from .errors import ClaimLifecycleError, ErrorType

__all__ = [
    'ClaimLifecycleError',
    'ErrorType'
]
