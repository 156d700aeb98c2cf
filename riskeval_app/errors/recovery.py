"""
Recovery strategy classifications for error handling.

Errors in this module are retried locally a bounded number of times
before they are surfaced to the caller.
"""

from typing import Any, Optional


class RecoverableError(Exception):
    """Mixin for errors that can be recovered from automatically."""

    def __init__(self, message: str, retry_count: int = 0,
                 max_retries: int = 3, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.retry_count = retry_count
        self.max_retries = max_retries
        self.context = context or {}
        self.recoverable = True

    @property
    def retries_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries


class ConcurrentModificationError(RecoverableError):
    """Optimistic version check failed against the portfolio store."""

    def __init__(self, message: str, expected_version: Optional[int] = None,
                 actual_version: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.expected_version = expected_version
        self.actual_version = actual_version
