"""
Worker Exceptions
Error hierarchy shared by services and job handlers.
"""

from typing import Optional


class WorkerException(Exception):
    """Base exception for worker errors."""

    def __init__(self, message: str, retryable: bool = True, details: Optional[dict] = None):
        super().__init__(message)
        self.retryable = retryable
        self.details = details or {}


class NonRetryableError(WorkerException):
    """Error that should NOT be retried (e.g., invalid input, missing source)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, retryable=False, details=details)


class RetryableError(WorkerException):
    """Error that SHOULD be retried (e.g., provider timeout)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, retryable=True, details=details)


class ProviderError(NonRetryableError):
    """An external provider reported a terminal failure."""

    def __init__(self, provider: str, message: str, details: Optional[dict] = None):
        super().__init__(f"{provider}: {message}", details=details)
        self.provider = provider


class InvalidTransitionError(NonRetryableError):
    """A job status change outside the allowed lifecycle."""

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")
        self.current = current
        self.target = target


__all__ = [
    "WorkerException",
    "NonRetryableError",
    "RetryableError",
    "ProviderError",
    "InvalidTransitionError",
]
