# Workers package - database-driven job dispatch

from app.workers.base import (
    WorkerException,
    NonRetryableError,
    RetryableError,
    with_retry,
    JobServices,
    JobContext,
    BaseJobHandler,
)
from app.workers.dispatcher import Dispatcher, TickSummary
from app.workers.registry import default_handlers

__all__ = [
    # Base
    "WorkerException",
    "NonRetryableError",
    "RetryableError",
    "with_retry",
    "JobServices",
    "JobContext",
    "BaseJobHandler",
    # Dispatch
    "Dispatcher",
    "TickSummary",
    "default_handlers",
]
