"""
Base Job Handler
Shared lifecycle plumbing for per-type job handlers: status transitions,
soft-requeue, progress fragments and the generic prediction check.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    WorkerException,
    NonRetryableError,
    RetryableError,
    ProviderError,
    InvalidTransitionError,
)
from app.core.retry import with_retry
from app.models.job import Job, JobStatus
from app.schemas.job import ProgressUpdate, SkippedOutput, parse_job_input
from app.services.asset_persister import AssetPersister
from app.services.asset_resolver import AssetResolver
from app.services.ledger import Ledger
from app.services.prediction import extract_output_url
from app.services.removebg import RemoveBgService
from app.services.replicate_client import ReplicateService, PredictionState
from app.services.storage import StorageService

logger = logging.getLogger(__name__)


@dataclass
class JobServices:
    """External collaborators shared by every handler."""
    replicate: ReplicateService
    removebg: RemoveBgService
    storage: StorageService
    clock: Callable[[], float] = time.time
    max_requeues: int = field(default_factory=lambda: settings.DEPENDENCY_MAX_REQUEUES)

    @classmethod
    def from_settings(cls) -> "JobServices":
        return cls(
            replicate=ReplicateService(),
            removebg=RemoveBgService(),
            storage=StorageService(),
        )


class JobContext:
    """Everything a handler needs to advance one job within one tick."""

    def __init__(self, db: Session, job: Job, services: JobServices):
        self.db = db
        self.job = job
        self.services = services
        self.resolver = AssetResolver(db)
        self.ledger = Ledger(db)
        self.persister = AssetPersister(db, services.storage, clock=services.clock)

    @property
    def input(self):
        """Typed input variant for this job."""
        return parse_job_input(self.job.type, self.job.input)

    def find_job(self, job_type: str, product_id: Optional[str] = None) -> Optional[Job]:
        """Most recent job of a type for this job's product."""
        return (
            self.db.query(Job)
            .filter(Job.product_id == (product_id or self.job.product_id), Job.type == job_type)
            .order_by(Job.created_at.desc(), Job.id.desc())
            .first()
        )

    def find_succeeded_job(self, job_type: str) -> Optional[Job]:
        return (
            self.db.query(Job)
            .filter(
                Job.product_id == self.job.product_id,
                Job.type == job_type,
                Job.status == JobStatus.SUCCEEDED.value,
            )
            .order_by(Job.created_at.desc(), Job.id.desc())
            .first()
        )


class BaseJobHandler(ABC):
    """
    Abstract base class for job type handlers.

    start(): mark the job running, then either finish synchronous work or
             record an external prediction id.
    check(): poll the external prediction; finish, fail, or leave it running.
    """

    job_type: str = ""

    def __init__(self):
        self.start_time: Optional[datetime] = None

    @abstractmethod
    async def start(self, ctx: JobContext) -> None:
        """Begin work on a queued job."""

    async def check(self, ctx: JobContext) -> None:
        """Poll the outstanding prediction of a running job."""
        prediction = await ctx.services.replicate.get_prediction(ctx.job.external_prediction_id)
        if not prediction.is_terminal:
            logger.debug(f"[{self.job_type}] Job {ctx.job.id} still {prediction.status}")
            return

        if prediction.succeeded:
            await self.on_prediction_succeeded(ctx, prediction)
        else:
            self.fail(ctx, self.prediction_error(prediction))

    async def on_prediction_succeeded(self, ctx: JobContext, prediction: PredictionState) -> None:
        raise NonRetryableError(f"{self.job_type} jobs have no asynchronous phase")

    @staticmethod
    def prediction_error(prediction: PredictionState) -> str:
        if prediction.error:
            return prediction.error
        return f"Prediction {prediction.id} {prediction.status}"

    @staticmethod
    def prediction_url(prediction: PredictionState) -> str:
        return extract_output_url(prediction.output)

    # --- Lifecycle ---

    def _log_start(self, ctx: JobContext, **context):
        """Log task start with context."""
        self.start_time = datetime.utcnow()
        logger.info(f"[START] {self.job_type} {ctx.job.id} | Context: {context}")

    def _log_complete(self, ctx: JobContext, result_summary: str = ""):
        """Log task completion with timing."""
        duration = (datetime.utcnow() - self.start_time).total_seconds() if self.start_time else 0
        logger.info(f"[COMPLETE] {self.job_type} {ctx.job.id} | Duration: {duration:.2f}s | {result_summary}")

    def mark_running(self, ctx: JobContext) -> None:
        ctx.job.transition_to(JobStatus.RUNNING)
        ctx.db.commit()

    def soft_requeue(self, ctx: JobContext, reason: str) -> None:
        """
        Put the job back in the queue to wait for a dependency.

        Past `max_requeues` attempts (0 = unlimited) the job fails instead.
        """
        job = ctx.job
        job.requeue_count = (job.requeue_count or 0) + 1
        limit = ctx.services.max_requeues
        if limit and job.requeue_count > limit:
            self.fail(ctx, f"Dependency timed out after {limit} requeues: {reason}")
            return

        job.transition_to(JobStatus.QUEUED)
        ctx.db.commit()
        logger.info(f"[REQUEUE] {self.job_type} {job.id} (#{job.requeue_count}): {reason}")

    def merge_output(self, ctx: JobContext, fragment: Dict[str, Any]) -> None:
        """Merge keys into the job output without dropping earlier ones."""
        ctx.job.output = {**(ctx.job.output or {}), **fragment}

    def update_progress(self, ctx: JobContext, message: str, step: int, total_steps: int) -> None:
        self.merge_output(ctx, ProgressUpdate(message=message, step=step, total_steps=total_steps).dump())
        ctx.db.commit()
        logger.debug(f"[{self.job_type}] {ctx.job.id} progress {step}/{total_steps}: {message}")

    def await_prediction(self, ctx: JobContext, prediction_id: str, fragment: Optional[Dict[str, Any]] = None) -> None:
        ctx.job.external_prediction_id = prediction_id
        if fragment:
            self.merge_output(ctx, fragment)
        ctx.db.commit()
        logger.info(f"[{self.job_type}] {ctx.job.id} waiting on prediction {prediction_id}")

    def succeed(self, ctx: JobContext, output: Dict[str, Any], replace: bool = False) -> None:
        job = ctx.job
        if replace:
            job.output = dict(output)
        else:
            self.merge_output(ctx, output)
        job.external_prediction_id = None
        job.error = None
        job.transition_to(JobStatus.SUCCEEDED)
        ctx.db.commit()
        self._log_complete(ctx, f"Job {job.id} succeeded")

    def skip(self, ctx: JobContext, reason: str) -> None:
        self.merge_output(ctx, SkippedOutput(reason=reason).dump())
        ctx.job.transition_to(JobStatus.SKIPPED)
        ctx.db.commit()
        logger.info(f"[SKIP] {self.job_type} {ctx.job.id}: {reason}")

    def fail(self, ctx: JobContext, message: str) -> None:
        """Terminal failure: record the error and run the type's failure hook."""
        job = ctx.job
        job.mark_failed(message)
        self.on_failed(ctx, message)
        ctx.db.commit()
        logger.error(f"[ERROR] {self.job_type} {job.id} | Error: {message}")

    def on_failed(self, ctx: JobContext, message: str) -> None:
        """Mirror a failure onto related records (no-op by default)."""


__all__ = [
    "WorkerException",
    "NonRetryableError",
    "RetryableError",
    "ProviderError",
    "InvalidTransitionError",
    "with_retry",
    "JobServices",
    "JobContext",
    "BaseJobHandler",
]
