"""
Job Dispatcher
Polling loop that advances persisted jobs without client requests.

Each tick:
    1. start up to `batch_size` queued jobs, oldest first
    2. check every running job with an outstanding prediction, oldest first

Jobs are handled one at a time. A handler error fails only its own job;
tick() itself never raises.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.models.job import Job, JobStatus
from app.workers.base import BaseJobHandler, JobContext, JobServices

logger = logging.getLogger(__name__)


@dataclass
class TickSummary:
    """What one tick did."""
    started: int = 0
    checked: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.started + self.checked


class Dispatcher:
    """Single-instance job dispatcher."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        handlers: Optional[Dict[str, BaseJobHandler]] = None,
        services: Optional[JobServices] = None,
        poll_interval: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        if handlers is None:
            from app.workers.registry import default_handlers
            handlers = default_handlers()

        self.session_factory = session_factory
        self.handlers = handlers
        self.services = services or JobServices.from_settings()
        self.poll_interval = poll_interval if poll_interval is not None else settings.WORKER_POLL_INTERVAL
        self.batch_size = batch_size or settings.WORKER_QUEUED_BATCH_SIZE

    def _queued_ids(self, db: Session) -> List[str]:
        rows = (
            db.query(Job.id)
            .filter(Job.status == JobStatus.QUEUED.value)
            .order_by(Job.created_at.asc(), Job.id.asc())
            .limit(self.batch_size)
            .all()
        )
        return [row.id for row in rows]

    def _pending_ids(self, db: Session) -> List[str]:
        rows = (
            db.query(Job.id)
            .filter(Job.status == JobStatus.RUNNING.value, Job.external_prediction_id.isnot(None))
            .order_by(Job.created_at.asc(), Job.id.asc())
            .all()
        )
        return [row.id for row in rows]

    async def tick(self) -> TickSummary:
        """Run one dispatch pass."""
        summary = TickSummary()
        db = self.session_factory()
        try:
            for job_id in self._queued_ids(db):
                await self._process(db, job_id, "start", summary)

            for job_id in self._pending_ids(db):
                await self._process(db, job_id, "check", summary)
        except SQLAlchemyError as e:
            logger.error(f"[Dispatcher] Tick aborted by database error: {e}")
            db.rollback()
        finally:
            db.close()
        return summary

    async def _process(self, db: Session, job_id: str, phase: str, summary: TickSummary) -> None:
        job = db.get(Job, job_id)
        expected = JobStatus.QUEUED.value if phase == "start" else JobStatus.RUNNING.value
        if job is None or job.status != expected:
            return

        ctx = JobContext(db, job, self.services)
        handler = self.handlers.get(job.type)
        if handler is None:
            summary.failed += 1
            self._fail(ctx, None, f"No handler registered for job type '{job.type}'")
            return

        if phase == "start":
            summary.started += 1
        else:
            summary.checked += 1

        try:
            await getattr(handler, phase)(ctx)
        except Exception as e:
            logger.exception(f"[Dispatcher] {phase} failed for {job.type} job {job_id}: {e}")
            db.rollback()
            summary.failed += 1
            self._fail(ctx, handler, str(e) or type(e).__name__)

    def _fail(self, ctx: JobContext, handler: Optional[BaseJobHandler], message: str) -> None:
        """Mark a job failed after an unhandled error, unless it already finished."""
        job = ctx.job
        try:
            if job.is_terminal:
                logger.warning(f"[Dispatcher] Job {job.id} already {job.status}, not failing: {message}")
                return
            if handler is not None:
                handler.fail(ctx, message)
            else:
                job.mark_failed(message)
                ctx.db.commit()
                logger.error(f"[Dispatcher] Job {job.id} failed: {message}")
        except Exception as e:
            logger.error(f"[Dispatcher] Could not record failure for job {job.id}: {e}")
            ctx.db.rollback()

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Tick until `stop_event` is set, sleeping `poll_interval` seconds between ticks."""
        stop_event = stop_event or asyncio.Event()
        logger.info(
            f"[Dispatcher] Started (interval={self.poll_interval}s, batch={self.batch_size}, "
            f"handlers={sorted(self.handlers)})"
        )

        while not stop_event.is_set():
            summary = await self.tick()
            if summary.total:
                logger.info(
                    f"[Dispatcher] Tick: started={summary.started} checked={summary.checked} "
                    f"failed={summary.failed}"
                )
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue

        logger.info("[Dispatcher] Stopped")
