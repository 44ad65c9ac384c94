"""
Job Model
Database model for orchestrated AI jobs.
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Text, DateTime, Integer, JSON, Index

from app.core.database import Base
from app.core.exceptions import InvalidTransitionError


class JobType(str, Enum):
    """Job types handled by the dispatcher."""
    IMAGE_GENERATE = "image_generate"
    REMOVE_BACKGROUND = "remove_background"
    UPSCALE = "upscale"
    COMPOSITE_MOCKUP = "composite_mockup"
    GHOST_MANNEQUIN = "ghost_mannequin"
    MODEL3D_CONCEPT = "model3d_concept"
    MODEL3D_ANGLES = "model3d_angles"
    MODEL3D_RECONSTRUCT = "model3d_reconstruct"


class JobStatus(str, Enum):
    """Job lifecycle status."""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STATUSES = {JobStatus.SUCCEEDED.value, JobStatus.FAILED.value, JobStatus.SKIPPED.value}

# running -> queued is the soft-requeue edge used while waiting on a dependency
ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED.value: {JobStatus.RUNNING.value},
    JobStatus.RUNNING.value: {
        JobStatus.QUEUED.value,
        JobStatus.SUCCEEDED.value,
        JobStatus.FAILED.value,
        JobStatus.SKIPPED.value,
    },
}


class Job(Base):
    """Orchestrated unit of work."""

    __tablename__ = "ai_jobs"

    id = Column(String, primary_key=True)
    product_id = Column(String, nullable=True, index=True)  # Null for 3D pipeline jobs

    type = Column(String, nullable=False, index=True)
    status = Column(String, default=JobStatus.QUEUED.value, nullable=False, index=True)

    input = Column(JSON, default=dict)
    output = Column(JSON, default=dict)

    # Set only while an async provider prediction is outstanding
    external_prediction_id = Column(String, nullable=True)

    error = Column(Text, nullable=True)
    requeue_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_ai_jobs_product_type", "product_id", "type"),
    )

    def __repr__(self):
        return f"<Job {self.id} {self.type} ({self.status})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, target: str):
        """Move to `target`, refusing anything outside the lifecycle."""
        target = JobStatus(target).value
        if target not in ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidTransitionError(self.id, self.status, target)
        self.status = target

    def mark_failed(self, message: str):
        """Fail the job; a job that never started is marked running first."""
        if self.status == JobStatus.QUEUED.value:
            self.transition_to(JobStatus.RUNNING)
        self.transition_to(JobStatus.FAILED)
        self.error = message
        self.external_prediction_id = None
