"""
Jobs API Routes
Read-only job status queries; clients poll these for progress and results.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.job import Job, JobStatus, JobType
from app.schemas.job import JobResponse

router = APIRouter()


@router.get("/{job_id}", response_model=JobResponse)
async def get_job_status(
    job_id: str,
    db: Session = Depends(get_db),
):
    """Get job status, merged progress output and error."""
    job = db.get(Job, job_id)

    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )

    return job


@router.get("", response_model=List[JobResponse])
async def list_jobs(
    product_id: Optional[str] = None,
    job_status: Optional[JobStatus] = None,
    job_type: Optional[JobType] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """List jobs for a product, status or type, newest first."""
    query = db.query(Job)

    if product_id:
        query = query.filter(Job.product_id == product_id)
    if job_status:
        query = query.filter(Job.status == job_status.value)
    if job_type:
        query = query.filter(Job.type == job_type.value)

    return (
        query.order_by(Job.created_at.desc(), Job.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
