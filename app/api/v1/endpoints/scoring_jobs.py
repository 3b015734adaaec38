# app/api/v1/endpoints/scoring_jobs.py
import logging
from typing import List

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from app.api.deps import get_scoring_queue
from app.core.exceptions import NotFoundError
from app.db.session import get_db
from app.models.enums import ScoringJobStatus
from app.schemas.scoring_job import ScoringJobPublic, ScoringJobStats
from app.services import scoring_job_service, submission_service
from app.workers.queue import ScoringQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scoring-jobs", tags=["scoring-jobs"])


@router.get("/", response_model=List[ScoringJobPublic])
def list_scoring_jobs(
    status: ScoringJobStatus | None = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    return scoring_job_service.list_jobs(db, status=status, skip=skip, limit=limit)


@router.get("/stats", response_model=ScoringJobStats)
def scoring_job_stats(
    db: Session = Depends(get_db),
    queue: ScoringQueue = Depends(get_scoring_queue),
):
    counts = scoring_job_service.count_by_status(db)
    try:
        queue_counts = queue.stats()
    except RedisError as e:
        # job table counts are still meaningful without the transport
        logger.warning(f"Queue stats unavailable: {e}")
        queue_counts = {}
    return ScoringJobStats(**counts, queue=queue_counts)


@router.get("/submission/{submission_id}", response_model=ScoringJobPublic)
def get_scoring_job_for_submission(submission_id: int, db: Session = Depends(get_db)):
    job = scoring_job_service.get_job_for_submission(db, submission_id)
    if job is None:
        raise NotFoundError(f"No scoring job for submission {submission_id}")
    return job


@router.get("/{job_id}", response_model=ScoringJobPublic)
def get_scoring_job(job_id: int, db: Session = Depends(get_db)):
    return scoring_job_service.get_job(db, job_id)


@router.post("/{job_id}/requeue", response_model=ScoringJobPublic)
def requeue_scoring_job(
    job_id: int,
    db: Session = Depends(get_db),
    queue: ScoringQueue = Depends(get_scoring_queue),
):
    """
    Operator action: give a FAILED job a new retry budget, or re-dispatch
    a QUEUED job whose delivery was lost. 409 while a delivery is pending.
    """
    job = scoring_job_service.requeue_job(db, job_id)
    submission = submission_service.get_submission(db, job.submission_id)
    payload = submission_service.build_payload(db, submission, job)
    submission_service.dispatch_scoring(db, queue, payload)
    db.refresh(job)
    return job
