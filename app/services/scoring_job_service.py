# app/services/scoring_job_service.py
"""
Scoring Job Tracker.

Every transition is a single conditional UPDATE (compare-and-set on the
current status) so concurrent workers cannot lose updates or both win a claim.
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, InvalidStateError, NotFoundError
from app.models.enums import ScoringJobStatus
from app.models.scoring_job import ScoringJob

QUEUED = ScoringJobStatus.QUEUED.value
PROCESSING = ScoringJobStatus.PROCESSING.value
COMPLETED = ScoringJobStatus.COMPLETED.value
FAILED = ScoringJobStatus.FAILED.value


def create_job(db: Session, *, submission_id: int, rule_id: int | None = None) -> ScoringJob:
    """Flushes but does not commit: created inside the submit transaction."""
    existing = get_job_for_submission(db, submission_id)
    if existing is not None:
        raise ConflictError(f"Scoring job already exists for submission {submission_id}")

    job = ScoringJob(
        submission_id=submission_id,
        rule_id=rule_id,
        status=QUEUED,
        retry_count=0,
        retry_baseline=0,
        resubmit_count=0,
        # the submit dispatches right after commit
        next_attempt_at=datetime.now(timezone.utc),
    )
    db.add(job)
    try:
        db.flush()
    except IntegrityError as e:
        raise ConflictError(f"Scoring job already exists for submission {submission_id}") from e
    return job


def get_job(db: Session, job_id: int) -> ScoringJob:
    job = db.get(ScoringJob, job_id)
    if job is None:
        raise NotFoundError(f"Scoring job {job_id} not found")
    return job


def get_job_for_submission(db: Session, submission_id: int) -> Optional[ScoringJob]:
    return db.query(ScoringJob).filter(ScoringJob.submission_id == submission_id).first()


def list_jobs(
    db: Session,
    *,
    status: ScoringJobStatus | None = None,
    skip: int = 0,
    limit: int = 100,
) -> List[ScoringJob]:
    query = db.query(ScoringJob)
    if status is not None:
        query = query.filter(ScoringJob.status == ScoringJobStatus(status).value)
    return query.order_by(ScoringJob.created_at.asc()).offset(skip).limit(limit).all()


def count_by_status(db: Session) -> dict[str, int]:
    counts = {s.value: 0 for s in ScoringJobStatus}
    rows = db.query(ScoringJob.status, func.count(ScoringJob.id)).group_by(ScoringJob.status).all()
    for status, count in rows:
        counts[status] = count
    return counts


def _reload(db: Session, submission_id: int) -> Optional[ScoringJob]:
    job = get_job_for_submission(db, submission_id)
    if job is not None:
        db.refresh(job)
    return job


def claim_job(db: Session, submission_id: int) -> Optional[ScoringJob]:
    """
    QUEUED -> PROCESSING. Returns None when the job is not QUEUED (another
    delivery already owns it, or it is terminal).
    """
    claimed = db.execute(
        update(ScoringJob)
        .where(ScoringJob.submission_id == submission_id, ScoringJob.status == QUEUED)
        .values(status=PROCESSING, started_at=datetime.now(timezone.utc), next_attempt_at=None)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    if not claimed:
        return None
    return _reload(db, submission_id)


def complete_job(db: Session, submission_id: int) -> bool:
    """PROCESSING -> COMPLETED. Caller commits."""
    return bool(
        db.execute(
            update(ScoringJob)
            .where(ScoringJob.submission_id == submission_id, ScoringJob.status == PROCESSING)
            .values(status=COMPLETED, completed_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        ).rowcount
    )


def attempts_in_budget(job: ScoringJob) -> int:
    """Failed attempts since the last operator requeue."""
    return job.retry_count - (job.retry_baseline or 0)


def record_failure(
    db: Session,
    submission_id: int,
    error_message: str,
    *,
    max_retries: int,
    retry_at: datetime,
) -> Optional[ScoringJob]:
    """
    PROCESSING -> QUEUED (retry due at retry_at) or FAILED, decided in the
    same UPDATE that increments retry_count.
    """
    next_count = ScoringJob.retry_count + 1
    exhausted = next_count - ScoringJob.retry_baseline >= max_retries
    updated = db.execute(
        update(ScoringJob)
        .where(ScoringJob.submission_id == submission_id, ScoringJob.status == PROCESSING)
        .values(
            retry_count=next_count,
            status=case((exhausted, FAILED), else_=QUEUED),
            next_attempt_at=case((exhausted, None), else_=retry_at),
            error_message=error_message,
        )
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    if not updated:
        return None
    return _reload(db, submission_id)


def clear_pending_delivery(db: Session, submission_id: int) -> bool:
    """The queue refused a delivery: the QUEUED job is now requeueable."""
    cleared = db.execute(
        update(ScoringJob)
        .where(ScoringJob.submission_id == submission_id, ScoringJob.status == QUEUED)
        .values(next_attempt_at=None)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    return bool(cleared)


def requeue_job(db: Session, job_id: int) -> ScoringJob:
    """
    Operator action.

    A FAILED job goes back to QUEUED with a new budget of max_retries
    attempts; retry_count keeps counting. A QUEUED job whose delivery was
    lost (no pending attempt) is marked pending again so the caller can
    dispatch it. A QUEUED job with a delivery still in the queue is refused,
    so one job never has two delivery chains.
    """
    job = get_job(db, job_id)
    now = datetime.now(timezone.utc)

    if job.status == QUEUED:
        requeued = db.execute(
            update(ScoringJob)
            .where(
                ScoringJob.id == job_id,
                ScoringJob.status == QUEUED,
                ScoringJob.next_attempt_at.is_(None),
            )
            .values(next_attempt_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()
        if not requeued:
            raise InvalidStateError(f"Scoring job {job_id} already has a delivery pending")
    else:
        requeued = db.execute(
            update(ScoringJob)
            .where(ScoringJob.id == job_id, ScoringJob.status == FAILED)
            .values(
                status=QUEUED,
                retry_baseline=ScoringJob.retry_count,
                resubmit_count=ScoringJob.resubmit_count + 1,
                next_attempt_at=now,
                completed_at=None,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()
        if not requeued:
            raise InvalidStateError(
                f"Scoring job {job_id} is {job.status}; only failed jobs can be requeued"
            )
    db.refresh(job)
    return job
