# app/api/v1/endpoints/submissions.py
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_scoring_queue, get_stats_synchronizer
from app.core.config import settings
from app.db.session import get_db
from app.schemas.score import ManualGrade
from app.schemas.submission import (
    SubmissionCreate,
    SubmissionDetail,
    SubmissionPublic,
    SubmissionSubmit,
)
from app.services import submission_service
from app.services.assignment_stats_service import AssignmentStatsSynchronizer
from app.workers.queue import ScoringQueue

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("/", response_model=SubmissionPublic, status_code=status.HTTP_201_CREATED)
def create_submission(
    obj_in: SubmissionCreate,
    db: Session = Depends(get_db),
    stats: AssignmentStatsSynchronizer = Depends(get_stats_synchronizer),
):
    """
    Start (or resume) a submission. Returns the existing one for a repeated
    learner/prompt/assignment.
    """
    return submission_service.create_submission(db, obj_in=obj_in, stats=stats)


@router.get("/{submission_id}", response_model=SubmissionDetail)
def get_submission(submission_id: int, db: Session = Depends(get_db)):
    return submission_service.get_submission(db, submission_id)


@router.put("/{submission_id}/submit", response_model=SubmissionPublic)
def submit_submission(
    submission_id: int,
    obj_in: SubmissionSubmit,
    db: Session = Depends(get_db),
    queue: ScoringQueue = Depends(get_scoring_queue),
    stats: AssignmentStatsSynchronizer = Depends(get_stats_synchronizer),
):
    """
    Save the answer and queue it for scoring; poll GET /submissions/{id}
    for the result.
    """
    return submission_service.submit_submission(
        db,
        submission_id=submission_id,
        obj_in=obj_in,
        queue=queue,
        stats=stats,
        settings=settings,
    )


@router.put("/{submission_id}/grade", response_model=SubmissionDetail)
def grade_submission(
    submission_id: int,
    obj_in: ManualGrade,
    db: Session = Depends(get_db),
    stats: AssignmentStatsSynchronizer = Depends(get_stats_synchronizer),
):
    return submission_service.grade_submission(
        db, submission_id=submission_id, obj_in=obj_in, stats=stats
    )


@router.delete("/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    stats: AssignmentStatsSynchronizer = Depends(get_stats_synchronizer),
):
    submission_service.delete_submission(db, submission_id=submission_id, stats=stats)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
