# app/services/assignment_stats_service.py
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.assignment import Assignment
from app.models.enums import SubmissionStatus
from app.models.score import Score
from app.models.submission import Submission

logger = logging.getLogger(__name__)


class AssignmentStatsSynchronizer:
    """
    Recomputes assignment counters from submissions/scores.

    Called after every submit, score, grade, link or delete that can change
    the counts. Counters are derived data, so a failed sync is logged and the
    next notification repairs it.
    """

    def sync(self, db: Session, assignment_id: int) -> Assignment | None:
        assignment = db.get(Assignment, assignment_id)
        if assignment is None:
            return None

        rows = (
            db.query(Submission.status, func.count(Submission.id))
            .filter(Submission.assignment_id == assignment_id)
            .group_by(Submission.status)
            .all()
        )
        counts = dict(rows)
        scored = counts.get(SubmissionStatus.SCORED.value, 0)
        submitted = counts.get(SubmissionStatus.SUBMITTED.value, 0) + scored

        average = (
            db.query(func.avg(Score.overall_band))
            .join(Submission, Score.submission_id == Submission.id)
            .filter(
                Submission.assignment_id == assignment_id,
                Submission.status == SubmissionStatus.SCORED.value,
            )
            .scalar()
        )

        assignment.total_submitted = submitted
        assignment.total_scored = scored
        assignment.average_score = round(float(average), 2) if average is not None else 0.0
        db.commit()
        db.refresh(assignment)
        return assignment

    def notify(self, db: Session, assignment_id: int | None) -> None:
        if assignment_id is None:
            return
        try:
            self.sync(db, assignment_id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Stats sync failed for assignment {assignment_id}: {e}", exc_info=True)
