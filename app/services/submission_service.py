# app/services/submission_service.py
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings as default_settings
from app.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.models.assignment import Assignment
from app.models.enums import SkillType, SubmissionStatus
from app.models.prompt import Prompt
from app.models.scoring_job import ScoringJob
from app.models.submission import Submission
from app.models.user import User
from app.schemas.score import ManualGrade
from app.schemas.scoring_job import ScoringJobPayload
from app.schemas.submission import SubmissionCreate, SubmissionSubmit
from app.services import score_service, scoring_job_service, scoring_rule_service
from app.services.assignment_stats_service import AssignmentStatsSynchronizer
from app.workers.queue import DispatchError, ScoringQueue

logger = logging.getLogger(__name__)

IN_PROGRESS = SubmissionStatus.IN_PROGRESS.value
SUBMITTED = SubmissionStatus.SUBMITTED.value
SCORED = SubmissionStatus.SCORED.value


def get_submission(db: Session, submission_id: int) -> Submission:
    submission = db.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError(f"Submission {submission_id} not found")
    return submission


def _find_existing(
    db: Session, learner_id: int, prompt_id: int, assignment_id: int | None
) -> Optional[Submission]:
    query = db.query(Submission).filter(
        Submission.learner_id == learner_id,
        Submission.prompt_id == prompt_id,
    )
    if assignment_id is None:
        query = query.filter(Submission.assignment_id.is_(None))
    else:
        query = query.filter(Submission.assignment_id == assignment_id)
    return query.order_by(Submission.id.asc()).first()


def create_submission(
    db: Session,
    *,
    obj_in: SubmissionCreate,
    stats: AssignmentStatsSynchronizer,
) -> Submission:
    """
    Idempotent on (learner, prompt, assignment).

    An assignment-scoped request adopts an orphaned submission (same learner
    and prompt, no assignment) instead of creating a second one.
    """
    if db.get(User, obj_in.learner_id) is None:
        raise NotFoundError(f"Learner {obj_in.learner_id} not found")

    prompt = db.get(Prompt, obj_in.prompt_id)
    if prompt is None:
        raise NotFoundError(f"Prompt {obj_in.prompt_id} not found")
    if prompt.skill_type != obj_in.skill_type.value:
        raise ValidationError(
            f"Prompt {prompt.id} is a {prompt.skill_type} prompt, not {obj_in.skill_type.value}"
        )

    if obj_in.assignment_id is not None:
        assignment = db.get(Assignment, obj_in.assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {obj_in.assignment_id} not found")
        if assignment.prompt_id != prompt.id:
            raise ValidationError(
                f"Assignment {assignment.id} does not use prompt {prompt.id}"
            )

    existing = _find_existing(db, obj_in.learner_id, obj_in.prompt_id, obj_in.assignment_id)
    if existing is not None:
        return existing

    if obj_in.assignment_id is not None:
        # at most one orphan per learner and prompt (partial unique index)
        orphan = _find_existing(db, obj_in.learner_id, obj_in.prompt_id, None)
        if orphan is not None:
            orphan.assignment_id = obj_in.assignment_id
            try:
                db.commit()
            except IntegrityError:
                # a concurrent create already holds the assignment slot
                db.rollback()
                existing = _find_existing(
                    db, obj_in.learner_id, obj_in.prompt_id, obj_in.assignment_id
                )
                if existing is None:
                    raise
                return existing
            db.refresh(orphan)
            logger.info(
                f"Linked orphaned submission {orphan.id} to assignment {obj_in.assignment_id}"
            )
            stats.notify(db, obj_in.assignment_id)
            return orphan

    submission = Submission(
        learner_id=obj_in.learner_id,
        prompt_id=obj_in.prompt_id,
        assignment_id=obj_in.assignment_id,
        skill_type=obj_in.skill_type.value,
        status=IN_PROGRESS,
        started_at=datetime.now(timezone.utc),
    )
    db.add(submission)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent create won the (learner, prompt, assignment) or orphan slot
        db.rollback()
        existing = _find_existing(db, obj_in.learner_id, obj_in.prompt_id, obj_in.assignment_id)
        if existing is None:
            raise
        return existing
    db.refresh(submission)
    return submission


def submit_submission(
    db: Session,
    *,
    submission_id: int,
    obj_in: SubmissionSubmit,
    queue: ScoringQueue,
    stats: AssignmentStatsSynchronizer,
    settings=default_settings,
) -> Submission:
    """
    IN_PROGRESS -> SUBMITTED, create the scoring job and enqueue it.

    Content, status, submitted_at and the job row commit together; the
    enqueue happens after commit and does not wait for scoring.
    """
    submission = get_submission(db, submission_id)
    if submission.status != IN_PROGRESS:
        raise InvalidStateError(
            f"Submission {submission_id} has already been submitted. Cannot modify"
        )

    skill_type = SkillType(submission.skill_type)
    rule_id = obj_in.rule_id
    if rule_id is None and submission.assignment_id is not None:
        assignment = db.get(Assignment, submission.assignment_id)
        rule_id = assignment.ai_rule_id if assignment is not None else None
    # surfaces a bad rule before any job exists
    rule = scoring_rule_service.resolve_rule_config(db, rule_id, skill_type, settings)

    prompt = db.get(Prompt, submission.prompt_id)
    now = datetime.now(timezone.utc)

    moved = db.execute(
        update(Submission)
        .where(Submission.id == submission_id, Submission.status == IN_PROGRESS)
        .values(status=SUBMITTED, submitted_at=now, content=obj_in.content)
        .execution_options(synchronize_session=False)
    ).rowcount
    if not moved:
        db.rollback()
        raise InvalidStateError(
            f"Submission {submission_id} has already been submitted. Cannot modify"
        )
    try:
        scoring_job_service.create_job(db, submission_id=submission_id, rule_id=rule.rule_id)
    except ConflictError:
        db.rollback()
        raise
    db.commit()

    payload = ScoringJobPayload(
        submission_id=submission_id,
        content=obj_in.content,
        rule_id=rule.rule_id,
        prompt_context=prompt.content if prompt is not None else None,
        skill_type=skill_type,
        enqueued_at=now,
    )
    dispatch_scoring(db, queue, payload)

    db.refresh(submission)
    stats.notify(db, submission.assignment_id)
    return submission


def dispatch_scoring(db: Session, queue: ScoringQueue, payload: ScoringJobPayload) -> str | None:
    """
    Hand a payload to the queue. A lost enqueue leaves the job QUEUED with
    no pending delivery, which the operator requeue endpoint dispatches again.
    """
    try:
        return queue.enqueue(payload)
    except DispatchError as e:
        logger.error(f"Scoring dispatch failed for submission {payload.submission_id}: {e}", exc_info=True)
        scoring_job_service.clear_pending_delivery(db, payload.submission_id)
        return None


def build_payload(db: Session, submission: Submission, job: ScoringJob) -> ScoringJobPayload:
    """Rebuild the queue payload for an operator requeue, with the rule chosen at submit."""
    prompt = db.get(Prompt, submission.prompt_id)
    return ScoringJobPayload(
        submission_id=submission.id,
        content=submission.content or "",
        rule_id=job.rule_id,
        prompt_context=prompt.content if prompt is not None else None,
        skill_type=SkillType(submission.skill_type),
        enqueued_at=datetime.now(timezone.utc),
    )


def grade_submission(
    db: Session,
    *,
    submission_id: int,
    obj_in: ManualGrade,
    stats: AssignmentStatsSynchronizer,
) -> Submission:
    """
    Teacher override: upsert the score with graded_by_teacher and force SCORED
    from any post-submission state.
    """
    submission = get_submission(db, submission_id)
    if submission.status == IN_PROGRESS:
        raise InvalidStateError(f"Submission {submission_id} has not been submitted yet")

    for attempt in range(2):
        try:
            score_service.save_manual_score(
                db,
                submission_id=submission_id,
                overall_band=obj_in.overall_band,
                feedback=obj_in.feedback,
                teacher_id=obj_in.teacher_id,
            )
            submission.status = SCORED
            submission.scored_at = datetime.now(timezone.utc)
            db.commit()
            break
        except IntegrityError:
            # an automated insert landed first; the retry updates it in place
            db.rollback()
            if attempt:
                raise
            submission = get_submission(db, submission_id)

    db.refresh(submission)
    logger.info(f"Submission {submission_id} graded manually: band={obj_in.overall_band}")
    stats.notify(db, submission.assignment_id)
    return submission


def delete_submission(
    db: Session,
    *,
    submission_id: int,
    stats: AssignmentStatsSynchronizer,
) -> None:
    submission = get_submission(db, submission_id)
    assignment_id = submission.assignment_id
    db.delete(submission)
    db.commit()
    stats.notify(db, assignment_id)
