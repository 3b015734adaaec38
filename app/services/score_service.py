# app/services/score_service.py
"""
Score Store: one row per submission, replaced in place.

Neither helper commits; the caller owns the transaction so the score lands
together with the submission/job transitions.
"""
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.score import Score
from app.schemas.score import DetailedFeedback, ScoreResult

CRITERION_COLUMNS = ("fluency", "coherence", "lexical", "grammar", "pronunciation", "task_response")


def get_score_for_submission(db: Session, submission_id: int) -> Optional[Score]:
    return db.query(Score).filter(Score.submission_id == submission_id).first()


def _automated_values(result: ScoreResult) -> dict:
    values = {column: result.criteria.get(column) for column in CRITERION_COLUMNS}
    detailed = DetailedFeedback(
        **result.feedback.model_dump(),
        transcript=result.transcript,
        graded_by_teacher=False,
    )
    values.update(
        overall_band=result.overall_band,
        feedback=result.feedback.model_dump_json(),
        detailed_feedback=detailed.model_dump(),
        graded_by_teacher=False,
    )
    return values


def save_automated_score(db: Session, *, submission_id: int, result: ScoreResult) -> Optional[Score]:
    """
    Upsert the automated result.

    Returns None when a teacher grade already owns the row: automated
    scoring never overwrites a manual grade.
    """
    values = _automated_values(result)
    updated = db.execute(
        update(Score)
        .where(Score.submission_id == submission_id, Score.graded_by_teacher.is_(False))
        .values(**values)
        .execution_options(synchronize_session=False)
    ).rowcount
    if updated:
        score = get_score_for_submission(db, submission_id)
        db.refresh(score)
        return score

    if get_score_for_submission(db, submission_id) is not None:
        return None

    score = Score(submission_id=submission_id, **values)
    db.add(score)
    db.flush()
    return score


def save_manual_score(
    db: Session,
    *,
    submission_id: int,
    overall_band: float,
    feedback: str,
    teacher_id: int | None = None,
) -> Score:
    score = get_score_for_submission(db, submission_id)

    previous = dict(score.detailed_feedback or {}) if score is not None else {}
    detailed = DetailedFeedback(
        strengths=previous.get("strengths", ""),
        issues=previous.get("issues", ""),
        actions=previous.get("actions", ""),
        transcript=previous.get("transcript"),
        teacher_comment=feedback,
        graded_by_teacher=True,
        graded_by=teacher_id,
    )

    if score is None:
        score = Score(submission_id=submission_id)
        db.add(score)
    score.overall_band = overall_band
    score.feedback = feedback
    score.detailed_feedback = detailed.model_dump()
    score.graded_by_teacher = True
    db.flush()
    return score
