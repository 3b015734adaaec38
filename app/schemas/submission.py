# app/schemas/submission.py
from pydantic import BaseModel, Field
from datetime import datetime

from app.models.enums import SkillType
from app.schemas.score import ScorePublic
from app.schemas.scoring_job import ScoringJobPublic


class SubmissionCreate(BaseModel):
    learner_id: int
    prompt_id: int
    assignment_id: int | None = None
    skill_type: SkillType


class SubmissionSubmit(BaseModel):
    # transcript / essay text, or an audio URL for speaking
    content: str = Field(min_length=1)
    rule_id: int | None = None


class SubmissionPublic(BaseModel):
    id: int
    learner_id: int
    prompt_id: int
    assignment_id: int | None = None
    skill_type: SkillType
    status: str  # in_progress / submitted / scored

    created_at: datetime | None = None
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    scored_at: datetime | None = None

    model_config = {"from_attributes": True}


class SubmissionDetail(SubmissionPublic):
    """Status-polling view: content plus score and job when they exist."""
    content: str | None = None
    score: ScorePublic | None = None
    scoring_job: ScoringJobPublic | None = None
