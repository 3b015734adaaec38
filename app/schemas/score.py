# app/schemas/score.py
from datetime import datetime

from pydantic import BaseModel, Field, field_validator


def is_half_band(value: float) -> bool:
    return float(value * 2).is_integer()


class FeedbackBlock(BaseModel):
    """Structured feedback every provider must return."""
    strengths: str
    issues: str
    actions: str


class DetailedFeedback(FeedbackBlock):
    """Stored in Score.detailed_feedback."""
    transcript: str | None = None
    teacher_comment: str | None = None
    graded_by_teacher: bool = False
    graded_by: int | None = None


class ScoreResult(BaseModel):
    """Validated output of a scoring adapter, keyed by canonical criterion names."""
    criteria: dict[str, float]
    overall_band: float
    feedback: FeedbackBlock
    transcript: str | None = None


class ManualGrade(BaseModel):
    """Teacher override"""
    overall_band: float = Field(ge=0, le=9)
    feedback: str = Field(min_length=1)
    teacher_id: int | None = None

    @field_validator("overall_band")
    @classmethod
    def _half_band(cls, value: float) -> float:
        if not is_half_band(value):
            raise ValueError("overall_band must be a multiple of 0.5")
        return value


class ScorePublic(BaseModel):
    id: int
    submission_id: int

    fluency: float | None = None
    coherence: float | None = None
    lexical: float | None = None
    grammar: float | None = None
    pronunciation: float | None = None
    task_response: float | None = None

    overall_band: float
    feedback: str
    detailed_feedback: DetailedFeedback | None = None
    graded_by_teacher: bool

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
