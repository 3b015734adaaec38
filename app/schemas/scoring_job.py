# app/schemas/scoring_job.py
from datetime import datetime

from pydantic import BaseModel

from app.models.enums import SkillType


class ScoringJobPayload(BaseModel):
    """Queue payload; one per enqueue (original dispatch, retry or requeue)."""
    submission_id: int
    content: str
    rule_id: int | None = None
    prompt_context: str | None = None
    skill_type: SkillType
    enqueued_at: datetime

    @property
    def job_id(self) -> str:
        return f"scoring-{self.submission_id}-{int(self.enqueued_at.timestamp() * 1000)}"


class ScoringJobPublic(BaseModel):
    id: int
    submission_id: int
    rule_id: int | None = None
    status: str  # queued / processing / completed / failed
    retry_count: int
    retry_baseline: int = 0
    resubmit_count: int
    error_message: str | None = None
    next_attempt_at: datetime | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}


class ScoringJobStats(BaseModel):
    queued: int
    processing: int
    completed: int
    failed: int
    # transport counters from the queue itself
    queue: dict[str, int] = {}
