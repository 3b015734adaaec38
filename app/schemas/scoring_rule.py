# app/schemas/scoring_rule.py
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

WEIGHT_SUM_TOLERANCE = 0.1


class ScoringWeights(BaseModel):
    """Per-criterion weights; only the rubric's criteria should be set."""
    fluency: float | None = Field(default=None, ge=0, le=1)
    coherence: float | None = Field(default=None, ge=0, le=1)
    lexical: float | None = Field(default=None, ge=0, le=1)
    grammar: float | None = Field(default=None, ge=0, le=1)
    pronunciation: float | None = Field(default=None, ge=0, le=1)
    task_response: float | None = Field(default=None, ge=0, le=1)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _sum_to_one(self) -> "ScoringWeights":
        total = sum(self.as_dict().values())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE + 1e-9:
            raise ValueError("Scoring weights must sum to 1.0 (tolerance: ±0.1)")
        return self

    def as_dict(self) -> dict[str, float]:
        return self.model_dump(exclude_none=True)


class ScoringRuleCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    model_id: str = Field(min_length=1)
    rubric_id: str = "ielts_speaking"
    weights: ScoringWeights
    strictness: float = Field(default=1.0, gt=0)
    extra_config: dict | None = None


class ScoringRulePublic(BaseModel):
    id: int
    name: str
    description: str | None = None
    model_id: str
    rubric_id: str
    weights: dict[str, float]
    strictness: float
    extra_config: dict | None = None
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ScoringRuleConfig(BaseModel):
    """What a worker needs from a rule; built from a row or from settings."""
    rule_id: int | None = None
    model_id: str
    rubric_id: str
    weights: dict[str, float]
    strictness: float = 1.0
    extra_config: dict | None = None
