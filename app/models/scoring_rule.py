# app/models/scoring_rule.py
from sqlalchemy import Column, Integer, String, Text, DateTime, Float, Boolean, JSON
from sqlalchemy.sql import func
from app.db.base import Base

class ScoringRule(Base):
    """Teacher-configured weights/strictness/model selection (read-only to workers)."""

    __tablename__ = "ai_rules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    model_id = Column(String(255), nullable=False)  # e.g. "gpt-4o-mini", "gemini-flash-latest"
    rubric_id = Column(String(255), nullable=False, default="ielts_speaking")
    weights = Column(JSON, nullable=False)  # {"fluency": 0.25, "coherence": 0.25, ...}
    strictness = Column(Float, nullable=False, default=1.0)
    extra_config = Column(JSON, nullable=True)  # temperature etc.
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
