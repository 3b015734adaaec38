# app/models/assignment.py
from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey
from sqlalchemy.sql import func
from app.db.base import Base

class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    prompt_id = Column(Integer, ForeignKey("prompts.id"), nullable=False, index=True)
    ai_rule_id = Column(Integer, ForeignKey("ai_rules.id"), nullable=True)

    # maintained by AssignmentStatsSynchronizer
    total_submitted = Column(Integer, nullable=False, default=0)
    total_scored = Column(Integer, nullable=False, default=0)
    average_score = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
