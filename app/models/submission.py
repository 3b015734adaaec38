# app/models/submission.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base

class Submission(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        UniqueConstraint(
            "learner_id", "prompt_id", "assignment_id", name="uq_submission_learner_prompt_assignment"
        ),
        # NULL assignment_id never collides in the constraint above
        Index(
            "uq_submission_learner_prompt_orphan",
            "learner_id",
            "prompt_id",
            unique=True,
            postgresql_where=text("assignment_id IS NULL"),
            sqlite_where=text("assignment_id IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    learner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    prompt_id = Column(Integer, ForeignKey("prompts.id"), nullable=False, index=True)
    assignment_id = Column(Integer, ForeignKey("assignments.id"), nullable=True, index=True)

    skill_type = Column(String(20), nullable=False)  # speaking / writing
    # in_progress / submitted / scored
    status = Column(String(20), nullable=False, default="in_progress", index=True)

    # transcript, essay text, or an audio URL
    content = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    scored_at = Column(DateTime(timezone=True), nullable=True)

    scoring_job = relationship(
        "ScoringJob", uselist=False, cascade="all, delete-orphan"
    )
    score = relationship(
        "Score", uselist=False, cascade="all, delete-orphan"
    )
