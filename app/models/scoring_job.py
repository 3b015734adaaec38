# app/models/scoring_job.py
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from app.db.base import Base

class ScoringJob(Base):
    __tablename__ = "scoring_jobs"
    __table_args__ = (Index("ix_scoring_jobs_status_created", "status", "created_at"),)

    id = Column(Integer, primary_key=True, index=True)
    # one job per submission; doubles as the per-submission mutex
    submission_id = Column(
        Integer,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # rule resolved at submit time; None means the configured default
    rule_id = Column(Integer, ForeignKey("ai_rules.id", ondelete="SET NULL"), nullable=True)

    # queued / processing / completed / failed
    status = Column(String(20), nullable=False, default="queued")
    # total failed attempts over the job's life, never decremented
    retry_count = Column(Integer, nullable=False, default=0)
    # retry_count at the last operator requeue; the current budget starts here
    retry_baseline = Column(Integer, nullable=False, default=0)
    resubmit_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    # set while a delivery sits in the queue (immediate or delayed), cleared on claim
    next_attempt_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
