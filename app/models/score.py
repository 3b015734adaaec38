# app/models/score.py
from sqlalchemy import (
    Column,
    Integer,
    Text,
    DateTime,
    Numeric,
    Boolean,
    ForeignKey,
    JSON,
)
from sqlalchemy.sql import func
from app.db.base import Base

class Score(Base):
    __tablename__ = "scores"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(
        Integer,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # criterion bands 0-9; speaking fills fluency/pronunciation, writing fills task_response
    fluency = Column(Numeric(3, 1, asdecimal=False), nullable=True)
    coherence = Column(Numeric(3, 1, asdecimal=False), nullable=True)
    lexical = Column(Numeric(3, 1, asdecimal=False), nullable=True)
    grammar = Column(Numeric(3, 1, asdecimal=False), nullable=True)
    pronunciation = Column(Numeric(3, 1, asdecimal=False), nullable=True)
    task_response = Column(Numeric(3, 1, asdecimal=False), nullable=True)

    overall_band = Column(Numeric(3, 1, asdecimal=False), nullable=False)
    feedback = Column(Text, nullable=False)
    detailed_feedback = Column(JSON, nullable=True)
    graded_by_teacher = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
