# app/models/prompt.py
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from app.db.base import Base

class Prompt(Base):
    __tablename__ = "prompts"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=True)
    # task text handed to the scoring provider as context
    content = Column(Text, nullable=False)
    skill_type = Column(String(20), nullable=False)  # 'speaking' / 'writing'

    created_at = Column(DateTime(timezone=True), server_default=func.now())
