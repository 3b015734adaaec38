# app/models/user.py
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from app.db.base import Base
from app.models.enums import UserRole

class User(Base):
    """Identity row; only read for existence checks and display names."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.LEARNER.value)  # learner / teacher
    created_at = Column(DateTime(timezone=True), server_default=func.now())
