# app/models/enums.py
import enum


class SkillType(str, enum.Enum):
    SPEAKING = "speaking"
    WRITING = "writing"


class SubmissionStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    SCORED = "scored"


class ScoringJobStatus(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class UserRole(str, enum.Enum):
    LEARNER = "learner"
    TEACHER = "teacher"
