# app/db/base.py
from sqlalchemy.orm import declarative_base

Base = declarative_base()

from app.models.user import User  # noqa
from app.models.prompt import Prompt  # noqa
from app.models.scoring_rule import ScoringRule  # noqa
from app.models.assignment import Assignment  # noqa
from app.models.submission import Submission  # noqa
from app.models.scoring_job import ScoringJob  # noqa
from app.models.score import Score  # noqa
