"""
Shared fixtures: a file-backed SQLite database per test, seeded learners,
prompts, an assignment and a rule, plus in-memory stand-ins for the queue
and the scoring providers.
"""

import os

# Set environment variables before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.db.base import Base
from app.models.assignment import Assignment
from app.models.enums import SkillType
from app.models.prompt import Prompt
from app.models.scoring_rule import ScoringRule
from app.models.user import User
from app.schemas.score import FeedbackBlock, ScoreResult
from app.services.adapter_registry import AdapterRegistry
from app.services.assignment_stats_service import AssignmentStatsSynchronizer
from app.services.scoring_adapter import RUBRICS
from app.services.scoring_service import ScoringPipeline
from app.workers.queue import DispatchError

SPEAKING_BANDS = {"fluency": 7.0, "coherence": 7.5, "lexical": 7.0, "grammar": 8.0, "pronunciation": 7.5}
WRITING_BANDS = {"task_response": 6.5, "coherence": 6.0, "lexical": 6.5, "grammar": 6.0}


def make_result(skill_type: SkillType = SkillType.SPEAKING, overall_band: float = 7.5) -> ScoreResult:
    bands = SPEAKING_BANDS if skill_type == SkillType.SPEAKING else WRITING_BANDS
    return ScoreResult(
        criteria=dict(bands),
        overall_band=overall_band,
        feedback=FeedbackBlock(
            strengths="Clear ideas",
            issues="Some hesitation",
            actions="Practise linking words",
        ),
    )


class FakeScoringQueue:
    """Records what would have gone to RQ."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.enqueued = []
        self.retries = []

    def enqueue(self, payload):
        if self.fail:
            raise DispatchError("redis unavailable")
        self.enqueued.append(payload)
        return payload.job_id

    def enqueue_retry(self, payload, delay_seconds):
        if self.fail:
            raise DispatchError("redis unavailable")
        self.retries.append((payload, delay_seconds))
        return payload.job_id

    def stats(self):
        return {
            "waiting": len(self.enqueued),
            "active": 0,
            "scheduled": len(self.retries),
            "completed": 0,
            "failed": 0,
        }


class FakeAdapter:
    """
    Plays back outcomes in order; each outcome is a ScoreResult to return
    or an exception to raise. The last outcome repeats.
    """

    def __init__(self, outcomes=None, *, name="gemini", supports_audio=True):
        self.name = name
        self.supports_audio = supports_audio
        self.outcomes = list(outcomes or [make_result()])
        self.calls = []

    def _next(self, kind, content, context, weights, strictness, kwargs):
        self.calls.append(
            {"kind": kind, "content": content, "context": context,
             "weights": dict(weights), "strictness": strictness, **kwargs}
        )
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def evaluate_speaking(self, audio_or_transcript, context, weights, strictness, **kwargs):
        return self._next("speaking", audio_or_transcript, context, weights, strictness, kwargs)

    def evaluate_writing(self, text, context, weights, strictness, **kwargs):
        return self._next("writing", text, context, weights, strictness, kwargs)

    def close(self):
        pass


@pytest.fixture(scope="function")
def engine(tmp_path):
    """File-backed so the pipeline's own sessions see committed rows."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Create a test database session."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def _add(db, obj):
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@pytest.fixture
def learner(db_session):
    return _add(db_session, User(email="learner@test.com", name="Test Learner", role="learner"))


@pytest.fixture
def teacher(db_session):
    return _add(db_session, User(email="teacher@test.com", name="Test Teacher", role="teacher"))


@pytest.fixture
def speaking_prompt(db_session):
    return _add(
        db_session,
        Prompt(
            title="Part 2",
            content="Describe a place you visited that you would like to return to.",
            skill_type=SkillType.SPEAKING.value,
        ),
    )


@pytest.fixture
def writing_prompt(db_session):
    return _add(
        db_session,
        Prompt(
            title="Task 2",
            content="Some people think cities should ban cars. Discuss both views.",
            skill_type=SkillType.WRITING.value,
        ),
    )


@pytest.fixture
def speaking_rule(db_session):
    criteria = RUBRICS["ielts_speaking"].criteria
    return _add(
        db_session,
        ScoringRule(
            name="Strict speaking",
            model_id="gemini-flash-latest",
            rubric_id="ielts_speaking",
            weights={name: 0.2 for name in criteria},
            strictness=1.2,
            extra_config={"temperature": 0.1},
            is_active=True,
        ),
    )


@pytest.fixture
def writing_rule(db_session):
    return _add(
        db_session,
        ScoringRule(
            name="Writing",
            model_id="gpt-4o-mini",
            rubric_id="ielts_writing",
            weights={"task_response": 0.25, "coherence": 0.25, "lexical": 0.25, "grammar": 0.25},
            strictness=1.0,
            is_active=True,
        ),
    )


@pytest.fixture
def assignment(db_session, speaking_prompt):
    return _add(db_session, Assignment(title="Week 1 speaking", prompt_id=speaking_prompt.id))


@pytest.fixture
def stats():
    return AssignmentStatsSynchronizer()


@pytest.fixture
def fake_queue():
    return FakeScoringQueue()


@pytest.fixture
def fake_adapter():
    return FakeAdapter()


@pytest.fixture
def pipeline(session_factory, fake_adapter, fake_queue, stats):
    registry = AdapterRegistry({"gemini": fake_adapter}, default_adapter="gemini")
    return ScoringPipeline(
        session_factory,
        registry,
        fake_queue,
        stats,
        max_retries=3,
        backoff_base=1.0,
        backoff_max=300.0,
        settings=settings,
    )
