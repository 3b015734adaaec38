"""ScoringQueue against a mocked rq.Queue."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.models.enums import SkillType
from app.schemas.scoring_job import ScoringJobPayload
from app.workers.queue import SCORING_TASK, DispatchError, ScoringQueue

ENQUEUED_AT = datetime(2024, 5, 1, 12, 0, 0, 250000, tzinfo=timezone.utc)


@pytest.fixture
def rq_queue():
    queue = MagicMock()
    queue.enqueue.return_value.id = "scoring-5-1714564800250"
    queue.enqueue_in.return_value.id = "scoring-5-1714564800250"
    return queue


@pytest.fixture
def scoring_queue(rq_queue):
    return ScoringQueue(rq_queue, result_ttl=86400, failure_ttl=604800, job_timeout=300)


@pytest.fixture
def payload():
    return ScoringJobPayload(
        submission_id=5,
        content="http://host/audio.mp3",
        rule_id=2,
        prompt_context="Describe a place.",
        skill_type=SkillType.SPEAKING,
        enqueued_at=ENQUEUED_AT,
    )


def test_job_id_is_submission_and_enqueue_time(payload):
    assert payload.job_id == "scoring-5-1714564800250"


def test_enqueue(scoring_queue, rq_queue, payload):
    job_id = scoring_queue.enqueue(payload)

    assert job_id == "scoring-5-1714564800250"
    args, kwargs = rq_queue.enqueue.call_args
    assert args[0] == SCORING_TASK
    assert args[1]["submission_id"] == 5
    assert args[1]["skill_type"] == "speaking"
    assert kwargs == {
        "job_id": "scoring-5-1714564800250",
        "result_ttl": 86400,
        "failure_ttl": 604800,
        "job_timeout": 300,
    }


def test_enqueue_retry_uses_delay(scoring_queue, rq_queue, payload):
    scoring_queue.enqueue_retry(payload, 4.0)

    args, kwargs = rq_queue.enqueue_in.call_args
    assert args[0] == timedelta(seconds=4)
    assert args[1] == SCORING_TASK
    assert kwargs["job_id"] == payload.job_id


def test_redis_failure_is_dispatch_error(scoring_queue, rq_queue, payload):
    rq_queue.enqueue.side_effect = RedisConnectionError("connection refused")

    with pytest.raises(DispatchError, match="submission 5"):
        scoring_queue.enqueue(payload)


def test_stats(scoring_queue, rq_queue):
    rq_queue.count = 4
    rq_queue.started_job_registry.count = 2
    rq_queue.scheduled_job_registry.count = 1
    rq_queue.finished_job_registry.count = 10
    rq_queue.failed_job_registry.count = 3

    assert scoring_queue.stats() == {
        "waiting": 4,
        "active": 2,
        "scheduled": 1,
        "completed": 10,
        "failed": 3,
    }
