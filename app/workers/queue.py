# app/workers/queue.py

import logging
from datetime import timedelta

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue

from app.core.config import settings as default_settings
from app.schemas.scoring_job import ScoringJobPayload

logger = logging.getLogger(__name__)

# referenced by path so the API process never imports worker code
SCORING_TASK = "app.workers.tasks.scoring_task"


class DispatchError(Exception):
    """The queue could not accept a job (Redis unreachable, etc.)."""


def get_redis_connection(redis_url: str | None = None) -> Redis:
    return Redis.from_url(redis_url or default_settings.REDIS_URL)


class ScoringQueue:
    """
    The single dispatch path for scoring.

    Retention windows and job timeout are queue policy and come from
    configuration; retry decisions belong to the job state machine, which
    calls enqueue_retry with the backoff it computed.
    """

    def __init__(
        self,
        queue: Queue,
        *,
        result_ttl: int,
        failure_ttl: int,
        job_timeout: int,
    ):
        self._queue = queue
        self.result_ttl = result_ttl
        self.failure_ttl = failure_ttl
        self.job_timeout = job_timeout

    @classmethod
    def from_settings(cls, settings=default_settings, connection: Redis | None = None) -> "ScoringQueue":
        connection = connection or get_redis_connection(settings.REDIS_URL)
        return cls(
            Queue(settings.SCORING_QUEUE_NAME, connection=connection),
            result_ttl=settings.SCORING_RESULT_TTL_SECONDS,
            failure_ttl=settings.SCORING_FAILURE_TTL_SECONDS,
            job_timeout=settings.SCORING_JOB_TIMEOUT_SECONDS,
        )

    def _job_options(self, payload: ScoringJobPayload) -> dict:
        return {
            "job_id": payload.job_id,
            "result_ttl": self.result_ttl,
            "failure_ttl": self.failure_ttl,
            "job_timeout": self.job_timeout,
        }

    def enqueue(self, payload: ScoringJobPayload) -> str:
        try:
            job = self._queue.enqueue(
                SCORING_TASK,
                payload.model_dump(mode="json"),
                **self._job_options(payload),
            )
        except RedisError as e:
            raise DispatchError(f"could not enqueue scoring for submission {payload.submission_id}: {e}") from e
        logger.info(f"Enqueued scoring job {job.id} for submission {payload.submission_id}")
        return job.id

    def enqueue_retry(self, payload: ScoringJobPayload, delay_seconds: float) -> str:
        try:
            job = self._queue.enqueue_in(
                timedelta(seconds=delay_seconds),
                SCORING_TASK,
                payload.model_dump(mode="json"),
                **self._job_options(payload),
            )
        except RedisError as e:
            raise DispatchError(f"could not schedule retry for submission {payload.submission_id}: {e}") from e
        logger.info(
            f"Scheduled scoring retry {job.id} for submission {payload.submission_id} in {delay_seconds}s"
        )
        return job.id

    def stats(self) -> dict[str, int]:
        q = self._queue
        return {
            "waiting": q.count,
            "active": q.started_job_registry.count,
            "scheduled": q.scheduled_job_registry.count,
            "completed": q.finished_job_registry.count,
            "failed": q.failed_job_registry.count,
        }
