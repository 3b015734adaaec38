"""
Scoring Tasks for Worker
These tasks are executed by RQ workers to score submissions asynchronously
"""

import logging
from functools import lru_cache

from app.core.config import settings
from app.db.session import SessionLocal
from app.schemas.scoring_job import ScoringJobPayload
from app.services.scoring_service import ScoringPipeline
from app.workers.queue import get_redis_connection

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_pipeline() -> ScoringPipeline:
    """One pipeline (adapters, queue, stats) per worker process."""
    return ScoringPipeline.from_settings(
        settings,
        session_factory=SessionLocal,
        connection=get_redis_connection(settings.REDIS_URL),
    )


def scoring_task(payload: dict) -> dict:
    """
    Worker task to score one submission.

    This task:
    1. Validates the queue payload
    2. Claims the scoring job (QUEUED -> PROCESSING)
    3. Calls the scoring adapter chosen for the rule
    4. Saves the score, or records the failure and schedules a retry

    Args:
        payload: ScoringJobPayload as JSON, enqueued by ScoringQueue

    Returns:
        Dictionary with the outcome of this delivery

    Note:
        Provider failures are handled inside the pipeline. Anything raised
        from here ends up in RQ's failed job registry.
    """
    job_payload = ScoringJobPayload.model_validate(payload)
    logger.info(f"Received scoring delivery {job_payload.job_id}")
    return get_pipeline().run(job_payload)
