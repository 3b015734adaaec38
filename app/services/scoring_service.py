# app/services/scoring_service.py
"""
Scoring pipeline run by workers for one queue delivery.

claim (QUEUED -> PROCESSING) -> evaluate via adapter -> persist score and
complete, or record the failure and schedule the next attempt.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from redis.exceptions import LockError
from redis.lock import Lock
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.config import settings as default_settings
from app.models.enums import ScoringJobStatus, SubmissionStatus
from app.models.scoring_job import ScoringJob
from app.models.submission import Submission
from app.schemas.score import ScoreResult
from app.schemas.scoring_job import ScoringJobPayload
from app.services import score_service, scoring_job_service, scoring_rule_service
from app.services.adapter_registry import AdapterRegistry
from app.services.assignment_stats_service import AssignmentStatsSynchronizer
from app.workers.queue import DispatchError, ScoringQueue

logger = logging.getLogger(__name__)


class ScoringError(Exception):
    pass


def backoff_delay(retry_count: int, base: float, maximum: float) -> float:
    """base * 2^(n-1) for the n-th retry, capped at maximum."""
    if retry_count < 1:
        return 0.0
    return min(base * (2 ** (retry_count - 1)), maximum)


class ScoringPipeline:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        adapters: AdapterRegistry,
        queue: ScoringQueue,
        stats: AssignmentStatsSynchronizer,
        *,
        max_retries: int,
        backoff_base: float,
        backoff_max: float,
        settings=default_settings,
        lock_factory: Optional[Callable[[int], Lock]] = None,
    ):
        self.session_factory = session_factory
        self.adapters = adapters
        self.queue = queue
        self.stats = stats
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.settings = settings
        self.lock_factory = lock_factory

    @classmethod
    def from_settings(
        cls,
        settings,
        *,
        session_factory: Callable[[], Session],
        connection,
    ) -> "ScoringPipeline":
        def redis_lock(submission_id: int):
            return connection.lock(
                f"scoring-lock:{submission_id}",
                timeout=settings.SCORING_JOB_TIMEOUT_SECONDS,
                blocking_timeout=5,
            )

        return cls(
            session_factory,
            AdapterRegistry.from_settings(settings),
            ScoringQueue.from_settings(settings, connection),
            AssignmentStatsSynchronizer(),
            max_retries=settings.SCORING_MAX_RETRIES,
            backoff_base=settings.SCORING_BACKOFF_BASE_SECONDS,
            backoff_max=settings.SCORING_BACKOFF_MAX_SECONDS,
            settings=settings,
            lock_factory=redis_lock,
        )

    def run(self, payload: ScoringJobPayload) -> dict:
        submission_id = payload.submission_id
        lock = self.lock_factory(submission_id) if self.lock_factory is not None else None
        if lock is not None and not self._acquire(lock, submission_id):
            logger.info(f"Submission {submission_id} is locked by another worker; skipping delivery")
            return {
                "status": "skipped",
                "submission_id": submission_id,
                "message": "submission is being scored by another worker",
            }
        try:
            return self._attempt(payload)
        finally:
            if lock is not None:
                self._release(lock, submission_id)

    def _acquire(self, lock: Lock, submission_id: int) -> bool:
        try:
            return bool(lock.acquire())
        except LockError as e:
            logger.warning(f"Could not take scoring lock for submission {submission_id}: {e}")
            return False

    def _release(self, lock: Lock, submission_id: int) -> None:
        # the attempt has already committed its outcome
        try:
            lock.release()
        except LockError as e:
            logger.warning(f"Scoring lock for submission {submission_id} expired before release: {e}")


    def _attempt(self, payload: ScoringJobPayload) -> dict:
        submission_id = payload.submission_id
        db = self.session_factory()
        try:
            job = scoring_job_service.claim_job(db, submission_id)
            if job is None:
                logger.info(f"Scoring job for submission {submission_id} is not queued; skipping delivery")
                return {
                    "status": "skipped",
                    "submission_id": submission_id,
                    "message": "job already claimed or finished",
                }

            logger.info(
                f"Starting scoring for submission {submission_id} (attempt {job.retry_count + 1})"
            )
            try:
                result = self._evaluate(db, payload)
                return self._persist(db, payload, result)
            except Exception as e:
                db.rollback()
                logger.error(f"Scoring failed for submission {submission_id}: {e}", exc_info=True)
                return self._handle_failure(db, job, payload, str(e))
        finally:
            db.close()

    def _evaluate(self, db: Session, payload: ScoringJobPayload) -> ScoreResult:
        rule = scoring_rule_service.resolve_rule_config(
            db, payload.rule_id, payload.skill_type, self.settings
        )
        return self.adapters.evaluate(
            payload.skill_type, rule, payload.content, payload.prompt_context
        )

    def _persist(self, db: Session, payload: ScoringJobPayload, result: ScoreResult) -> dict:
        submission_id = payload.submission_id
        submission = db.get(Submission, submission_id)
        if submission is None:
            raise ScoringError(f"submission {submission_id} no longer exists")

        score = score_service.save_automated_score(db, submission_id=submission_id, result=result)
        if score is None:
            logger.info(
                f"Submission {submission_id} was graded by a teacher; discarding automated result"
            )
        else:
            db.execute(
                update(Submission)
                .where(
                    Submission.id == submission_id,
                    Submission.status == SubmissionStatus.SUBMITTED.value,
                )
                .values(status=SubmissionStatus.SCORED.value, scored_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
        if not scoring_job_service.complete_job(db, submission_id):
            logger.warning(f"Scoring job for submission {submission_id} left PROCESSING before completion")
        db.commit()

        logger.info(
            f"Completed scoring for submission {submission_id}: overall_band={result.overall_band}"
        )
        self.stats.notify(db, submission.assignment_id)
        return {
            "status": "success" if score is not None else "superseded",
            "submission_id": submission_id,
            "overall_band": result.overall_band,
            "message": f"Successfully scored submission {submission_id}",
        }

    def _handle_failure(
        self, db: Session, job: ScoringJob, payload: ScoringJobPayload, error_message: str
    ) -> dict:
        submission_id = payload.submission_id
        # the claim makes this worker the only writer of retry_count until the failure lands
        attempt = scoring_job_service.attempts_in_budget(job) + 1
        delay = backoff_delay(attempt, self.backoff_base, self.backoff_max)
        now = datetime.now(timezone.utc)
        job = scoring_job_service.record_failure(
            db,
            submission_id,
            error_message,
            max_retries=self.max_retries,
            retry_at=now + timedelta(seconds=delay),
        )
        if job is None:
            logger.warning(f"Scoring job for submission {submission_id} vanished before recording failure")
            return {"status": "error", "submission_id": submission_id, "error": error_message}

        if job.status == ScoringJobStatus.FAILED.value:
            logger.error(
                f"Scoring for submission {submission_id} failed permanently after {job.retry_count} attempts"
            )
            return {"status": "failed", "submission_id": submission_id, "error": error_message}

        retry_payload = payload.model_copy(update={"enqueued_at": now})
        try:
            self.queue.enqueue_retry(retry_payload, delay)
        except DispatchError as e:
            logger.error(
                f"Could not schedule retry for submission {submission_id}; job stays queued: {e}",
                exc_info=True,
            )
            scoring_job_service.clear_pending_delivery(db, submission_id)
        return {
            "status": "retrying",
            "submission_id": submission_id,
            "retry_count": job.retry_count,
            "delay": delay,
            "error": error_message,
        }

