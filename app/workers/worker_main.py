# app/workers/worker_main.py

import logging

from rq import Queue, SimpleWorker
from rq.worker_pool import WorkerPool

from app.core.config import settings
from app.core.logging_config import setup_logging
from app.workers.queue import get_redis_connection

logger = logging.getLogger(__name__)


def main():
    setup_logging(settings.LOG_LEVEL)
    redis_conn = get_redis_connection(settings.REDIS_URL)
    queue_names = [settings.SCORING_QUEUE_NAME]
    concurrency = settings.SCORING_WORKER_CONCURRENCY

    if concurrency <= 1:
        logger.info(f"Starting single scoring worker on {queue_names}")
        worker = SimpleWorker(
            [Queue(name, connection=redis_conn) for name in queue_names],
            connection=redis_conn,
        )
        worker.work(with_scheduler=True)
        return

    logger.info(f"Starting scoring worker pool of {concurrency} on {queue_names}")
    pool = WorkerPool(
        queue_names,
        connection=redis_conn,
        num_workers=concurrency,
        worker_class=SimpleWorker,
    )
    pool.start(logging_level=settings.LOG_LEVEL)


if __name__ == "__main__":
    main()
