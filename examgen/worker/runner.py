"""Worker process bootstrap: consume the generation queue with rq."""

from __future__ import annotations

import logging

from redis import Redis
from rq import Queue, Worker
from rq.worker_pool import WorkerPool

from examgen.config import Settings, get_settings

logger = logging.getLogger(__name__)


def start_worker(settings: Settings | None = None, burst: bool = False) -> None:
    """Block consuming jobs; concurrency > 1 starts a pool of worker processes."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    connection = Redis.from_url(settings.redis_url)
    queue_name = settings.question_queue_name
    concurrency = settings.question_worker_concurrency

    logger.info("Worker listening on %s (concurrency %d)", queue_name, concurrency)
    if concurrency > 1:
        pool = WorkerPool([queue_name], connection=connection, num_workers=concurrency)
        pool.start(burst=burst)
        return
    worker = Worker([Queue(queue_name, connection=connection)], connection=connection)
    worker.work(burst=burst)
