"""Durable job queue (Redis + rq) and an inline stand-in for running without Redis."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from redis import Redis
from rq import Callback, Queue, Retry

from examgen.config import Settings, get_settings
from examgen.jobs.store import get_job_store
from examgen.worker.handler import GenerationJobHandler, Payload, mark_job_failed, run_generation_job

logger = logging.getLogger(__name__)


class JobQueue(Protocol):
    def enqueue(self, payload: Payload) -> str:
        """Publish the payload keyed by its job id; returns the job id."""
        ...


def mark_failed_on_exhaustion(job: Any, connection: Any, exc_type: Any, exc_value: Any, tb: Any) -> None:
    """rq failure callback: mark the job record failed once no queue retries remain.

    rq calls this on every failed attempt, before scheduling the retry.
    """
    if job.retries_left:
        logger.warning(
            "Job %s attempt failed (%s); %d queue retr%s left",
            job.id, exc_value, job.retries_left, "y" if job.retries_left == 1 else "ies",
        )
        return
    mark_job_failed(get_job_store(get_settings()), job.id, f"{exc_type.__name__}: {exc_value}")


class RQJobQueue:
    """Publishes payloads to an rq queue with retry/backoff; failed jobs stay in rq's failed registry."""

    def __init__(self, settings: Settings, connection: Redis | None = None):
        self._connection = connection or Redis.from_url(settings.redis_url)
        self._queue = Queue(settings.question_queue_name, connection=self._connection)
        self._max_retries = settings.max_retries
        self._intervals = settings.queue_backoff_intervals
        self._job_timeout = settings.queue_job_timeout_seconds

    @property
    def queue(self) -> Queue:
        return self._queue

    def enqueue(self, payload: Payload) -> str:
        retry = Retry(max=self._max_retries, interval=self._intervals) if self._max_retries > 0 else None
        self._queue.enqueue(
            run_generation_job,
            payload.model_dump(mode="json"),
            job_id=payload.job_id,
            job_timeout=self._job_timeout,
            retry=retry,
            on_failure=Callback(mark_failed_on_exhaustion),
            description=f"{payload.kind} x{payload.num_questions} for {payload.subject_id}/{payload.exam_id}",
        )
        logger.info("Enqueued job %s on %s", payload.job_id, self._queue.name)
        return payload.job_id


class InlineJobQueue:
    """Runs the handler synchronously in the caller's process. No retries, no Redis."""

    def __init__(self, handler: GenerationJobHandler, job_store=None):
        self._handler = handler
        self._job_store = job_store

    def enqueue(self, payload: Payload) -> str:
        try:
            self._handler.handle(payload)
        except Exception as e:
            if self._job_store is not None:
                mark_job_failed(self._job_store, payload.job_id, f"{type(e).__name__}: {e}")
            raise
        return payload.job_id
