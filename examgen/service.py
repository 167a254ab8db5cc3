"""Job status API: enqueue payloads and read job records for callers."""

from __future__ import annotations

import logging
from typing import Iterable

from examgen.jobs.models import ACTIVE_STATUSES, GenerationJob, JobStatus, JobStatusView
from examgen.jobs.store import JobAlreadyExistsError, JobStore
from examgen.schemas.models import JobKind
from examgen.store.base import Catalog
from examgen.worker.handler import JobDataError, Payload
from examgen.worker.queue import JobQueue

logger = logging.getLogger(__name__)

# Type filter accepted by list_active_jobs that matches every job kind.
ALL_KINDS_ALIAS = "question-generation"


def _resolve_kinds(type_filter: str | JobKind | None) -> list[JobKind] | None:
    if type_filter is None or type_filter == ALL_KINDS_ALIAS:
        return None
    return [JobKind(type_filter)]


class JobService:
    def __init__(
        self,
        job_store: JobStore,
        catalog: Catalog,
        queue: JobQueue | None = None,
        active_jobs_limit: int = 20,
    ):
        self._jobs = job_store
        self._catalog = catalog
        self._queue = queue
        self._active_jobs_limit = active_jobs_limit

    def enqueue(self, payload: Payload) -> str:
        """Record the job as queued, then publish it. Reusing a job id returns it without re-publishing.

        Raises JobDataError when the subject or exam does not exist.
        """
        if self._queue is None:
            raise RuntimeError("JobService was built without a queue; it can only read job status")
        if self._jobs.get(payload.job_id) is not None:
            logger.info("Job %s already exists; not enqueueing again", payload.job_id)
            return payload.job_id

        subject = self._catalog.get_subject(payload.subject_id)
        if subject is None:
            raise JobDataError(f"Subject {payload.subject_id} not found")
        exam = self._catalog.get_exam(payload.exam_id)
        if exam is None:
            raise JobDataError(f"Exam {payload.exam_id} not found")

        job = GenerationJob(
            job_id=payload.job_id,
            kind=JobKind(payload.kind),
            user_id=payload.user_id,
            subject_id=subject.id,
            subject_name=subject.name,
            exam_id=exam.id,
            exam_name=exam.name,
            requested_questions=payload.num_questions,
        )
        try:
            self._jobs.create(job)
        except JobAlreadyExistsError:
            logger.info("Job %s created concurrently; not enqueueing again", payload.job_id)
            return payload.job_id

        try:
            self._queue.enqueue(payload)
        except Exception as e:
            current = self._jobs.get(job.job_id) or job
            if current.status == JobStatus.QUEUED:
                current.error_message = f"Enqueue failed: {e}"
                current.transition(JobStatus.FAILED)
                self._jobs.update(current)
            raise
        return job.job_id

    def get_job_status(self, job_id: str) -> JobStatusView | None:
        job = self._jobs.get(job_id)
        return JobStatusView.from_job(job) if job is not None else None

    def list_active_jobs(
        self,
        type_filter: str | JobKind | None = ALL_KINDS_ALIAS,
        status_filter: Iterable[JobStatus | str] | None = None,
    ) -> list[JobStatusView]:
        """Most recently updated jobs matching the filters, newest first, bounded in size."""
        statuses = [JobStatus(s) for s in status_filter] if status_filter else list(ACTIVE_STATUSES)
        jobs = self._jobs.list_jobs(
            kinds=_resolve_kinds(type_filter),
            statuses=statuses,
            limit=self._active_jobs_limit,
        )
        return [JobStatusView.from_job(j) for j in jobs]
