"""Tests for the job status API and queue adapters."""

from datetime import datetime, timedelta, timezone

import pytest

from examgen.jobs.models import JobStatus
from examgen.jobs.store import FileJobStore
from examgen.schemas.models import DirectKnowledgePayload, FromSourceDocumentPayload, JobKind
from examgen.service import ALL_KINDS_ALIAS, JobService
from examgen.store.file_store import FileCatalog
from examgen.worker import queue as queue_module
from examgen.worker.handler import JobDataError
from examgen.worker.queue import InlineJobQueue, mark_failed_on_exhaustion


class FakeQueue:
    def __init__(self, job_store=None, error=None):
        self.payloads = []
        self.error = error
        self.job_store = job_store
        self.status_at_enqueue = []

    def enqueue(self, payload):
        if self.job_store is not None:
            self.status_at_enqueue.append(self.job_store.get(payload.job_id).status)
        if self.error is not None:
            raise self.error
        self.payloads.append(payload)
        return payload.job_id


@pytest.fixture
def jobs(tmp_path):
    return FileJobStore(tmp_path)


@pytest.fixture
def catalog(tmp_path):
    c = FileCatalog(tmp_path)
    c.add(subjects={"phy": "Physics"}, exams={"jee": "JEE Main"})
    return c


def _payload(job_id="job_a", **kw):
    fields = dict(job_id=job_id, user_id="u1", subject_id="phy", exam_id="jee", num_questions=25)
    fields.update(kw)
    return DirectKnowledgePayload(**fields)


def test_enqueue_records_job_before_publishing(jobs, catalog):
    queue = FakeQueue(job_store=jobs)
    service = JobService(jobs, catalog, queue)
    assert service.enqueue(_payload()) == "job_a"
    assert queue.status_at_enqueue == [JobStatus.QUEUED]
    job = jobs.get("job_a")
    assert job.subject_name == "Physics"
    assert job.exam_name == "JEE Main"
    assert job.requested_questions == 25
    assert job.kind == JobKind.DIRECT_KNOWLEDGE


def test_enqueue_same_id_is_idempotent(jobs, catalog):
    queue = FakeQueue()
    service = JobService(jobs, catalog, queue)
    service.enqueue(_payload())
    assert service.enqueue(_payload(num_questions=99)) == "job_a"
    assert len(queue.payloads) == 1
    assert jobs.get("job_a").requested_questions == 25


def test_enqueue_unknown_exam_rejected(jobs, catalog):
    queue = FakeQueue()
    with pytest.raises(JobDataError, match="Exam"):
        JobService(jobs, catalog, queue).enqueue(_payload(exam_id="gre"))
    assert jobs.get("job_a") is None
    assert queue.payloads == []


def test_enqueue_failure_marks_job_failed(jobs, catalog):
    service = JobService(jobs, catalog, FakeQueue(error=ConnectionError("redis down")))
    with pytest.raises(ConnectionError):
        service.enqueue(_payload())
    job = jobs.get("job_a")
    assert job.status == JobStatus.FAILED
    assert "redis down" in job.error_message


def test_get_job_status(jobs, catalog):
    service = JobService(jobs, catalog, FakeQueue())
    service.enqueue(_payload())
    view = service.get_job_status("job_a")
    assert view.status == JobStatus.QUEUED
    assert view.requested_questions == 25
    assert view.generated_questions == 0
    assert view.elapsed is None
    assert service.get_job_status("missing") is None


def test_get_job_status_has_no_side_effects(jobs, catalog):
    service = JobService(jobs, catalog, FakeQueue())
    service.enqueue(_payload())
    before = jobs.get("job_a")
    service.get_job_status("job_a")
    assert jobs.get("job_a") == before


def _seed(jobs, service):
    t0 = datetime(2026, 5, 1, tzinfo=timezone.utc)
    service.enqueue(_payload("job_q"))
    service.enqueue(
        FromSourceDocumentPayload(
            job_id="job_r", user_id="u1", subject_id="phy", exam_id="jee", num_questions=5,
            document_id="d1", document_url="https://example.com/d1.pdf",
        )
    )
    service.enqueue(_payload("job_done"))
    service.enqueue(_payload("job_p"))

    updates = {
        "job_q": (None, t0),
        "job_r": (JobStatus.RUNNING, t0 + timedelta(minutes=3)),
        "job_done": (JobStatus.COMPLETED, t0 + timedelta(minutes=5)),
        "job_p": (JobStatus.PARTIAL, t0 + timedelta(minutes=1)),
    }
    for job_id, (status, updated) in updates.items():
        job = jobs.get(job_id)
        if status is not None:
            job.transition(JobStatus.RUNNING)
            if status != JobStatus.RUNNING:
                job.record_progress(2)
                job.transition(status)
        job.updated_at = updated
        jobs.update(job)


def test_list_active_jobs_defaults(jobs, catalog):
    service = JobService(jobs, catalog, FakeQueue())
    _seed(jobs, service)
    views = service.list_active_jobs()
    assert [v.job_id for v in views] == ["job_r", "job_p", "job_q"]


def test_list_active_jobs_filters(jobs, catalog):
    service = JobService(jobs, catalog, FakeQueue())
    _seed(jobs, service)
    assert [v.job_id for v in service.list_active_jobs(type_filter="from_source_document")] == ["job_r"]
    assert [v.job_id for v in service.list_active_jobs(ALL_KINDS_ALIAS, ["completed"])] == ["job_done"]


def test_list_active_jobs_bounded(jobs, catalog):
    service = JobService(jobs, catalog, FakeQueue(), active_jobs_limit=2)
    _seed(jobs, service)
    assert len(service.list_active_jobs()) == 2


def test_list_active_jobs_rejects_unknown_kind(jobs, catalog):
    with pytest.raises(ValueError):
        JobService(jobs, catalog, FakeQueue()).list_active_jobs(type_filter="essay-grading")


class ExplodingHandler:
    def handle(self, payload):
        raise RuntimeError("worker crashed")


def test_inline_queue_marks_failure(jobs, catalog):
    queue = InlineJobQueue(ExplodingHandler(), job_store=jobs)
    service = JobService(jobs, catalog, queue)
    with pytest.raises(RuntimeError):
        service.enqueue(_payload())
    job = jobs.get("job_a")
    assert job.status == JobStatus.FAILED
    assert "worker crashed" in job.error_message


class FakeRQJob:
    def __init__(self, job_id, retries_left):
        self.id = job_id
        self.retries_left = retries_left


def test_failure_callback_waits_for_last_retry(jobs, catalog, monkeypatch):
    monkeypatch.setattr(queue_module, "get_job_store", lambda settings: jobs)
    monkeypatch.setattr(queue_module, "get_settings", lambda: None)
    JobService(jobs, catalog, FakeQueue()).enqueue(_payload())

    mark_failed_on_exhaustion(FakeRQJob("job_a", 2), None, RuntimeError, RuntimeError("boom"), None)
    assert jobs.get("job_a").status == JobStatus.QUEUED

    mark_failed_on_exhaustion(FakeRQJob("job_a", 0), None, RuntimeError, RuntimeError("boom"), None)
    job = jobs.get("job_a")
    assert job.status == JobStatus.FAILED
    assert job.error_message == "RuntimeError: boom"


def test_read_only_service_needs_no_queue(jobs, catalog):
    JobService(jobs, catalog, FakeQueue()).enqueue(_payload())
    reader = JobService(jobs, catalog)
    assert reader.get_job_status("job_a").status == JobStatus.QUEUED
    assert [v.job_id for v in reader.list_active_jobs()] == ["job_a"]
    with pytest.raises(RuntimeError):
        reader.enqueue(_payload("job_b"))
    assert jobs.get("job_b") is None
