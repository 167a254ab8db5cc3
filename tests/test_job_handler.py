"""Tests for end-to-end processing of one generation payload."""

import json

import pytest

from examgen.ingest.document_fetcher import DocumentFetchError, DocumentNotFoundError
from examgen.jobs.models import GenerationJob, JobStatus
from examgen.jobs.store import FileJobStore
from examgen.schemas.models import (
    DirectKnowledgePayload,
    FromSourceDocumentPayload,
    JobKind,
    PersistedQuestion,
)
from examgen.store.file_store import FileCatalog, FileQuestionStore, FileSummaryStore
from examgen.worker import handler as handler_module
from examgen.worker.handler import (
    GenerationConfig,
    GenerationJobHandler,
    JobDataError,
    mark_job_failed,
    run_generation_job,
)

from conftest import MockLLM, candidate

TOPICS = json.dumps(["Cell Biology", "Genetics", "Evolution"])
SUMMARY = json.dumps({"summaryText": "Cells divide by mitosis.", "keywords": ["mitosis"]})


class FakeFetcher:
    def __init__(self, text="Chapter 1. Cells.", error=None):
        self.text = text
        self.error = error
        self.urls = []

    def fetch(self, url):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.text


class Env:
    def __init__(self, tmp_path, sleep):
        self.jobs = FileJobStore(tmp_path)
        self.questions = FileQuestionStore(tmp_path)
        self.summaries = FileSummaryStore(tmp_path)
        self.catalog = FileCatalog(tmp_path)
        self.catalog.add(subjects={"bio": "Biology"}, exams={"neet": "NEET"})
        self.sleep = sleep
        self.config = GenerationConfig(
            unit_size=10,
            wave_size=1,
            inter_wave_delay=0.5,
            max_retries=0,
            retry_base_delay=0.0,
            summary_model="gpt-4o-mini",
        )

    def handler(self, llm, fetcher=None):
        return GenerationJobHandler(
            job_store=self.jobs,
            question_store=self.questions,
            summary_store=self.summaries,
            catalog=self.catalog,
            fetcher=fetcher or FakeFetcher(),
            llm=llm,
            config=self.config,
            sleep=self.sleep,
        )

    def record(self, payload, status=JobStatus.QUEUED):
        job = GenerationJob(
            job_id=payload.job_id,
            kind=JobKind(payload.kind),
            user_id=payload.user_id,
            subject_id=payload.subject_id,
            exam_id=payload.exam_id,
            requested_questions=payload.num_questions,
        )
        if status != JobStatus.QUEUED:
            job.transition(JobStatus.RUNNING)
        if status.is_terminal:
            job.transition(status)
        return self.jobs.create(job)


@pytest.fixture
def env(tmp_path, sleep):
    return Env(tmp_path, sleep)


def _direct(n=20, **kw):
    fields = dict(job_id="job_d", user_id="u1", subject_id="bio", exam_id="neet", num_questions=n)
    fields.update(kw)
    return DirectKnowledgePayload(**fields)


def _document(n=10, **kw):
    fields = dict(
        job_id="job_s",
        user_id="u1",
        subject_id="bio",
        exam_id="neet",
        num_questions=n,
        document_id="pdf-1",
        document_url="https://files.example/pdf-1.pdf",
    )
    fields.update(kw)
    return FromSourceDocumentPayload(**fields)


def test_direct_job_completes(env):
    payload = _direct(20, topic="Genetics")
    env.record(payload)
    llm = MockLLM()
    job = env.handler(llm).handle(payload)

    assert job.status == JobStatus.COMPLETED
    assert job.generated_questions == 20
    assert job.time_taken is not None
    assert job.subject_name == "Biology"
    stored = env.questions.find("bio", job_id="job_d")
    assert len(stored) == 20
    assert all(q.created_by == "u1" and q.exam_id == "neet" for q in stored)
    assert "Focus on this topic: Genetics" in llm.calls[0]["prompt"]
    assert env.sleep.delays == [0.5]
    assert env.jobs.get("job_d").status == JobStatus.COMPLETED


def test_short_units_end_partial(env):
    payload = _direct(20)
    env.record(payload)
    job = env.handler(MockLLM(short_by=3)).handle(payload)
    assert job.status == JobStatus.PARTIAL
    assert job.generated_questions == 14
    assert env.questions.count_for_job("job_d") == 14


def test_no_output_ends_failed(env):
    payload = _direct(20)
    env.record(payload)
    job = env.handler(MockLLM(script=[RuntimeError("down")] * 2)).handle(payload)
    assert job.status == JobStatus.FAILED
    assert job.generated_questions == 0
    assert job.error_message


def test_redelivery_after_terminal_is_noop(env):
    payload = _direct(10)
    env.record(payload)
    env.handler(MockLLM()).handle(payload)
    before = env.jobs.get("job_d")

    llm = MockLLM()
    again = env.handler(llm).handle(payload)
    assert llm.calls == []
    assert again.status == JobStatus.COMPLETED
    assert again.generated_questions == before.generated_questions == 10
    assert env.questions.count_for_job("job_d") == 10


@pytest.mark.parametrize("status", [JobStatus.PARTIAL, JobStatus.FAILED, JobStatus.CANCELLED])
def test_terminal_statuses_never_rerun(env, status):
    payload = _direct(10)
    env.record(payload, status=status)
    llm = MockLLM()
    assert env.handler(llm).handle(payload).status == status
    assert llm.calls == []


def test_missing_subject_fails_job(env):
    payload = _direct(10, subject_id="unknown")
    env.record(payload)
    llm = MockLLM()
    returned = env.handler(llm).handle(payload)
    assert returned.status == JobStatus.FAILED
    assert "Subject unknown" in returned.error_message
    job = env.jobs.get("job_d")
    assert job.status == JobStatus.FAILED
    assert job.generated_questions == 0
    assert llm.calls == []


def test_missing_job_record_raises(env):
    with pytest.raises(JobDataError):
        env.handler(MockLLM()).handle(_direct(10, job_id="job_missing"))


def test_document_job_uses_summary(env):
    payload = _document(10)
    env.record(payload)
    llm = MockLLM(replies=[TOPICS, SUMMARY])
    fetcher = FakeFetcher()
    job = env.handler(llm, fetcher).handle(payload)

    assert job.status == JobStatus.COMPLETED
    assert fetcher.urls == ["https://files.example/pdf-1.pdf"]
    assert "Cells divide by mitosis." in llm.calls[0]["prompt"]
    assert llm.calls[0]["model"] == "gpt-4o-mini"
    summaries = env.summaries.find("bio", "neet")
    assert [s.source_document_ids for s in summaries] == [["pdf-1"]]


def test_summary_failure_falls_back_to_knowledge(env):
    payload = _document(10)
    env.record(payload)
    llm = MockLLM(replies=["no topics, sorry"])
    job = env.handler(llm).handle(payload)

    assert job.status == JobStatus.COMPLETED
    assert "STUDY MATERIAL" not in llm.calls[0]["prompt"]
    assert llm.calls[0]["model"] is None
    assert env.summaries.find("bio", "neet") == []


def test_empty_summary_generation_falls_back_to_knowledge(env):
    payload = _document(10)
    env.record(payload)
    llm = MockLLM(replies=[TOPICS, SUMMARY], script=["nothing parseable"])
    job = env.handler(llm).handle(payload)

    assert job.status == JobStatus.COMPLETED
    assert job.generated_questions == 10
    assert "STUDY MATERIAL" in llm.calls[0]["prompt"]
    assert "STUDY MATERIAL" not in llm.calls[1]["prompt"]


def test_missing_document_fails_job(env):
    payload = _document(10)
    env.record(payload)
    fetcher = FakeFetcher(error=DocumentNotFoundError("gone"))
    assert env.handler(MockLLM(), fetcher).handle(payload).status == JobStatus.FAILED
    assert env.jobs.get("job_s").status == JobStatus.FAILED


def test_transient_fetch_error_leaves_job_running(env):
    payload = _document(10)
    env.record(payload)
    fetcher = FakeFetcher(error=DocumentFetchError("connection reset"))
    with pytest.raises(DocumentFetchError):
        env.handler(MockLLM(), fetcher).handle(payload)
    assert env.jobs.get("job_s").status == JobStatus.RUNNING


def test_running_job_resumes_shortfall(env):
    payload = _direct(10)
    job = env.record(payload, status=JobStatus.RUNNING)
    started = job.started_at
    env.jobs.update(job)
    env.questions.insert_many(
        [
            PersistedQuestion.from_candidate(
                candidate(1000 + n), subject_id="bio", exam_id="neet", created_by="u1", source_job_id="job_d"
            )
            for n in range(6)
        ]
    )

    llm = MockLLM()
    resumed = env.handler(llm).handle(payload)
    assert [c["count"] for c in llm.calls] == [4]
    assert resumed.status == JobStatus.COMPLETED
    assert resumed.generated_questions == 10
    assert resumed.started_at == started
    assert env.questions.count_for_job("job_d") == 10


def test_external_cancellation_stops_later_waves(env):
    payload = _direct(30)
    env.record(payload)
    jobs = env.jobs

    class CancellingLLM(MockLLM):
        def generate(self, prompt, **kwargs):
            if not self.calls:
                current = jobs.get("job_d")
                current.transition(JobStatus.CANCELLED)
                jobs.update(current)
            return super().generate(prompt, **kwargs)

    llm = CancellingLLM()
    job = env.handler(llm).handle(payload)
    assert len(llm.calls) == 1
    assert job.status == JobStatus.CANCELLED
    stored = env.jobs.get("job_d")
    assert stored.status == JobStatus.CANCELLED
    assert stored.generated_questions == 10


def test_mark_job_failed_leaves_terminal_jobs(env):
    payload = _direct(10)
    env.record(payload, status=JobStatus.COMPLETED)
    assert mark_job_failed(env.jobs, "job_d", "late failure").status == JobStatus.COMPLETED
    assert mark_job_failed(env.jobs, "job_nope", "x") is None


def test_fatal_data_error_not_raised_from_queue_entry_point(env, monkeypatch):
    payload = _direct(10, subject_id="unknown")
    env.record(payload)
    llm = MockLLM()
    monkeypatch.setattr(handler_module, "_default_handler", lambda: env.handler(llm))
    result = run_generation_job(payload.model_dump(mode="json"))
    assert result == {"job_id": "job_d", "status": "failed", "generated_questions": 0}
    assert env.jobs.get("job_d").status == JobStatus.FAILED


def test_missing_record_not_raised_from_queue_entry_point(env, monkeypatch):
    monkeypatch.setattr(handler_module, "_default_handler", lambda: env.handler(MockLLM()))
    result = run_generation_job(_direct(10, job_id="job_missing").model_dump(mode="json"))
    assert result["status"] == "failed"
    assert env.jobs.get("job_missing") is None
