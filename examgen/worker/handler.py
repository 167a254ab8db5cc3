"""Process one generation payload: run waves, persist questions, write the job outcome."""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable

from examgen.config import Settings, get_settings
from examgen.generation.batch import BatchGenerator, ContentSource
from examgen.generation.dedup import DuplicateFilter
from examgen.generation.retry import RetryPolicy
from examgen.generation.waves import ScheduleResult, WaveScheduler
from examgen.ingest.document_fetcher import DocumentFetcher, DocumentNotFoundError
from examgen.jobs.models import GenerationJob, JobStatus, final_status
from examgen.jobs.store import JobStore, get_job_store
from examgen.llm import get_provider
from examgen.llm.base import LLMProvider
from examgen.schemas.models import (
    CatalogEntry,
    DirectKnowledgePayload,
    FromSourceDocumentPayload,
    GenerationMode,
    PersistedQuestion,
    QuestionCandidate,
    parse_payload,
)
from examgen.store import get_catalog, get_question_store, get_summary_store
from examgen.store.base import Catalog, QuestionStore, SummaryStore
from examgen.summary.cache import SummaryCache, SummaryExtractionError

logger = logging.getLogger(__name__)

Payload = FromSourceDocumentPayload | DirectKnowledgePayload


class JobDataError(Exception):
    """Upstream data needed by the job is missing (subject, exam, document or job record)."""


@dataclass(frozen=True)
class GenerationConfig:
    unit_size: int = 50
    min_unit_size: int = 5
    wave_size: int = 10
    inter_wave_delay: float = 2.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    duplicate_threshold: float = 0.85
    summary_threshold: float = 0.6
    summary_model: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "GenerationConfig":
        provider = settings.examgen_llm_provider.lower()
        return cls(
            unit_size=settings.question_batch_size,
            min_unit_size=settings.question_min_batch_size,
            wave_size=settings.question_wave_size,
            inter_wave_delay=settings.question_batch_delay_ms / 1000,
            max_retries=settings.max_retries,
            retry_base_delay=settings.retry_base_delay_ms / 1000,
            duplicate_threshold=settings.duplicate_similarity_threshold,
            summary_threshold=settings.summary_topic_overlap_threshold,
            summary_model=settings.examgen_openai_model_mini if provider == "openai" else None,
        )


def mark_job_failed(job_store: JobStore, job_id: str, message: str) -> GenerationJob | None:
    """Move a non-terminal job to failed with the given message; terminal jobs are left alone."""
    job = job_store.get(job_id)
    if job is None or job.status.is_terminal:
        return job
    job.error_message = message
    job.transition(JobStatus.FAILED)
    job_store.update(job)
    logger.info("Job %s marked failed: %s", job_id, message)
    return job


class GenerationJobHandler:
    """Runs a single payload end to end.

    Safe under redelivery: a job already in a terminal status is a no-op, and
    a job found ``running`` (worker died mid-job) resumes from the questions
    already persisted for it.
    """

    def __init__(
        self,
        job_store: JobStore,
        question_store: QuestionStore,
        summary_store: SummaryStore,
        catalog: Catalog,
        fetcher: DocumentFetcher,
        llm: LLMProvider,
        config: GenerationConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._jobs = job_store
        self._questions = question_store
        self._catalog = catalog
        self._fetcher = fetcher
        self._config = config or GenerationConfig()
        self._summaries = SummaryCache(llm, summary_store, threshold=self._config.summary_threshold)
        policy = RetryPolicy(
            max_retries=self._config.max_retries,
            base_delay=self._config.retry_base_delay,
            min_batch_size=self._config.min_unit_size,
            sleep=sleep,
        )
        self._scheduler = WaveScheduler(
            BatchGenerator(llm, policy, max_batch_size=self._config.unit_size),
            unit_size=self._config.unit_size,
            wave_size=self._config.wave_size,
            inter_wave_delay=self._config.inter_wave_delay,
            sleep=sleep,
        )

    def handle(self, payload: Payload) -> GenerationJob:
        job = self._jobs.get(payload.job_id)
        if job is None:
            raise JobDataError(f"No job record for {payload.job_id}")
        if job.status.is_terminal:
            logger.info("Job %s already %s; skipping redelivery", job.job_id, job.status.value)
            return job

        if job.status == JobStatus.RUNNING:
            persisted = self._questions.count_for_job(job.job_id)
            job.record_progress(max(persisted, job.generated_questions))
            logger.info(
                "Resuming job %s with %d/%d question(s) already stored",
                job.job_id, job.generated_questions, job.requested_questions,
            )
        else:
            job.transition(JobStatus.RUNNING)
            logger.info("Job %s started: %d question(s) requested", job.job_id, job.requested_questions)
        self._jobs.update(job)

        try:
            subject, exam = self._resolve_target(payload)
            job.subject_name = job.subject_name or subject.name
            job.exam_name = job.exam_name or exam.name
            attempted = self._generate(job, payload, subject, exam)
        except JobDataError as e:
            # Fatal: end the job here rather than hand it back to queue retries.
            logger.error("Job %s failed: %s", job.job_id, e)
            return mark_job_failed(self._jobs, job.job_id, str(e)) or job
        except Exception:
            # Left running so a redelivery resumes it; the queue marks it failed once retries run out.
            logger.exception("Job %s raised during generation", job.job_id)
            raise

        return self._finish(job, attempted)

    def _resolve_target(self, payload: Payload) -> tuple[CatalogEntry, CatalogEntry]:
        subject = self._catalog.get_subject(payload.subject_id)
        if subject is None:
            raise JobDataError(f"Subject {payload.subject_id} not found")
        exam = self._catalog.get_exam(payload.exam_id)
        if exam is None:
            raise JobDataError(f"Exam {payload.exam_id} not found")
        return subject, exam

    def _generate(self, job: GenerationJob, payload: Payload, subject: CatalogEntry, exam: CatalogEntry) -> int:
        """Run all waves for the job's shortfall; returns the number of units attempted."""
        if job.generated_questions >= job.requested_questions:
            return 0

        knowledge = ContentSource(
            mode=GenerationMode.DIRECT_KNOWLEDGE,
            subject_name=subject.name,
            exam_name=exam.name,
            topic=payload.topic if isinstance(payload, DirectKnowledgePayload) else None,
        )
        source = knowledge
        if isinstance(payload, FromSourceDocumentPayload):
            source = self._summary_source(payload, subject, exam) or knowledge

        dup_filter = DuplicateFilter.for_subject(
            self._questions, job.subject_id, threshold=self._config.duplicate_threshold
        )
        covered: Counter = Counter()
        for question in self._questions.find(job.subject_id, job_id=job.job_id):
            covered.update(t.lower() for t in question.topics)

        result = self._run_waves(job, source, dup_filter, covered)
        attempted = result.attempted_units
        if (
            source.mode == GenerationMode.SOURCE_SUMMARY
            and result.accepted == 0
            and not result.cancelled
            and job.generated_questions < job.requested_questions
        ):
            logger.warning("Job %s: no questions from summary; falling back to knowledge generation", job.job_id)
            attempted += self._run_waves(job, knowledge, dup_filter, covered).attempted_units
        return attempted

    def _summary_source(
        self, payload: FromSourceDocumentPayload, subject: CatalogEntry, exam: CatalogEntry
    ) -> ContentSource | None:
        try:
            text = self._fetcher.fetch(payload.document_url)
        except DocumentNotFoundError as e:
            raise JobDataError(f"Source document {payload.document_id} not found") from e
        try:
            summary = self._summaries.get_or_create(payload.document_id, text, payload.subject_id, payload.exam_id)
        except SummaryExtractionError as e:
            logger.warning("Job %s: summary unavailable (%s); falling back to knowledge generation", payload.job_id, e)
            return None
        return ContentSource(
            mode=GenerationMode.SOURCE_SUMMARY,
            subject_name=subject.name,
            exam_name=exam.name,
            summary_text=summary.summary_text,
            model=self._config.summary_model,
        )

    def _run_waves(
        self, job: GenerationJob, source: ContentSource, dup_filter: DuplicateFilter, covered: Counter
    ) -> ScheduleResult:
        def on_accept(candidates: list[QuestionCandidate]) -> int:
            records = [
                PersistedQuestion.from_candidate(
                    c,
                    subject_id=job.subject_id,
                    exam_id=job.exam_id,
                    created_by=job.user_id,
                    source_job_id=job.job_id,
                )
                for c in candidates
            ]
            stored = len(self._questions.insert_many(records))
            job.record_progress(job.generated_questions + stored)
            self._save_progress(job)
            return stored

        def should_continue() -> bool:
            current = self._jobs.get(job.job_id)
            return current is not None and current.status == JobStatus.RUNNING

        return self._scheduler.run(
            source,
            job.requested_questions - job.generated_questions,
            dup_filter,
            on_accept,
            should_continue=should_continue,
            covered_topics=covered,
        )

    def _save_progress(self, job: GenerationJob) -> None:
        current = self._jobs.get(job.job_id)
        if current is not None and current.status.is_terminal:
            # Cancelled while this wave ran: keep the external status, carry the count.
            current.record_progress(max(job.generated_questions, current.generated_questions))
            self._jobs.update(current)
            return
        self._jobs.update(job)

    def _finish(self, job: GenerationJob, attempted_units: int) -> GenerationJob:
        current = self._jobs.get(job.job_id)
        if current is not None and current.status.is_terminal:
            logger.info(
                "Job %s ended as %s with %d/%d question(s)",
                job.job_id, current.status.value, current.generated_questions, current.requested_questions,
            )
            return current

        status = final_status(job.requested_questions, job.generated_questions, attempted_units)
        if status == JobStatus.FAILED:
            job.error_message = "No questions could be generated"
        job.transition(status)
        self._jobs.update(job)
        logger.info(
            "Job %s %s: %d/%d question(s) in %s",
            job.job_id, status.value, job.generated_questions, job.requested_questions, job.time_taken,
        )
        return job


def build_handler(settings: Settings) -> GenerationJobHandler:
    provider = settings.examgen_llm_provider
    llm = get_provider(
        provider,
        api_key=settings.api_key_for(provider),
        model=settings.model_for(provider),
        timeout=settings.examgen_llm_timeout_seconds,
    )
    return GenerationJobHandler(
        job_store=get_job_store(settings),
        question_store=get_question_store(settings),
        summary_store=get_summary_store(settings),
        catalog=get_catalog(settings),
        fetcher=DocumentFetcher(
            timeout=settings.document_fetch_timeout_seconds,
            max_chars=settings.document_max_chars,
        ),
        llm=llm,
        config=GenerationConfig.from_settings(settings),
    )


@lru_cache(maxsize=1)
def _default_handler() -> GenerationJobHandler:
    return build_handler(get_settings())


def run_generation_job(payload_data: dict[str, Any]) -> dict[str, Any]:
    """Queue entry point: validate the raw payload and process it with the process-wide handler."""
    payload = parse_payload(payload_data)
    try:
        job = _default_handler().handle(payload)
    except JobDataError as e:
        logger.error("Dropping payload for job %s: %s", payload.job_id, e)
        return {"job_id": payload.job_id, "status": JobStatus.FAILED.value, "generated_questions": 0}
    return {
        "job_id": job.job_id,
        "status": job.status.value,
        "generated_questions": job.generated_questions,
    }
