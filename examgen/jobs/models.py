"""Generation job schema, status state machine and read projection."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from examgen.schemas.models import JobKind, utcnow


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.PARTIAL, JobStatus.FAILED, JobStatus.CANCELLED}
)

ACTIVE_STATUSES = (JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.PARTIAL)

_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.RUNNING: TERMINAL_STATUSES,
}


class InvalidTransitionError(Exception):
    """Raised when a job status change would break the queued -> running -> terminal order."""


def format_duration(duration_ms: float) -> str:
    """Human-readable elapsed time: '45 seconds', '3 minutes', '2 hours 5 minutes'."""
    total_seconds = max(0, int(duration_ms // 1000))

    def plural(n: int, unit: str) -> str:
        return f"{n} {unit}{'' if n == 1 else 's'}"

    if total_seconds < 60:
        return plural(total_seconds, "second")
    total_minutes = total_seconds // 60
    if total_minutes < 60:
        return plural(total_minutes, "minute")
    hours, minutes = divmod(total_minutes, 60)
    if minutes == 0:
        return plural(hours, "hour")
    return f"{plural(hours, 'hour')} {plural(minutes, 'minute')}"


class GenerationJob(BaseModel):
    """Durable question generation job, mutated only by the worker processing it."""

    job_id: str
    kind: JobKind
    user_id: str = ""
    subject_id: str
    subject_name: str = ""
    exam_id: str
    exam_name: str = ""
    requested_questions: int = Field(ge=0)
    generated_questions: int = Field(default=0, ge=0)
    status: JobStatus = JobStatus.QUEUED
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    time_taken: str | None = None

    @model_validator(mode="after")
    def _generated_within_requested(self) -> "GenerationJob":
        if self.generated_questions > self.requested_questions:
            raise ValueError("generated_questions cannot exceed requested_questions")
        return self

    def transition(self, new_status: JobStatus, *, now: datetime | None = None) -> None:
        """Move to new_status, stamping started/completed times."""
        allowed = _ALLOWED_TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise InvalidTransitionError(
                f"Job {self.job_id}: cannot move from {self.status.value} to {new_status.value}"
            )
        now = now or utcnow()
        self.status = new_status
        self.updated_at = now
        if new_status == JobStatus.RUNNING:
            self.started_at = now
        elif new_status.is_terminal:
            self.completed_at = now
            if self.started_at is not None:
                self.time_taken = format_duration((now - self.started_at).total_seconds() * 1000)

    def record_progress(self, generated: int, *, now: datetime | None = None) -> None:
        """Raise the generated count; it never decreases and never passes the requested count."""
        if generated < self.generated_questions:
            raise ValueError("generated_questions is monotonically non-decreasing")
        self.generated_questions = min(generated, self.requested_questions)
        self.updated_at = now or utcnow()


def final_status(requested: int, generated: int, attempted_units: int) -> JobStatus:
    """Terminal status from counts: completed / partial / failed."""
    if generated >= requested:
        return JobStatus.COMPLETED
    if generated > 0:
        return JobStatus.PARTIAL
    if attempted_units > 0:
        return JobStatus.FAILED
    # Nothing attempted and nothing generated happens only for an empty request.
    return JobStatus.COMPLETED if requested == 0 else JobStatus.FAILED


class JobStatusView(BaseModel):
    """Read-only projection of a job record for callers polling status."""

    job_id: str
    kind: JobKind
    subject_id: str
    subject_name: str
    exam_id: str
    exam_name: str
    status: JobStatus
    requested_questions: int
    generated_questions: int
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    elapsed: str | None = None
    error_message: str | None = None

    @classmethod
    def from_job(cls, job: GenerationJob, *, now: datetime | None = None) -> "JobStatusView":
        elapsed = job.time_taken
        if elapsed is None and job.started_at is not None and not job.status.is_terminal:
            now = now or utcnow()
            elapsed = format_duration((now - job.started_at).total_seconds() * 1000)
        return cls(
            job_id=job.job_id,
            kind=job.kind,
            subject_id=job.subject_id,
            subject_name=job.subject_name,
            exam_id=job.exam_id,
            exam_name=job.exam_name,
            status=job.status,
            requested_questions=job.requested_questions,
            generated_questions=job.generated_questions,
            created_at=job.created_at,
            updated_at=job.updated_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            elapsed=elapsed,
            error_message=job.error_message,
        )
