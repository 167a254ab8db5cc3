"""Generation job records: status state machine and storage."""

from examgen.jobs.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    GenerationJob,
    InvalidTransitionError,
    JobStatus,
    JobStatusView,
    final_status,
    format_duration,
)
from examgen.jobs.store import FileJobStore, JobAlreadyExistsError, JobStore, get_job_store

__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "FileJobStore",
    "GenerationJob",
    "InvalidTransitionError",
    "JobAlreadyExistsError",
    "JobStatus",
    "JobStatusView",
    "JobStore",
    "final_status",
    "format_duration",
    "get_job_store",
]
