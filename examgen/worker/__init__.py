"""Queue consumer: job handler, queue adapters and worker bootstrap."""

from examgen.worker.handler import (
    GenerationConfig,
    GenerationJobHandler,
    JobDataError,
    build_handler,
    mark_job_failed,
    run_generation_job,
)
from examgen.worker.queue import InlineJobQueue, JobQueue, RQJobQueue, mark_failed_on_exhaustion

__all__ = [
    "GenerationConfig",
    "GenerationJobHandler",
    "InlineJobQueue",
    "JobDataError",
    "JobQueue",
    "RQJobQueue",
    "build_handler",
    "mark_failed_on_exhaustion",
    "mark_job_failed",
    "run_generation_job",
]
