"""Generation job storage: Postgres (preferred) or file-based fallback."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Iterable, Protocol

from examgen.config import Settings
from examgen.jobs.models import GenerationJob, JobStatus
from examgen.schemas.models import JobKind

logger = logging.getLogger(__name__)


class JobStore(Protocol):
    def create(self, job: GenerationJob) -> GenerationJob: ...
    def get(self, job_id: str) -> GenerationJob | None: ...
    def update(self, job: GenerationJob) -> None: ...
    def list_jobs(
        self,
        kinds: Iterable[JobKind] | None = None,
        statuses: Iterable[JobStatus] | None = None,
        limit: int = 20,
    ) -> list[GenerationJob]: ...


class JobAlreadyExistsError(Exception):
    """Raised when creating a job whose id is already taken."""


_COLUMNS = (
    "job_id, kind, user_id, subject_id, subject_name, exam_id, exam_name, "
    "requested_questions, generated_questions, status, error_message, "
    "created_at, updated_at, started_at, completed_at, time_taken"
)


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

class PostgresJobStore:
    """Persist jobs in Postgres. Survives restarts."""

    def __init__(self, database_url: str):
        self._url = database_url
        self._conn = self._connect()

    def _connect(self):
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres job store. pip install 'psycopg[binary]'"
            )
        conn = psycopg.connect(self._url, autocommit=True)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS generation_jobs (
                job_id TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                user_id TEXT NOT NULL DEFAULT '',
                subject_id TEXT NOT NULL,
                subject_name TEXT NOT NULL DEFAULT '',
                exam_id TEXT NOT NULL,
                exam_name TEXT NOT NULL DEFAULT '',
                requested_questions INT NOT NULL DEFAULT 0,
                generated_questions INT NOT NULL DEFAULT 0,
                status TEXT NOT NULL,
                error_message TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                time_taken TEXT
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_generation_jobs_status_kind
            ON generation_jobs (status, kind, updated_at DESC)
        """)
        return conn

    def create(self, job: GenerationJob) -> GenerationJob:
        import psycopg

        try:
            self._conn.execute(
                f"""
                INSERT INTO generation_jobs ({_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                self._job_to_row(job),
            )
        except psycopg.errors.UniqueViolation as e:
            raise JobAlreadyExistsError(job.job_id) from e
        return job

    def get(self, job_id: str) -> GenerationJob | None:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM generation_jobs WHERE job_id = %s",
            (job_id,),
        ).fetchone()
        if not row:
            return None
        return self._row_to_job(row)

    def update(self, job: GenerationJob) -> None:
        self._conn.execute(
            """
            UPDATE generation_jobs SET
                status = %s, generated_questions = %s, error_message = %s,
                updated_at = %s, started_at = %s, completed_at = %s, time_taken = %s
            WHERE job_id = %s
            """,
            (
                job.status.value,
                job.generated_questions,
                job.error_message,
                job.updated_at,
                job.started_at,
                job.completed_at,
                job.time_taken,
                job.job_id,
            ),
        )

    def list_jobs(
        self,
        kinds: Iterable[JobKind] | None = None,
        statuses: Iterable[JobStatus] | None = None,
        limit: int = 20,
    ) -> list[GenerationJob]:
        clauses: list[str] = []
        params: list[object] = []
        if kinds is not None:
            clauses.append("kind = ANY(%s)")
            params.append([k.value for k in kinds])
        if statuses is not None:
            clauses.append("status = ANY(%s)")
            params.append([s.value for s in statuses])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        rows = self._conn.execute(
            f"SELECT {_COLUMNS} FROM generation_jobs {where} ORDER BY updated_at DESC LIMIT %s",
            params,
        ).fetchall()
        return [self._row_to_job(r) for r in rows]

    @staticmethod
    def _job_to_row(job: GenerationJob) -> tuple:
        return (
            job.job_id,
            job.kind.value,
            job.user_id,
            job.subject_id,
            job.subject_name,
            job.exam_id,
            job.exam_name,
            job.requested_questions,
            job.generated_questions,
            job.status.value,
            job.error_message,
            job.created_at,
            job.updated_at,
            job.started_at,
            job.completed_at,
            job.time_taken,
        )

    def _row_to_job(self, row) -> GenerationJob:
        return GenerationJob(
            job_id=row[0],
            kind=JobKind(row[1]),
            user_id=row[2],
            subject_id=row[3],
            subject_name=row[4],
            exam_id=row[5],
            exam_name=row[6],
            requested_questions=row[7],
            generated_questions=row[8],
            status=JobStatus(row[9]),
            error_message=row[10],
            created_at=row[11],
            updated_at=row[12],
            started_at=row[13],
            completed_at=row[14],
            time_taken=row[15],
        )


# ---------------------------------------------------------------------------
# File-based implementation (fallback when no Postgres)
# ---------------------------------------------------------------------------

class FileJobStore:
    """Persist jobs as JSON files. Survives restarts within same data dir."""

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir) / "jobs"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _job_path(self, job_id: str) -> Path:
        return self._dir / f"{job_id}.json"

    def create(self, job: GenerationJob) -> GenerationJob:
        with self._lock:
            if self._job_path(job.job_id).exists():
                raise JobAlreadyExistsError(job.job_id)
            self._write_job(job)
        return job

    def get(self, job_id: str) -> GenerationJob | None:
        path = self._job_path(job_id)
        if not path.exists():
            return None
        return self._read_job(path)

    def update(self, job: GenerationJob) -> None:
        with self._lock:
            self._write_job(job)

    def list_jobs(
        self,
        kinds: Iterable[JobKind] | None = None,
        statuses: Iterable[JobStatus] | None = None,
        limit: int = 20,
    ) -> list[GenerationJob]:
        kind_set = set(kinds) if kinds is not None else None
        status_set = set(statuses) if statuses is not None else None
        jobs = []
        for path in self._dir.glob("*.json"):
            job = self._read_job(path)
            if kind_set is not None and job.kind not in kind_set:
                continue
            if status_set is not None and job.status not in status_set:
                continue
            jobs.append(job)
        jobs.sort(key=lambda j: j.updated_at, reverse=True)
        return jobs[:limit]

    def _write_job(self, job: GenerationJob) -> None:
        path = self._job_path(job.job_id)
        tmp = path.with_suffix(".tmp")
        data = job.model_dump(mode="json")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        tmp.replace(path)

    def _read_job(self, path: Path) -> GenerationJob:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return GenerationJob.model_validate(data)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_job_store(settings: Settings) -> JobStore:
    """Return a job store (Postgres if configured, else file-based)."""
    if settings.examgen_database_url:
        try:
            store = PostgresJobStore(settings.examgen_database_url)
            logger.info("Using Postgres job store")
            return store
        except Exception as e:
            logger.warning("Postgres job store failed (%s), falling back to file store", e)
    logger.info("Using file-based job store (EXAMGEN_DATA_DIR/jobs)")
    return FileJobStore(settings.data_dir)
