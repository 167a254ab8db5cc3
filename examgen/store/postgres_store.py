"""Postgres stores for questions, summaries and the catalog. Survive restarts."""

from __future__ import annotations

import logging

from examgen.schemas.models import CatalogEntry, PersistedQuestion, SourceSummary

logger = logging.getLogger(__name__)


def _connect(database_url: str):
    try:
        import psycopg
    except ImportError:
        raise ImportError("psycopg required for Postgres stores. pip install 'psycopg[binary]'")
    return psycopg.connect(database_url, autocommit=True)


_QUESTION_COLUMNS = (
    "question_id, question_text, options, correct_option, topics, subject_id, exam_id, "
    "created_by, source_job_id, created_at"
)


class PostgresQuestionStore:
    def __init__(self, database_url: str):
        self._conn = _connect(database_url)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS questions (
                question_id TEXT PRIMARY KEY,
                question_text TEXT NOT NULL,
                options JSONB NOT NULL,
                correct_option TEXT NOT NULL,
                topics JSONB NOT NULL DEFAULT '[]',
                subject_id TEXT NOT NULL,
                exam_id TEXT NOT NULL,
                created_by TEXT NOT NULL DEFAULT '',
                source_job_id TEXT NOT NULL DEFAULT '',
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_questions_subject ON questions (subject_id, created_at)"
        )
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_questions_job ON questions (source_job_id)"
        )

    def insert_many(self, questions: list[PersistedQuestion]) -> list[PersistedQuestion]:
        if not questions:
            return []
        from psycopg.types.json import Jsonb

        with self._conn.transaction():
            with self._conn.cursor() as cur:
                cur.executemany(
                    f"""
                    INSERT INTO questions ({_QUESTION_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    [
                        (
                            q.question_id,
                            q.question_text,
                            Jsonb(q.options),
                            q.correct_option,
                            Jsonb(q.topics),
                            q.subject_id,
                            q.exam_id,
                            q.created_by,
                            q.source_job_id,
                            q.created_at,
                        )
                        for q in questions
                    ],
                )
        return list(questions)

    def find(
        self,
        subject_id: str,
        exam_id: str | None = None,
        job_id: str | None = None,
    ) -> list[PersistedQuestion]:
        sql = f"SELECT {_QUESTION_COLUMNS} FROM questions WHERE subject_id = %s"
        params: list[object] = [subject_id]
        if exam_id is not None:
            sql += " AND exam_id = %s"
            params.append(exam_id)
        if job_id is not None:
            sql += " AND source_job_id = %s"
            params.append(job_id)
        rows = self._conn.execute(sql + " ORDER BY created_at", params).fetchall()
        return [
            PersistedQuestion(
                question_id=r[0],
                question_text=r[1],
                options=r[2],
                correct_option=r[3],
                topics=r[4],
                subject_id=r[5],
                exam_id=r[6],
                created_by=r[7],
                source_job_id=r[8],
                created_at=r[9],
            )
            for r in rows
        ]

    def texts_for_subject(self, subject_id: str) -> list[str]:
        rows = self._conn.execute(
            "SELECT question_text FROM questions WHERE subject_id = %s", (subject_id,)
        ).fetchall()
        return [r[0] for r in rows]

    def count_for_job(self, job_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM questions WHERE source_job_id = %s", (job_id,)
        ).fetchone()
        return int(row[0]) if row else 0


class PostgresSummaryStore:
    def __init__(self, database_url: str):
        self._conn = _connect(database_url)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS source_summaries (
                summary_id TEXT PRIMARY KEY,
                summary_text TEXT NOT NULL,
                topics JSONB NOT NULL DEFAULT '[]',
                keywords JSONB NOT NULL DEFAULT '[]',
                subject_id TEXT NOT NULL,
                exam_id TEXT NOT NULL,
                source_document_ids JSONB NOT NULL DEFAULT '[]',
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_source_summaries_scope ON source_summaries (subject_id, exam_id)"
        )

    def find(self, subject_id: str, exam_id: str) -> list[SourceSummary]:
        rows = self._conn.execute(
            """
            SELECT summary_id, summary_text, topics, keywords, subject_id, exam_id,
                   source_document_ids, created_at, updated_at
            FROM source_summaries WHERE subject_id = %s AND exam_id = %s
            ORDER BY created_at
            """,
            (subject_id, exam_id),
        ).fetchall()
        return [
            SourceSummary(
                summary_id=r[0],
                summary_text=r[1],
                topics=r[2],
                keywords=r[3],
                subject_id=r[4],
                exam_id=r[5],
                source_document_ids=r[6],
                created_at=r[7],
                updated_at=r[8],
            )
            for r in rows
        ]

    def create(self, summary: SourceSummary) -> SourceSummary:
        from psycopg.types.json import Jsonb

        self._conn.execute(
            """
            INSERT INTO source_summaries
            (summary_id, summary_text, topics, keywords, subject_id, exam_id,
             source_document_ids, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                summary.summary_id,
                summary.summary_text,
                Jsonb(summary.topics),
                Jsonb(summary.keywords),
                summary.subject_id,
                summary.exam_id,
                Jsonb(summary.source_document_ids),
                summary.created_at,
                summary.updated_at,
            ),
        )
        return summary

    def update(self, summary: SourceSummary) -> None:
        from psycopg.types.json import Jsonb

        self._conn.execute(
            """
            UPDATE source_summaries
            SET source_document_ids = %s, updated_at = %s
            WHERE summary_id = %s
            """,
            (Jsonb(summary.source_document_ids), summary.updated_at, summary.summary_id),
        )


class PostgresCatalog:
    """Reads the application's subjects / exams tables (owned and migrated elsewhere)."""

    def __init__(self, database_url: str):
        self._conn = _connect(database_url)

    def get_subject(self, subject_id: str) -> CatalogEntry | None:
        row = self._conn.execute(
            "SELECT id, name FROM subjects WHERE id = %s", (subject_id,)
        ).fetchone()
        return CatalogEntry(id=str(row[0]), name=row[1]) if row else None

    def get_exam(self, exam_id: str) -> CatalogEntry | None:
        row = self._conn.execute(
            "SELECT id, name FROM exams WHERE id = %s", (exam_id,)
        ).fetchone()
        return CatalogEntry(id=str(row[0]), name=row[1]) if row else None
