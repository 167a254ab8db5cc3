"""Storage protocols for persisted questions, source summaries and the subject/exam catalog."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from examgen.schemas.models import CatalogEntry, PersistedQuestion, SourceSummary


@runtime_checkable
class QuestionStore(Protocol):
    """Append-mostly question corpus. Also satisfies the duplicate filter's QuestionCorpus."""

    def insert_many(self, questions: list[PersistedQuestion]) -> list[PersistedQuestion]:
        """Insert all questions; returns the stored records in insertion order."""
        ...

    def find(
        self,
        subject_id: str,
        exam_id: str | None = None,
        job_id: str | None = None,
    ) -> list[PersistedQuestion]:
        ...

    def texts_for_subject(self, subject_id: str) -> list[str]:
        ...

    def count_for_job(self, job_id: str) -> int:
        ...


@runtime_checkable
class SummaryStore(Protocol):
    def find(self, subject_id: str, exam_id: str) -> list[SourceSummary]:
        """All summaries scoped to one (subject, exam) pair."""
        ...

    def create(self, summary: SourceSummary) -> SourceSummary:
        ...

    def update(self, summary: SourceSummary) -> None:
        ...


@runtime_checkable
class Catalog(Protocol):
    """Read-only lookup of subjects and exams owned by the surrounding application."""

    def get_subject(self, subject_id: str) -> CatalogEntry | None:
        ...

    def get_exam(self, exam_id: str) -> CatalogEntry | None:
        ...
