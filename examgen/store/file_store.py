"""JSON-file stores for questions, summaries and the catalog (fallback when no Postgres)."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from examgen.schemas.models import CatalogEntry, PersistedQuestion, SourceSummary

logger = logging.getLogger(__name__)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: Path, data: Any) -> None:
    tmp = path.with_suffix(".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
    tmp.replace(path)


class FileQuestionStore:
    """Questions kept as one JSON list per subject under DATA_DIR/questions/."""

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir) / "questions"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, subject_id: str) -> Path:
        return self._dir / f"{subject_id}.json"

    def _load(self, subject_id: str) -> list[PersistedQuestion]:
        return [PersistedQuestion.model_validate(d) for d in _read_json(self._path(subject_id), [])]

    def insert_many(self, questions: list[PersistedQuestion]) -> list[PersistedQuestion]:
        if not questions:
            return []
        by_subject: dict[str, list[PersistedQuestion]] = {}
        for q in questions:
            by_subject.setdefault(q.subject_id, []).append(q)
        with self._lock:
            for subject_id, new in by_subject.items():
                existing = _read_json(self._path(subject_id), [])
                existing.extend(q.model_dump(mode="json") for q in new)
                _write_json(self._path(subject_id), existing)
        return list(questions)

    def find(
        self,
        subject_id: str,
        exam_id: str | None = None,
        job_id: str | None = None,
    ) -> list[PersistedQuestion]:
        return [
            q for q in self._load(subject_id)
            if (exam_id is None or q.exam_id == exam_id)
            and (job_id is None or q.source_job_id == job_id)
        ]

    def texts_for_subject(self, subject_id: str) -> list[str]:
        return [d.get("question_text", "") for d in _read_json(self._path(subject_id), [])]

    def count_for_job(self, job_id: str) -> int:
        total = 0
        for path in self._dir.glob("*.json"):
            total += sum(1 for d in _read_json(path, []) if d.get("source_job_id") == job_id)
        return total


class FileSummaryStore:
    """Summaries kept in a single JSON file keyed by summary_id."""

    def __init__(self, data_dir: Path):
        root = Path(data_dir)
        root.mkdir(parents=True, exist_ok=True)
        self._path = root / "summaries.json"
        self._lock = threading.Lock()

    def _load(self) -> dict[str, dict]:
        return _read_json(self._path, {})

    def find(self, subject_id: str, exam_id: str) -> list[SourceSummary]:
        return [
            SourceSummary.model_validate(d)
            for d in self._load().values()
            if d.get("subject_id") == subject_id and d.get("exam_id") == exam_id
        ]

    def create(self, summary: SourceSummary) -> SourceSummary:
        with self._lock:
            data = self._load()
            data[summary.summary_id] = summary.model_dump(mode="json")
            _write_json(self._path, data)
        return summary

    def update(self, summary: SourceSummary) -> None:
        self.create(summary)


class FileCatalog:
    """Subjects and exams read from DATA_DIR/catalog.json: {"subjects": {id: name}, "exams": {id: name}}."""

    def __init__(self, data_dir: Path):
        self._path = Path(data_dir) / "catalog.json"

    def _section(self, name: str) -> dict[str, str]:
        return _read_json(self._path, {}).get(name, {})

    def get_subject(self, subject_id: str) -> CatalogEntry | None:
        name = self._section("subjects").get(subject_id)
        return CatalogEntry(id=subject_id, name=name) if name else None

    def get_exam(self, exam_id: str) -> CatalogEntry | None:
        name = self._section("exams").get(exam_id)
        return CatalogEntry(id=exam_id, name=name) if name else None

    def add(self, *, subjects: dict[str, str] | None = None, exams: dict[str, str] | None = None) -> None:
        data = _read_json(self._path, {})
        data.setdefault("subjects", {}).update(subjects or {})
        data.setdefault("exams", {}).update(exams or {})
        self._path.parent.mkdir(parents=True, exist_ok=True)
        _write_json(self._path, data)
