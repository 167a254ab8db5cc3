"""Persistent stores for questions, summaries and the catalog (Postgres or JSON files)."""

from __future__ import annotations

import logging

from examgen.config import Settings
from examgen.store.base import Catalog, QuestionStore, SummaryStore
from examgen.store.file_store import FileCatalog, FileQuestionStore, FileSummaryStore

logger = logging.getLogger(__name__)


def get_question_store(settings: Settings) -> QuestionStore:
    if settings.examgen_database_url:
        from examgen.store.postgres_store import PostgresQuestionStore

        return PostgresQuestionStore(settings.examgen_database_url)
    return FileQuestionStore(settings.data_dir)


def get_summary_store(settings: Settings) -> SummaryStore:
    if settings.examgen_database_url:
        from examgen.store.postgres_store import PostgresSummaryStore

        return PostgresSummaryStore(settings.examgen_database_url)
    return FileSummaryStore(settings.data_dir)


def get_catalog(settings: Settings) -> Catalog:
    if settings.examgen_database_url:
        from examgen.store.postgres_store import PostgresCatalog

        return PostgresCatalog(settings.examgen_database_url)
    return FileCatalog(settings.data_dir)


__all__ = [
    "Catalog",
    "FileCatalog",
    "FileQuestionStore",
    "FileSummaryStore",
    "QuestionStore",
    "SummaryStore",
    "get_catalog",
    "get_question_store",
    "get_summary_store",
]
