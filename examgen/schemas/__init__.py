"""Schemas: question candidates, persisted records, summaries, queue payloads."""

from examgen.schemas.models import (
    CatalogEntry,
    DirectKnowledgePayload,
    FromSourceDocumentPayload,
    GenerationMode,
    GenerationPayload,
    JobKind,
    PersistedQuestion,
    QuestionCandidate,
    SourceSummary,
    new_job_id,
    parse_payload,
)

__all__ = [
    "CatalogEntry",
    "DirectKnowledgePayload",
    "FromSourceDocumentPayload",
    "GenerationMode",
    "GenerationPayload",
    "JobKind",
    "PersistedQuestion",
    "QuestionCandidate",
    "SourceSummary",
    "new_job_id",
    "parse_payload",
]
