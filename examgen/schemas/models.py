"""Pydantic models for question candidates, persisted questions, summaries and job payloads."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

OPTION_COUNT = 4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobKind(str, Enum):
    FROM_SOURCE_DOCUMENT = "from_source_document"
    DIRECT_KNOWLEDGE = "direct_knowledge"


class GenerationMode(str, Enum):
    """What a generation unit draws its content from."""

    SOURCE_SUMMARY = "source_summary"
    DIRECT_KNOWLEDGE = "direct_knowledge"


class QuestionCandidate(BaseModel):
    """An unpersisted question produced by one generation unit."""

    question_text: str
    options: list[str]
    correct_option: str
    topics: list[str] = Field(default_factory=list)

    @field_validator("question_text", "correct_option")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("options")
    @classmethod
    def _four_options(cls, v: list[str]) -> list[str]:
        cleaned = [str(o).strip() for o in v]
        if len(cleaned) != OPTION_COUNT:
            raise ValueError(f"expected {OPTION_COUNT} options, got {len(cleaned)}")
        if any(not o for o in cleaned):
            raise ValueError("options must not be blank")
        return cleaned

    @model_validator(mode="after")
    def _correct_is_an_option(self) -> "QuestionCandidate":
        if self.correct_option not in self.options:
            raise ValueError("correct_option must equal one of the options verbatim")
        return self


class PersistedQuestion(QuestionCandidate):
    """A candidate that survived duplicate filtering, with its foreign keys and provenance."""

    question_id: str = Field(default_factory=lambda: f"q_{uuid.uuid4().hex[:16]}")
    subject_id: str
    exam_id: str
    created_by: str = ""
    source_job_id: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_candidate(
        cls,
        candidate: QuestionCandidate,
        *,
        subject_id: str,
        exam_id: str,
        created_by: str,
        source_job_id: str,
    ) -> "PersistedQuestion":
        return cls(
            **candidate.model_dump(),
            subject_id=subject_id,
            exam_id=exam_id,
            created_by=created_by,
            source_job_id=source_job_id,
        )


class SourceSummary(BaseModel):
    """Reusable summary of one or more source documents for a (subject, exam) pair."""

    summary_id: str = Field(default_factory=lambda: f"sum_{uuid.uuid4().hex[:16]}")
    summary_text: str
    topics: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    subject_id: str
    exam_id: str
    source_document_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CatalogEntry(BaseModel):
    """Subject or exam as seen by the pipeline: just an id and a display name."""

    id: str
    name: str


# ---------------------------------------------------------------------------
# Queue payloads
# ---------------------------------------------------------------------------

def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"


class _BasePayload(BaseModel):
    job_id: str = Field(default_factory=new_job_id)
    user_id: str
    subject_id: str
    exam_id: str
    num_questions: int = Field(gt=0)


class FromSourceDocumentPayload(_BasePayload):
    kind: Literal["from_source_document"] = "from_source_document"
    document_id: str
    document_url: str


class DirectKnowledgePayload(_BasePayload):
    kind: Literal["direct_knowledge"] = "direct_knowledge"
    topic: str | None = None


GenerationPayload = Annotated[
    Union[FromSourceDocumentPayload, DirectKnowledgePayload],
    Field(discriminator="kind"),
]

_PAYLOAD_ADAPTER: TypeAdapter[GenerationPayload] = TypeAdapter(GenerationPayload)


def parse_payload(data: dict) -> FromSourceDocumentPayload | DirectKnowledgePayload:
    """Validate a raw queue payload into its tagged variant; raises pydantic.ValidationError."""
    return _PAYLOAD_ADAPTER.validate_python(data)
