"""Reusable source summaries keyed by (subject, exam) and matched by topic overlap.

Resolution runs in two phases so the expensive summary call is skipped when
an earlier document already covered the same ground:

1. A cheap call lists the document's main topics.
2. Stored summaries for the same subject and exam are scored by Jaccard
   overlap of their topics; the best one at or above the threshold is reused
   and the document id is appended to its sources. Otherwise a new summary
   is generated and stored.

Summaries are never deleted here.
"""

from __future__ import annotations

import json
import logging

from examgen.generation.prompts import render_prompt
from examgen.generation.sanitizer import SanitizerError, sanitize_json_array, strip_code_fence
from examgen.generation.topics import jaccard_similarity
from examgen.llm.base import LLMProvider
from examgen.schemas.models import SourceSummary, utcnow
from examgen.store.base import SummaryStore

logger = logging.getLogger(__name__)

TOPICS_MAX_TOKENS = 500
SUMMARY_MAX_TOKENS = 4000
EXTRACTION_TEMPERATURE = 0.3


class SummaryExtractionError(Exception):
    """Raised when topics or a summary cannot be extracted from a document."""


def extract_topics(llm: LLMProvider, document_text: str) -> list[str]:
    """Main topics of the document as a de-duplicated list; raises on empty or garbage output."""
    prompt = render_prompt("summary_topics.j2", document_text=document_text)
    try:
        raw = llm.complete(prompt, max_tokens=TOPICS_MAX_TOKENS, temperature=EXTRACTION_TEMPERATURE)
        items = sanitize_json_array(raw)
    except SanitizerError as e:
        raise SummaryExtractionError(f"Topic extraction returned unparseable output: {e}") from e
    except Exception as e:
        raise SummaryExtractionError(f"Topic extraction failed: {e}") from e

    topics: list[str] = []
    seen: set[str] = set()
    for item in items:
        topic = str(item).strip() if isinstance(item, (str, int, float)) else ""
        if topic and topic.lower() not in seen:
            seen.add(topic.lower())
            topics.append(topic)
    if not topics:
        raise SummaryExtractionError("No topics extracted from document")
    return topics


def generate_summary(llm: LLMProvider, document_text: str, topics: list[str]) -> tuple[str, list[str]]:
    """Return (summary_text, keywords) for the document, guided by its topics."""
    prompt = render_prompt("summary_generate.j2", document_text=document_text, topics=topics)
    try:
        raw = llm.complete(prompt, max_tokens=SUMMARY_MAX_TOKENS, temperature=EXTRACTION_TEMPERATURE)
    except Exception as e:
        raise SummaryExtractionError(f"Summary generation failed: {e}") from e

    text = strip_code_fence(raw or "")
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        raise SummaryExtractionError("Summary output contains no JSON object")
    try:
        data = json.loads(text[start : end + 1], strict=False)
    except json.JSONDecodeError as e:
        raise SummaryExtractionError(f"Summary output is not valid JSON: {e.msg}") from e

    summary_text = str(data.get("summaryText") or data.get("summary_text") or "").strip()
    if not summary_text:
        raise SummaryExtractionError("Summary output has no summary text")
    keywords = [str(k).strip() for k in data.get("keywords") or [] if str(k).strip()]
    return summary_text, keywords


def find_similar_summary(
    store: SummaryStore,
    subject_id: str,
    exam_id: str,
    topics: list[str],
    threshold: float = 0.6,
) -> SourceSummary | None:
    """Best-overlapping stored summary for the scope, or None when none reaches threshold."""
    best: SourceSummary | None = None
    best_score = 0.0
    for summary in store.find(subject_id, exam_id):
        score = jaccard_similarity(topics, summary.topics)
        if score >= threshold and score > best_score:
            best, best_score = summary, score
    if best is not None:
        logger.info("Found similar summary %s (topic overlap %.2f)", best.summary_id, best_score)
    return best


class SummaryCache:
    def __init__(self, llm: LLMProvider, store: SummaryStore, threshold: float = 0.6):
        self._llm = llm
        self._store = store
        self._threshold = threshold

    def get_or_create(
        self,
        document_id: str,
        document_text: str,
        subject_id: str,
        exam_id: str,
    ) -> SourceSummary:
        """Summary covering the document: reused when a similar one exists, otherwise created.

        Raises SummaryExtractionError when topics or a new summary cannot be extracted.
        """
        if not document_text.strip():
            raise SummaryExtractionError(f"Document {document_id} has no text")

        topics = extract_topics(self._llm, document_text)
        logger.info("Extracted %d topic(s) from document %s", len(topics), document_id)

        existing = find_similar_summary(self._store, subject_id, exam_id, topics, self._threshold)
        if existing is not None:
            if document_id not in existing.source_document_ids:
                existing.source_document_ids.append(document_id)
                existing.updated_at = utcnow()
                self._store.update(existing)
            logger.info("Reusing summary %s for document %s", existing.summary_id, document_id)
            return existing

        summary_text, keywords = generate_summary(self._llm, document_text, topics)
        summary = self._store.create(
            SourceSummary(
                summary_text=summary_text,
                topics=topics,
                keywords=keywords,
                subject_id=subject_id,
                exam_id=exam_id,
                source_document_ids=[document_id],
            )
        )
        logger.info("Created summary %s for document %s", summary.summary_id, document_id)
        return summary
