"""Turn a raw model response into validated QuestionCandidates."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from examgen.generation.sanitizer import sanitize_json_array
from examgen.generation.topics import extract_topic_tags
from examgen.schemas.models import QuestionCandidate

logger = logging.getLogger(__name__)

_TEXT_KEYS = ("questionsText", "question_text", "questionText", "question")
_OPTIONS_KEYS = ("Options", "options", "choices")
_CORRECT_KEYS = ("correctOption", "correct_option", "correctAnswer", "answer")
_LETTERS = "ABCD"


def _first(item: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return None


def _resolve_correct(correct: Any, options: list[str]) -> Any:
    """Map a letter answer ('B', 'b)', 'Option C') onto the option text when it isn't verbatim."""
    if not isinstance(correct, str) or correct.strip() in options:
        return correct
    token = correct.strip().rstrip(").:").replace("Option", "").strip().upper()
    if len(token) == 1 and token in _LETTERS and _LETTERS.index(token) < len(options):
        return options[_LETTERS.index(token)]
    return correct


def to_candidate(item: Any) -> QuestionCandidate | None:
    """Build one candidate from a parsed dict; None when it fails validation."""
    if not isinstance(item, dict):
        return None
    text = _first(item, _TEXT_KEYS)
    options = _first(item, _OPTIONS_KEYS)
    if not isinstance(options, list):
        return None
    options = [str(o).strip() for o in options]
    correct = _resolve_correct(_first(item, _CORRECT_KEYS), options)
    topics = item.get("topics")
    if not isinstance(topics, list) or not topics:
        topics = extract_topic_tags(str(text or ""))
    try:
        return QuestionCandidate(
            question_text=str(text or ""),
            options=options,
            correct_option=str(correct or ""),
            topics=[str(t).strip() for t in topics if str(t).strip()],
        )
    except ValidationError as e:
        logger.debug("Dropping invalid candidate: %s", e.errors()[0].get("msg"))
        return None


def parse_question_candidates(raw: str, limit: int | None = None) -> list[QuestionCandidate]:
    """Sanitize, parse and validate; invalid items are dropped, the result is cut to limit.

    Raises SanitizerError when no JSON array can be recovered.
    """
    items = sanitize_json_array(raw)
    candidates = [c for c in (to_candidate(item) for item in items) if c is not None]
    dropped = len(items) - len(candidates)
    if dropped:
        logger.warning("Dropped %d of %d malformed question(s)", dropped, len(items))
    if limit is not None and len(candidates) > limit:
        candidates = candidates[:limit]
    return candidates
