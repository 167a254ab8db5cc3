"""One bounded generation unit against the LLM, with shrink-on-overflow and backoff-on-failure."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from examgen.generation.parser import parse_question_candidates
from examgen.generation.prompts import render_prompt
from examgen.generation.retry import RetryPolicy
from examgen.generation.sanitizer import SanitizerError
from examgen.llm.base import CapacityExceededError, LLMProvider
from examgen.schemas.models import GenerationMode, QuestionCandidate

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_SIZE = 50
TOKENS_PER_QUESTION = 150
PROMPT_OVERHEAD_TOKENS = 300
MAX_OUTPUT_TOKENS = 16_000

_TEMPLATES = {
    GenerationMode.SOURCE_SUMMARY: "questions_from_summary.j2",
    GenerationMode.DIRECT_KNOWLEDGE: "questions_from_knowledge.j2",
}
_TEMPERATURES = {
    GenerationMode.SOURCE_SUMMARY: 0.7,
    # Higher temperature for more variety without source material
    GenerationMode.DIRECT_KNOWLEDGE: 0.8,
}


@dataclass(frozen=True)
class ContentSource:
    """What a unit generates from: a stored summary, or the subject/exam names alone."""

    mode: GenerationMode
    subject_name: str
    exam_name: str
    summary_text: str = ""
    topic: str | None = None
    model: str | None = None


@dataclass
class UnitResult:
    candidates: list[QuestionCandidate] = field(default_factory=list)
    requested_size: int = 0
    final_size: int = 0
    attempts: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class BatchGenerator:
    """Issue one generation request and return parsed, size-corrected candidates.

    Failures never escape ``generate``: a unit that cannot produce output
    returns an empty UnitResult with ``error`` set.
    """

    def __init__(
        self,
        llm: LLMProvider,
        policy: RetryPolicy | None = None,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
    ):
        self._llm = llm
        self._policy = policy or RetryPolicy()
        self._max_batch_size = max_batch_size

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    def build_prompt(
        self,
        source: ContentSource,
        count: int,
        covered_topics: list[tuple[str, int]] | None = None,
    ) -> str:
        return render_prompt(
            _TEMPLATES[source.mode],
            count=count,
            subject_name=source.subject_name,
            exam_name=source.exam_name,
            summary_text=source.summary_text,
            topic=source.topic,
            covered_topics=covered_topics or [],
        )

    def generate(
        self,
        source: ContentSource,
        batch_size: int,
        covered_topics: list[tuple[str, int]] | None = None,
    ) -> UnitResult:
        size = min(batch_size, self._max_batch_size)
        result = UnitResult(requested_size=size, final_size=size)
        policy = self._policy

        for attempt in range(1, policy.max_attempts + 1):
            result.attempts = attempt
            result.final_size = size
            prompt = self.build_prompt(source, size, covered_topics)
            try:
                completion = self._llm.generate(
                    prompt,
                    max_tokens=min(MAX_OUTPUT_TOKENS, PROMPT_OVERHEAD_TOKENS + size * TOKENS_PER_QUESTION),
                    temperature=_TEMPERATURES[source.mode],
                    model=source.model,
                )
                result.candidates = parse_question_candidates(completion.text, limit=size)
                result.error = None
                logger.debug(
                    "Unit produced %d/%d candidates (attempt %d, %d completion tokens)",
                    len(result.candidates), size, attempt, completion.completion_tokens,
                )
                return result
            except CapacityExceededError as e:
                result.error = f"capacity: {e}"
                smaller = policy.shrink(size)
                if smaller is None:
                    logger.warning("Unit hit capacity at floor size %d; giving up", size)
                    return result
                logger.warning("Unit hit capacity at size %d; retrying with %d", size, smaller)
                size = smaller
                continue
            except SanitizerError as e:
                result.error = f"malformed output: {e}"
                logger.warning("Unit output unparseable (attempt %d/%d): %s", attempt, policy.max_attempts, e)
            except Exception as e:
                result.error = f"{type(e).__name__}: {e}"
                logger.warning("Unit failed (attempt %d/%d): %s", attempt, policy.max_attempts, e)

            if attempt < policy.max_attempts:
                policy.wait(attempt)

        logger.warning("Unit exhausted %d attempts; returning no candidates", policy.max_attempts)
        return result
