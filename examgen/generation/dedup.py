"""Fuzzy duplicate suppression of new questions against a subject's existing corpus."""

from __future__ import annotations

import logging
import re
from difflib import SequenceMatcher
from typing import Callable, Iterable, Protocol

from examgen.schemas.models import QuestionCandidate

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")

Scorer = Callable[[str, str], float]


class QuestionCorpus(Protocol):
    """Where existing question texts come from; swap in an indexed store without changing callers."""

    def texts_for_subject(self, subject_id: str) -> list[str]: ...


def _tokens(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _ratio(a: str, b: str) -> float:
    if not a and not b:
        return 1.0
    return SequenceMatcher(None, a, b).ratio()


def sequence_ratio(a: str, b: str) -> float:
    """Character-level similarity of the normalized texts, 0..1."""
    return _ratio(" ".join(_tokens(a)), " ".join(_tokens(b)))


def token_set_ratio(a: str, b: str) -> float:
    """Token-set similarity, 0..1: word order and repeated words are ignored.

    Compares the sorted shared tokens against each side's shared+remaining
    tokens and takes the best of the three pairings.
    """
    tokens_a = set(_tokens(a))
    tokens_b = set(_tokens(b))
    if not tokens_a or not tokens_b:
        return 1.0 if tokens_a == tokens_b else 0.0
    common = " ".join(sorted(tokens_a & tokens_b))
    rest_a = " ".join(sorted(tokens_a - tokens_b))
    rest_b = " ".join(sorted(tokens_b - tokens_a))
    combined_a = f"{common} {rest_a}".strip()
    combined_b = f"{common} {rest_b}".strip()
    scores = [_ratio(combined_a, combined_b)]
    if common:
        scores.extend([_ratio(common, combined_a), _ratio(common, combined_b)])
    return max(scores)


def token_overlap_ratio(a: str, b: str) -> float:
    """Shared distinct words over all distinct words, 0..1.

    Unlike the token-set ratio, every word present on only one side lowers
    the score, so "capital of France" and "capital of Germany" stay apart.
    """
    tokens_a = set(_tokens(a))
    tokens_b = set(_tokens(b))
    union = tokens_a | tokens_b
    if not union:
        return 1.0
    return len(tokens_a & tokens_b) / len(union)


SCORERS: dict[str, Scorer] = {
    "token_overlap": token_overlap_ratio,
    "token_set": token_set_ratio,
    "sequence": sequence_ratio,
}


class DuplicateFilter:
    """Keep candidates whose best similarity to everything seen so far stays below threshold.

    The filter remembers accepted texts, so later calls within the same job
    are checked against earlier acceptances as well as the stored corpus.
    """

    def __init__(
        self,
        existing_texts: Iterable[str] = (),
        threshold: float = 0.85,
        scorer: Scorer = token_overlap_ratio,
    ):
        self._seen: list[str] = [t for t in existing_texts if t]
        self._threshold = threshold
        self._scorer = scorer

    @classmethod
    def for_subject(
        cls,
        corpus: QuestionCorpus,
        subject_id: str,
        threshold: float = 0.85,
        scorer: Scorer = token_overlap_ratio,
    ) -> "DuplicateFilter":
        texts = corpus.texts_for_subject(subject_id)
        logger.info("Loaded %d existing question(s) for subject %s", len(texts), subject_id)
        return cls(texts, threshold=threshold, scorer=scorer)

    @property
    def corpus_size(self) -> int:
        return len(self._seen)

    def best_match(self, text: str) -> float:
        return max((self._scorer(text, seen) for seen in self._seen), default=0.0)

    def is_duplicate(self, text: str) -> bool:
        return self.best_match(text) >= self._threshold

    def filter(self, candidates: Iterable[QuestionCandidate]) -> list[QuestionCandidate]:
        """Return the unseen candidates and remember them."""
        kept: list[QuestionCandidate] = []
        dropped = 0
        for candidate in candidates:
            if self.is_duplicate(candidate.question_text):
                dropped += 1
                continue
            kept.append(candidate)
            self._seen.append(candidate.question_text)
        if dropped:
            logger.info("Duplicate filter dropped %d candidate(s)", dropped)
        return kept

    def forget(self, candidates: Iterable[QuestionCandidate]) -> None:
        """Undo remembering candidates that were accepted but not persisted."""
        for candidate in candidates:
            if candidate.question_text in self._seen:
                self._seen.remove(candidate.question_text)


def filter_duplicates(
    candidates: Iterable[QuestionCandidate],
    corpus: QuestionCorpus,
    subject_id: str,
    threshold: float = 0.85,
) -> list[QuestionCandidate]:
    """One-shot form: candidates not already represented in the subject's corpus."""
    return DuplicateFilter.for_subject(corpus, subject_id, threshold=threshold).filter(candidates)
