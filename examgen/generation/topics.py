"""Lightweight keyword extraction for topic tags and topic-set similarity."""

from __future__ import annotations

import re
from collections import Counter
from typing import Iterable

_WORD_RE = re.compile(r"[a-zA-Z][a-zA-Z\-']{2,}")

STOPWORDS = frozenset(
    """
    about above after again against all also among and any are because been before being
    below between both but can cannot could did does doing down during each either few for
    from further given had has have having her here hers him his how into its itself just
    least less let many may might more most much must near neither nor not now off once
    only other ought our ours out over own per same shall she should since some such than
    that the their theirs them then there these they this those through thus too under
    until upon very was were what when where whether which while who whom whose why will
    with within without would yet you your following correct true false statement option
    options answer choose select value find given best describes question
    """.split()
)


def extract_topic_tags(text: str, limit: int = 3) -> list[str]:
    """Most frequent non-stopword terms in text, in order of first appearance on ties."""
    words = [w.lower().strip("-'") for w in _WORD_RE.findall(text or "")]
    words = [w for w in words if len(w) > 2 and w not in STOPWORDS]
    if not words:
        return []
    counts = Counter(words)
    first_seen = {w: i for i, w in reversed(list(enumerate(words)))}
    ranked = sorted(counts, key=lambda w: (-counts[w], first_seen[w]))
    return ranked[:limit]


def normalize_topics(topics: Iterable[str]) -> set[str]:
    return {t.lower().strip() for t in topics if t and t.strip()}


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """|A ∩ B| / |A ∪ B| over case-folded, trimmed topic strings; 0.0 when both are empty."""
    set_a = normalize_topics(a)
    set_b = normalize_topics(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)
