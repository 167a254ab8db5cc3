"""Question generation: sanitizer/parser, batch units, duplicate filter, wave scheduling."""

from examgen.generation.batch import BatchGenerator, ContentSource, UnitResult
from examgen.generation.dedup import (
    DuplicateFilter,
    filter_duplicates,
    sequence_ratio,
    token_overlap_ratio,
    token_set_ratio,
)
from examgen.generation.parser import parse_question_candidates
from examgen.generation.retry import RetryPolicy
from examgen.generation.sanitizer import SanitizerError, sanitize_json_array
from examgen.generation.waves import ScheduleResult, WaveScheduler, plan_units, plan_waves

__all__ = [
    "BatchGenerator",
    "ContentSource",
    "DuplicateFilter",
    "RetryPolicy",
    "SanitizerError",
    "ScheduleResult",
    "UnitResult",
    "WaveScheduler",
    "filter_duplicates",
    "parse_question_candidates",
    "plan_units",
    "plan_waves",
    "sanitize_json_array",
    "sequence_ratio",
    "token_overlap_ratio",
    "token_set_ratio",
]
