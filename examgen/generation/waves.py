"""Split a request into fixed-size units and run them in capped-concurrency waves."""

from __future__ import annotations

import logging
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable

from examgen.generation.batch import BatchGenerator, ContentSource, UnitResult
from examgen.generation.dedup import DuplicateFilter
from examgen.schemas.models import QuestionCandidate

logger = logging.getLogger(__name__)

# Persist accepted candidates; returns how many were actually stored.
AcceptCallback = Callable[[list[QuestionCandidate]], int]

TOPIC_GUIDANCE_LIMIT = 15


def plan_units(requested: int, unit_size: int) -> list[int]:
    """Unit sizes covering requested: 120 at 50 -> [50, 50, 20]."""
    if requested <= 0:
        return []
    full, rest = divmod(requested, unit_size)
    return [unit_size] * full + ([rest] if rest else [])


def plan_waves(unit_sizes: list[int], wave_size: int) -> list[list[int]]:
    return [unit_sizes[i : i + wave_size] for i in range(0, len(unit_sizes), wave_size)]


@dataclass
class ScheduleResult:
    accepted: int = 0
    attempted_units: int = 0
    failed_units: int = 0
    waves_run: int = 0
    cancelled: bool = False
    units: list[UnitResult] = field(default_factory=list)


class WaveScheduler:
    """Drive a BatchGenerator across sequential waves of concurrent units.

    Units inside a wave run on a thread pool and are awaited together; one
    unit's failure never cancels its siblings. Each unit's output passes the
    duplicate filter (which already holds earlier acceptances) and is handed
    to ``on_accept`` on the calling thread, in completion order.
    """

    def __init__(
        self,
        generator: BatchGenerator,
        unit_size: int = 50,
        wave_size: int = 10,
        inter_wave_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._generator = generator
        self._unit_size = max(1, min(unit_size, generator.max_batch_size))
        self._wave_size = max(1, wave_size)
        self._inter_wave_delay = inter_wave_delay
        self._sleep = sleep

    def run(
        self,
        source: ContentSource,
        requested: int,
        dup_filter: DuplicateFilter,
        on_accept: AcceptCallback,
        should_continue: Callable[[], bool] = lambda: True,
        covered_topics: Counter | None = None,
    ) -> ScheduleResult:
        result = ScheduleResult()
        waves = plan_waves(plan_units(requested, self._unit_size), self._wave_size)
        if not waves:
            return result
        covered = covered_topics if covered_topics is not None else Counter()
        logger.info(
            "Scheduling %d question(s) as %d unit(s) in %d wave(s)",
            requested, sum(len(w) for w in waves), len(waves),
        )

        with ThreadPoolExecutor(max_workers=min(self._wave_size, len(waves[0]))) as pool:
            for index, wave in enumerate(waves, start=1):
                if index > 1 and self._inter_wave_delay > 0:
                    self._sleep(self._inter_wave_delay)
                if not should_continue():
                    logger.info("Stopping before wave %d/%d: job no longer runnable", index, len(waves))
                    result.cancelled = True
                    break

                guidance = covered.most_common(TOPIC_GUIDANCE_LIMIT)
                futures = [pool.submit(self._generator.generate, source, size, guidance) for size in wave]
                for future in as_completed(futures):
                    result.attempted_units += 1
                    try:
                        unit = future.result()
                    except Exception:
                        logger.exception("Generation unit crashed")
                        result.failed_units += 1
                        continue
                    result.units.append(unit)
                    if not unit.succeeded:
                        result.failed_units += 1
                    self._accept(unit.candidates, requested, dup_filter, on_accept, covered, result)

                result.waves_run = index
                logger.info(
                    "Wave %d/%d done: %d/%d accepted so far", index, len(waves), result.accepted, requested
                )
        return result

    def _accept(
        self,
        candidates: list[QuestionCandidate],
        requested: int,
        dup_filter: DuplicateFilter,
        on_accept: AcceptCallback,
        covered: Counter,
        result: ScheduleResult,
    ) -> None:
        remaining = requested - result.accepted
        if remaining <= 0 or not candidates:
            return
        fresh = dup_filter.filter(candidates)
        if len(fresh) > remaining:
            dup_filter.forget(fresh[remaining:])
            fresh = fresh[:remaining]
        if not fresh:
            return
        stored = on_accept(fresh)
        result.accepted += stored
        for candidate in fresh:
            covered.update(t.lower() for t in candidate.topics)
