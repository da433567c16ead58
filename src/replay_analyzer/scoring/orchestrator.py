"""
Detector orchestration.

Detectors are independent, so they run concurrently (bounded by a
semaphore, each on a worker thread). A detector that raises contributes no
profiles and leaves a failure note; the merge into the priority queue is
serial and happens once every detector has settled.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from replay_analyzer.config import get_settings
from replay_analyzer.metrics import DETECTOR_FAILURES

from .detectors.base import SignalDetector
from .priority import PriorityScoringEngine
from .signals import PriorityQueueEntry, UserSignalProfile

logger = logging.getLogger(__name__)

DetectorJob = Tuple[SignalDetector, Any]


@dataclass
class DetectorFailure:
    detector: str
    error: str

    def to_dict(self):
        return {"detector": self.detector, "error": self.error}


@dataclass
class ScoringRunResult:
    entries: List[PriorityQueueEntry] = field(default_factory=list)
    failures: List[DetectorFailure] = field(default_factory=list)
    profiles_considered: int = 0

    def to_dict(self):
        return {
            "entries": [e.to_dict() for e in self.entries],
            "failures": [f.to_dict() for f in self.failures],
            "profilesConsidered": self.profiles_considered,
        }


async def run_detectors(
    jobs: Sequence[DetectorJob],
    concurrency: Optional[int] = None,
) -> Tuple[List[List[UserSignalProfile]], List[DetectorFailure]]:
    """Run every (detector, source) job; results keep job order."""
    limit = max(1, concurrency or get_settings().detector_concurrency)
    sem = asyncio.Semaphore(limit)

    async def _run(detector: SignalDetector, source: Any) -> List[UserSignalProfile]:
        async with sem:
            return await asyncio.to_thread(detector.instrumented_detect, source)

    outcomes = await asyncio.gather(*[_run(d, s) for d, s in jobs], return_exceptions=True)
    results: List[List[UserSignalProfile]] = []
    failures: List[DetectorFailure] = []
    for (detector, _), outcome in zip(jobs, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning(f"detector {detector.name} failed: {outcome}")
            DETECTOR_FAILURES.labels(detector.name).inc()
            failures.append(DetectorFailure(detector=detector.name, error=str(outcome) or type(outcome).__name__))
            continue
        results.append(list(outcome or []))
    return results, failures


async def score_users(
    jobs: Sequence[DetectorJob],
    engine: Optional[PriorityScoringEngine] = None,
    extra_sources: Iterable[Iterable[Any]] = (),
    limit: Optional[int] = None,
    min_score: Optional[float] = None,
    concurrency: Optional[int] = None,
) -> ScoringRunResult:
    engine = engine or PriorityScoringEngine.from_settings()
    results, failures = await run_detectors(jobs, concurrency)
    sources = results + [list(s) for s in extra_sources]
    considered = len({p.distinct_id if isinstance(p, UserSignalProfile) else str(p.get("distinctId"))
                      for source in sources for p in source})
    entries = engine.build_queue(*sources, limit=limit, min_score=min_score)
    logger.info(
        f"scored {considered} user(s) from {len(jobs)} detector(s): "
        f"{len(entries)} queued, {len(failures)} failure(s)"
    )
    return ScoringRunResult(entries=entries, failures=failures, profiles_considered=considered)


def build_priority_queue(
    jobs: Sequence[DetectorJob],
    engine: Optional[PriorityScoringEngine] = None,
    extra_sources: Iterable[Iterable[Any]] = (),
    limit: Optional[int] = None,
    min_score: Optional[float] = None,
    concurrency: Optional[int] = None,
) -> ScoringRunResult:
    """Synchronous entry point for callers outside an event loop."""
    return asyncio.run(score_users(jobs, engine, extra_sources, limit, min_score, concurrency))
