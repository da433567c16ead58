from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Optional

import numpy as np

from replay_analyzer.replay.types import SemanticSession
from replay_analyzer.scoring.signals import BehavioralSignal, SignalType, UserSignalProfile

from .base import SignalDetector, build_profiles, days_since, resolve_as_of

logger = logging.getLogger(__name__)

LOW_ENGAGEMENT_SECONDS = 60


@dataclass
class ReplaySessionRecord:
    distinct_id: str
    session: SemanticSession
    session_id: Optional[str] = None
    recorded_at: Optional[datetime] = None


class ReplaySessionDetector(SignalDetector):
    """Per-user signals from parsed replay sessions (counters and synthesized booleans)."""

    name = "replay_sessions"

    def __init__(self, as_of: Optional[datetime] = None):
        self.as_of = as_of

    def detect(self, source: Iterable[ReplaySessionRecord]) -> List[UserSignalProfile]:
        as_of = resolve_as_of(self.as_of)
        by_user: dict = {}
        for record in source or []:
            by_user.setdefault(record.distinct_id, []).append(record)
        pairs = []
        for uid in sorted(by_user):
            pairs.extend((uid, s) for s in self._signals_for(by_user[uid], as_of))
        logger.debug(f"{self.name}: {len(pairs)} signal(s) from {len(by_user)} user(s)")
        return build_profiles(pairs)

    def _signals_for(self, records: List[ReplaySessionRecord], as_of) -> Iterable[BehavioralSignal]:
        count = len(records)
        stamps = [r.recorded_at for r in records if r.recorded_at is not None]
        meta: dict[str, Any] = {"sessionCount": count}
        if stamps:
            meta["daysAgo"] = days_since(as_of, max(resolve_as_of(s) for s in stamps))
        sessions = [r.session for r in records]

        rage = sum(s.summary.rage_clicks for s in sessions)
        errors = sum(s.summary.console_errors + s.summary.network_errors for s in sessions)
        confused = sum(1 for s in sessions if s.behavioral_signals.is_confused)

        if rage:
            yield BehavioralSignal(
                type=SignalType.RAGE_CLICK,
                description=f"{rage} rage click(s) across {count} session(s)",
                weight=25,
                metadata={**meta, "rageClicks": rage},
            )
        if errors:
            yield BehavioralSignal(
                type=SignalType.ERROR_ENCOUNTER,
                description=f"Encountered {errors} errors in sessions",
                weight=min(40, 15 + errors * 5),
                metadata={**meta, "errorCount": errors},
            )
        if confused:
            yield BehavioralSignal(
                type=SignalType.CONFUSED_BROWSER,
                description=f"Confused browsing in {confused} of {count} session(s)",
                metadata={**meta, "confusedSessions": confused},
            )
        elif errors:
            yield BehavioralSignal(
                type=SignalType.TECHNICAL_VICTIM,
                description="Hit errors without signs of confusion",
                metadata={**meta, "errorCount": errors},
            )
        avg_seconds = float(np.mean([s.summary.session_duration_ms for s in sessions])) / 1000
        if avg_seconds < LOW_ENGAGEMENT_SECONDS:
            yield BehavioralSignal(
                type=SignalType.LOW_ENGAGEMENT,
                description=f"Average session duration of {int(avg_seconds + 0.5)}s across {count} session(s)",
                weight=min(35, 20 + int((LOW_ENGAGEMENT_SECONDS - avg_seconds) // 10) * 5),
                metadata={**meta, "avgDuration": avg_seconds},
            )
