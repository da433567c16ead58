"""
Priority scoring engine.

Folds signal lists from independent detectors into one profile per user,
scores each profile and ranks them. The weight table and recency policy
are injected so deployments and tests can tune them.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

from replay_analyzer.metrics import QUEUE_SIZE

from .signals import (
    DEFAULT_SIGNAL_WEIGHTS,
    BehavioralSignal,
    PriorityQueueEntry,
    RecencyPolicy,
    UserSignalProfile,
)

logger = logging.getLogger(__name__)

MAX_SCORE = 100
SUMMARY_SIGNALS = 3
MULTI_TYPE_BONUS = {2: 1.15, 3: 1.3}  # distinct types -> multiplier; 3 means "3 or more"


class PriorityScoringEngine:
    def __init__(
        self,
        weights: Optional[Mapping[str, float]] = None,
        recency: Optional[RecencyPolicy] = None,
        default_weight: float = 10,
    ):
        self.weights: Dict[str, float] = dict(DEFAULT_SIGNAL_WEIGHTS if weights is None else weights)
        self.recency = recency or RecencyPolicy()
        self.default_weight = default_weight

    @classmethod
    def from_settings(cls, settings=None) -> "PriorityScoringEngine":
        from replay_analyzer.config import build_recency_policy, build_weight_table, get_settings

        s = settings or get_settings()
        return cls(weights=build_weight_table(s), recency=build_recency_policy(s), default_weight=s.default_signal_weight)

    # -- scoring -----------------------------------------------------------

    def effective_weight(self, signal: BehavioralSignal) -> float:
        if signal.weight:
            return float(signal.weight)
        return float(self.weights.get(signal.type, self.default_weight))

    def weighted_value(self, signal: BehavioralSignal) -> float:
        return self.effective_weight(signal) * self.recency.multiplier(signal.days_ago)

    def score(self, signals: Iterable[BehavioralSignal]) -> int:
        signals = list(signals)
        if not signals:
            return 0
        # exact sum; total is independent of signal order
        total = math.fsum(self.weighted_value(s) for s in signals)
        distinct = len({s.type for s in signals})
        if distinct >= 3:
            total *= MULTI_TYPE_BONUS[3]
        elif distinct == 2:
            total *= MULTI_TYPE_BONUS[2]
        return max(0, min(MAX_SCORE, int(math.floor(total + 0.5))))

    @staticmethod
    def summarize(signals: List[BehavioralSignal]) -> str:
        if not signals:
            return "No signals detected"
        if len(signals) == 1:
            return signals[0].description
        head = "; ".join(s.description for s in signals[:SUMMARY_SIGNALS])
        remaining = len(signals) - SUMMARY_SIGNALS
        return f"{head} (+{remaining} more)" if remaining > 0 else head

    def _ordered(self, signals: Iterable[BehavioralSignal]) -> List[BehavioralSignal]:
        return sorted(signals, key=lambda s: (-self.weighted_value(s), s.type, s.description))

    def rescore(self, profile: UserSignalProfile) -> UserSignalProfile:
        profile.signals = self._ordered(profile.signals)
        profile.priority_score = self.score(profile.signals)
        profile.signal_summary = self.summarize(profile.signals)
        return profile

    # -- merging -----------------------------------------------------------

    def merge(self, *sources: Iterable[Any]) -> List[UserSignalProfile]:
        """Merge profile lists into one profile per distinct id.

        Inputs are never mutated. Signals are de-duplicated by (type,
        description); when duplicates disagree the heavier one is kept.
        email/name/properties take the first non-empty value seen.
        """
        merged: Dict[str, UserSignalProfile] = {}
        signal_sets: Dict[str, Dict[tuple, BehavioralSignal]] = {}
        for source in sources:
            for raw in source or []:
                profile = raw if isinstance(raw, UserSignalProfile) else UserSignalProfile.from_dict(raw)
                uid = profile.distinct_id
                existing = merged.get(uid)
                if existing is None:
                    existing = UserSignalProfile(
                        distinct_id=uid,
                        email=profile.email or None,
                        name=profile.name or None,
                        properties=dict(profile.properties),
                    )
                    merged[uid] = existing
                    signal_sets[uid] = {}
                else:
                    existing.email = existing.email or profile.email or None
                    existing.name = existing.name or profile.name or None
                    existing.properties = {**profile.properties, **existing.properties}
                bucket = signal_sets[uid]
                for signal in profile.signals:
                    kept = bucket.get(signal.key)
                    if kept is None or self.weighted_value(signal) > self.weighted_value(kept):
                        bucket[signal.key] = signal
        for uid, profile in merged.items():
            profile.signals = list(signal_sets[uid].values())
            self.rescore(profile)
        return list(merged.values())

    def build_queue(
        self,
        *sources: Iterable[Any],
        limit: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> List[PriorityQueueEntry]:
        profiles = self.merge(*sources)
        ranked = sorted(profiles, key=lambda p: (-p.priority_score, p.distinct_id))
        if min_score is not None:
            ranked = [p for p in ranked if p.priority_score >= min_score]
        if limit is not None:
            ranked = ranked[:max(0, limit)]
        QUEUE_SIZE.set(len(ranked))
        logger.debug(f"priority queue built: {len(ranked)} of {len(profiles)} users")
        return ranked


def score_signals(signals: Iterable[BehavioralSignal], engine: Optional[PriorityScoringEngine] = None) -> int:
    return (engine or PriorityScoringEngine()).score(signals)
