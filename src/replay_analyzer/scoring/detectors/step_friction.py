"""
Step-level friction: where in a flow users struggle.
"""

from __future__ import annotations

import math
from collections import Counter
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from replay_analyzer.scoring.signals import BehavioralSignal, SignalType

from .base import EventFrameDetector, between, days_since, round_half_up, without_noise


class StepRetryDetector(EventFrameDetector):
    """Same event repeated several times inside one short time bucket."""

    name = "step_retry"

    def __init__(self, events: Optional[Sequence[str]] = None, window_minutes: int = 5, min_retries: int = 3,
                 lookback_days: int = 7, as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.events = list(events) if events else None
        self.window_minutes = window_minutes
        self.min_retries = min_retries
        self.lookback_days = lookback_days

    def find_signals(self, frame, as_of):
        df = without_noise(between(frame, as_of, self.lookback_days))
        if self.events:
            df = df[df["event"].isin(self.events)]
        if df.empty:
            return
        df = df.assign(bucket=df["timestamp"].dt.floor(f"{self.window_minutes}min"))
        grouped = (
            df.groupby(["distinct_id", "event", "bucket"])
            .agg(retry_count=("timestamp", "size"), first_ts=("timestamp", "min"), last_ts=("timestamp", "max"))
            .reset_index()
        )
        grouped = grouped[grouped["retry_count"] >= self.min_retries]
        grouped = grouped.sort_values(["retry_count", "distinct_id"], ascending=[False, True], kind="mergesort")
        for row in grouped.itertuples(index=False):
            span = (row.last_ts - row.first_ts).total_seconds()
            n = int(row.retry_count)
            yield row.distinct_id, BehavioralSignal(
                type=SignalType.STEP_RETRY,
                description=f'Retried "{row.event}" {n} times in {round_half_up(span / 60)} minutes',
                weight=min(50, 20 + n * 5),
                metadata={
                    "event": row.event,
                    "retryCount": n,
                    "timeSpan": span,
                    "avgTimeBetween": span / (n - 1) if n > 1 else 0.0,
                    "daysAgo": days_since(as_of, row.last_ts),
                },
            )


def find_loops(sequence: Sequence[str]) -> List[dict]:
    """Count A->B->A patterns per unordered pair, most frequent first."""
    counts: Counter = Counter()
    first: dict = {}
    for a, b, c in zip(sequence, sequence[1:], sequence[2:]):
        if a == c and a != b:
            key = tuple(sorted((a, b)))
            counts[key] += 1
            first.setdefault(key, (a, b))
    loops = [
        {"stepA": first[k][0], "stepB": first[k][1], "count": n, "transitions": n * 2}
        for k, n in counts.items()
    ]
    return sorted(loops, key=lambda loop: -loop["count"])


class StepLoopDetector(EventFrameDetector):
    """Users bouncing back and forth between two steps."""

    name = "step_loop"

    def __init__(self, events: Optional[Sequence[str]] = None, min_loops: int = 2, lookback_days: int = 7,
                 as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.events = list(events) if events else None
        self.min_loops = min_loops
        self.lookback_days = lookback_days

    def find_signals(self, frame, as_of):
        df = without_noise(between(frame, as_of, self.lookback_days))
        if self.events:
            df = df[df["event"].isin(self.events)]
        for uid, group in df.groupby("distinct_id", sort=True):
            if len(group) < 4:
                continue
            loops = find_loops(group["event"].tolist())
            if not loops or loops[0]["count"] < self.min_loops:
                continue
            top = loops[0]
            yield uid, BehavioralSignal(
                type=SignalType.STEP_LOOP,
                description=f'Looped between "{top["stepA"]}" and "{top["stepB"]}" {top["count"]} times',
                weight=min(55, 25 + top["count"] * 10),
                metadata={
                    "stepA": top["stepA"],
                    "stepB": top["stepB"],
                    "loopCount": top["count"],
                    "totalTransitions": top["transitions"],
                    "daysAgo": days_since(as_of, group["timestamp"].max()),
                },
            )


class TimeVarianceDetector(EventFrameDetector):
    """Users far slower than the median between consecutive funnel steps."""

    name = "high_time_variance"

    def __init__(self, funnel_events: Sequence[str], outlier_multiplier: float = 3.0, min_samples: int = 5,
                 min_seconds: float = 60, lookback_days: int = 30, as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.funnel_events = list(funnel_events)
        self.outlier_multiplier = outlier_multiplier
        self.min_samples = min_samples
        self.min_seconds = min_seconds
        self.lookback_days = lookback_days

    def find_signals(self, frame, as_of):
        if len(self.funnel_events) < 2:
            return
        recent = between(frame, as_of, self.lookback_days)
        for from_event, to_event in zip(self.funnel_events, self.funnel_events[1:]):
            pair = recent[recent["event"].isin([from_event, to_event])]
            if pair.empty:
                continue
            stats = pair.groupby("distinct_id").agg(
                start=("timestamp", "min"),
                end=("timestamp", "max"),
                kinds=("event", "nunique"),
            )
            stats = stats[stats["kinds"] == 2]
            spent = (stats["end"] - stats["start"]).dt.total_seconds()
            spent = spent[spent > 0]
            if len(spent) < self.min_samples:
                continue
            ordered = sorted(spent.tolist())
            median = ordered[len(ordered) // 2]
            threshold = median * self.outlier_multiplier
            for uid, seconds in spent.sort_values(ascending=False, kind="mergesort").items():
                if seconds <= threshold or seconds <= self.min_seconds:
                    continue
                ratio = seconds / median
                yield uid, BehavioralSignal(
                    type=SignalType.HIGH_TIME_VARIANCE,
                    description=f'Spent {round_half_up(seconds / 60)} min on "{from_event}" to "{to_event}" ({ratio:.1f}x median)',
                    weight=min(45, 20 + math.floor(ratio) * 5),
                    metadata={
                        "fromStep": from_event,
                        "toStep": to_event,
                        "timeSpent": seconds,
                        "median": median,
                        "multiplier": ratio,
                        "daysAgo": days_since(as_of, stats.loc[uid, "end"]),
                    },
                )


class FunnelDropoffDetector(EventFrameDetector):
    """Users who reached a funnel step but never the next one."""

    name = "funnel_dropoff"

    def __init__(self, steps: Sequence[str], funnel_name: str = "Onboarding", min_dropoff_rate: float = 0.1,
                 lookback_days: int = 30, as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.steps = list(steps)
        self.funnel_name = funnel_name
        self.min_dropoff_rate = min_dropoff_rate
        self.lookback_days = lookback_days

    def _progress(self, events: Iterable[str]) -> int:
        reached = 0
        for ev in events:
            if reached < len(self.steps) and ev == self.steps[reached]:
                reached += 1
        return reached

    def find_signals(self, frame, as_of):
        if len(self.steps) < 2:
            return
        df = between(frame, as_of, self.lookback_days)
        df = df[df["event"].isin(self.steps)]
        progress = {}
        last_seen = {}
        for uid, group in df.groupby("distinct_id", sort=True):
            progress[uid] = self._progress(group["event"].tolist())
            last_seen[uid] = group["timestamp"].max()
        # reached[i] = users who completed at least i+1 steps
        reached = [sum(1 for p in progress.values() if p > i) for i in range(len(self.steps))]
        for uid, done in progress.items():
            if done == 0 or done >= len(self.steps):
                continue
            rate = 1 - reached[done] / reached[done - 1] if reached[done - 1] else 0.0
            if rate <= self.min_dropoff_rate:
                continue
            step_name = self.steps[done]
            yield uid, BehavioralSignal(
                type=SignalType.FUNNEL_DROPOFF,
                description=f'Dropped off at "{step_name}" in "{self.funnel_name}" funnel',
                weight=30,
                metadata={
                    "funnelName": self.funnel_name,
                    "stepIndex": done,
                    "stepName": step_name,
                    "dropoffRate": round(rate, 4),
                    "daysAgo": days_since(as_of, last_seen[uid]),
                },
            )
