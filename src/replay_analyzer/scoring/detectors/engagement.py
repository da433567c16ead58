"""
Feature-level and lifecycle detectors: who stopped using what, and who is
drifting away.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional, Sequence

import pandas as pd

from replay_analyzer.scoring.signals import BehavioralSignal, SignalType

from .base import EventFrameDetector, between, days_since, round_half_up, without_noise


class FeatureAbandonedDetector(EventFrameDetector):
    """Tried a feature exactly once, a while ago, and never came back to it."""

    name = "feature_abandoned"

    def __init__(self, feature_events: Sequence[str], min_days_since_use: int = 7, lookback_days: int = 60,
                 as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.feature_events = list(feature_events)
        self.min_days_since_use = min_days_since_use
        self.lookback_days = lookback_days

    def find_signals(self, frame, as_of):
        df = between(frame, as_of, self.lookback_days)
        df = df[df["event"].isin(self.feature_events)]
        if df.empty:
            return
        usage = df.groupby(["distinct_id", "event"]).agg(uses=("timestamp", "size"), last_use=("timestamp", "max")).reset_index()
        usage = usage[usage["uses"] == 1]
        for row in usage.itertuples(index=False):
            days = days_since(as_of, row.last_use)
            if days < self.min_days_since_use:
                continue
            yield row.distinct_id, BehavioralSignal(
                type=SignalType.FEATURE_ABANDONED,
                description=f'Used "{row.event}" once {days} days ago, never returned',
                weight=min(40, 20 + (days // 7) * 5),
                metadata={"feature": row.event, "usageCount": 1, "daysSinceUse": days, "daysAgo": days},
            )


class FeatureRegressionDetector(EventFrameDetector):
    """Used a feature regularly, then stopped entirely in the recent window."""

    name = "feature_regression"

    def __init__(self, feature_events: Sequence[str], min_previous_usage: int = 3, recent_days: int = 14,
                 previous_days: int = 30, as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.feature_events = list(feature_events)
        self.min_previous_usage = min_previous_usage
        self.recent_days = recent_days
        self.previous_days = previous_days

    def find_signals(self, frame, as_of):
        for feature in self.feature_events:
            used = frame[frame["event"] == feature]
            previous = between(used, as_of, self.previous_days + self.recent_days, self.recent_days)
            recent_users = set(between(used, as_of, self.recent_days)["distinct_id"])
            counts = previous.groupby("distinct_id")["timestamp"].agg(["size", "max"])
            counts = counts[counts["size"] >= self.min_previous_usage].sort_values("size", ascending=False, kind="mergesort")
            for uid, row in counts.iterrows():
                if uid in recent_users:
                    continue
                prev = int(row["size"])
                yield uid, BehavioralSignal(
                    type=SignalType.FEATURE_REGRESSION,
                    description=f'Stopped using "{feature}" (was {prev}x in past month, now 0)',
                    weight=min(50, 25 + prev * 3),
                    metadata={
                        "feature": feature,
                        "previousUsage": prev,
                        "recentUsage": 0,
                        "recentDays": self.recent_days,
                        "previousDays": self.previous_days,
                        "daysAgo": days_since(as_of, row["max"]),
                    },
                )


class EngagementDecayDetector(EventFrameDetector):
    """Last week's activity well below the user's own monthly weekly average."""

    name = "engagement_decay"
    WEEKS_PER_MONTH = 4.3

    def __init__(self, max_decay_ratio: float = 0.5, min_previous_events: int = 10, as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.max_decay_ratio = max_decay_ratio
        self.min_previous_events = min_previous_events

    def find_signals(self, frame, as_of):
        month = without_noise(between(frame, as_of, 30))
        week_start = as_of - pd.Timedelta(days=7)
        for uid, group in month.groupby("distinct_id", sort=True):
            events_30d = len(group)
            if events_30d < self.min_previous_events:
                continue
            week = group[group["timestamp"] > week_start]
            events_7d = len(week)
            expected_7d = events_30d / self.WEEKS_PER_MONTH
            if not (events_7d < expected_7d * self.max_decay_ratio and events_7d < events_30d * 0.5):
                continue
            ratio = events_7d / expected_7d if expected_7d > 0 else 1.0
            dropped = sorted(set(group["event"]) - set(week["event"]))
            yield uid, BehavioralSignal(
                type=SignalType.ENGAGEMENT_DECAY,
                description=f"Activity dropped {round_half_up((1 - ratio) * 100)}%: {events_7d} events in 7d vs {events_30d} in 30d",
                weight=min(50, 25 + round_half_up((1 - ratio) * 30)),
                metadata={
                    "events7d": events_7d,
                    "events30d": events_30d,
                    "decayRatio": round(ratio, 2),
                    "droppedEvents": dropped[:5],
                    "daysAgo": days_since(as_of, group["timestamp"].max()),
                },
            )


class PowerUserChurningDetector(EventFrameDetector):
    """Heavy historical usage followed by near silence."""

    name = "power_user_churning"

    def __init__(self, weekly_power_threshold: int = 15, silent_days: int = 14, history_days: int = 45,
                 max_recent_events: int = 2, as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.weekly_power_threshold = weekly_power_threshold
        self.silent_days = silent_days
        self.history_days = history_days
        self.max_recent_events = max_recent_events

    def find_signals(self, frame, as_of):
        historical = without_noise(between(frame, as_of, self.history_days, self.silent_days))
        hist_counts = historical.groupby("distinct_id").size()
        # roughly three weeks of power use
        hist_counts = hist_counts[hist_counts >= self.weekly_power_threshold * 3].sort_values(ascending=False, kind="mergesort")
        recent_counts = between(frame, as_of, self.silent_days).groupby("distinct_id").size()
        last_seen = frame.groupby("distinct_id")["timestamp"].max()
        for uid, hist in hist_counts.items():
            recent = int(recent_counts.get(uid, 0))
            if recent > self.max_recent_events:
                continue
            hist = int(hist)
            days = days_since(as_of, last_seen[uid])
            yield uid, BehavioralSignal(
                type=SignalType.POWER_USER_CHURNING,
                description=f"Power user going silent: {hist} events before, {recent} in last {self.silent_days} days",
                weight=min(60, 35 + hist // 10),
                metadata={
                    "historicalEvents": hist,
                    "recentEvents": recent,
                    "daysSilent": days,
                    "currentEngagement": "churning" if recent > 0 else "churned",
                    "daysAgo": days,
                },
            )


class ActivatedAbandonedDetector(EventFrameDetector):
    """Completed every activation step within a short burst, then left."""

    name = "activated_abandoned"

    def __init__(self, activation_events: Sequence[str], min_days_inactive: int = 7, max_active_days: int = 7,
                 lookback_days: int = 60, as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.activation_events = list(activation_events)
        self.min_days_inactive = min_days_inactive
        self.max_active_days = max_active_days
        self.lookback_days = lookback_days

    def find_signals(self, frame, as_of):
        if not self.activation_events:
            return
        required = set(self.activation_events)
        df = without_noise(between(frame, as_of, self.lookback_days))
        for uid, group in df.groupby("distinct_id", sort=True):
            if not required.issubset(set(group["event"])):
                continue
            first, last = group["timestamp"].min(), group["timestamp"].max()
            inactive = days_since(as_of, last)
            active = int((last - first).total_seconds() // 86400)
            if inactive < self.min_days_inactive or active > self.max_active_days:
                continue
            yield uid, BehavioralSignal(
                type=SignalType.ACTIVATED_ABANDONED,
                description=f"Completed activation but inactive for {inactive} days (was active for {active} days)",
                weight=min(55, 30 + (inactive // 7) * 5),
                metadata={
                    "totalEvents": len(group),
                    "daysInactive": inactive,
                    "activePeriodDays": active,
                    "activationEvents": list(self.activation_events),
                    "daysAgo": inactive,
                },
            )


class ChurnRiskDetector(EventFrameDetector):
    """Active earlier in the month but nothing in the last week."""

    name = "churn_risk"

    def __init__(self, quiet_days: int = 7, lookback_days: int = 30, as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.quiet_days = quiet_days
        self.lookback_days = lookback_days

    def find_signals(self, frame, as_of):
        earlier = between(frame, as_of, self.lookback_days, self.quiet_days)
        recent_users = set(between(frame, as_of, self.quiet_days)["distinct_id"])
        last_active = earlier.groupby("distinct_id")["timestamp"].max().sort_values(kind="mergesort")
        for uid, ts in last_active.items():
            if uid in recent_users:
                continue
            days = days_since(as_of, ts)
            yield uid, BehavioralSignal(
                type=SignalType.CHURN_RISK,
                description=f"No activity in {days} days (was previously active)",
                weight=min(45, 25 + math.floor(days / 7) * 5),
                metadata={"daysSinceActive": days, "daysAgo": days},
            )
