"""
High-intent micro signals: users lost in navigation, or stalled right after
doing something.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from replay_analyzer.scoring.signals import BehavioralSignal, SignalType

from .base import EventFrameDetector, between, days_since, round_half_up


def analyze_navigation(urls: List[str]) -> dict:
    """Back navigations = revisiting a page seen before, other than the one just left."""
    page_counts: dict = {}
    stack: List[str] = []
    back = 0
    for url in urls:
        page_counts[url] = page_counts.get(url, 0) + 1
        if url in stack and stack[-1] != url:
            back += 1
        stack.append(url)
    most_visited, visits = None, 0
    for url, count in page_counts.items():
        if count > visits:
            most_visited, visits = url, count
    return {
        "backNavigations": back,
        "uniquePages": len(page_counts),
        "totalPageviews": len(urls),
        "mostRevisitedPage": most_visited if visits > 1 else None,
        "revisitCount": visits,
    }


class ExcessiveNavigationDetector(EventFrameDetector):
    name = "excessive_navigation"

    def __init__(self, min_back_navigations: int = 5, min_pageviews: int = 3, lookback_days: int = 7,
                 as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.min_back_navigations = min_back_navigations
        self.min_pageviews = min_pageviews
        self.lookback_days = lookback_days

    def find_signals(self, frame, as_of):
        views = between(frame, as_of, self.lookback_days)
        views = views[views["event"] == "$pageview"]
        if views.empty:
            return
        views = views.assign(
            url=views["properties"].apply(lambda p: p.get("$current_url") or p.get("url") or ""),
            session=views["session_id"].fillna("").astype(str),
        )
        best: dict = {}
        for (uid, session), group in views.groupby(["distinct_id", "session"], sort=True):
            urls = [u for u in group["url"].tolist() if u]
            if len(urls) < self.min_pageviews:
                continue
            nav = analyze_navigation(urls)
            if nav["backNavigations"] < self.min_back_navigations:
                continue
            weight = min(45, 20 + nav["backNavigations"] * 3)
            if uid in best and best[uid].weight >= weight:
                continue
            best[uid] = BehavioralSignal(
                type=SignalType.EXCESSIVE_NAVIGATION,
                description=(
                    f"{nav['backNavigations']} back navigations, visited "
                    f"{nav['uniquePages']} pages {nav['totalPageviews']} times"
                ),
                weight=weight,
                metadata={**nav, "sessionId": session or None, "daysAgo": days_since(as_of, group["timestamp"].max())},
            )
        yield from best.items()


class IdleAfterActionDetector(EventFrameDetector):
    """Long pause between a target event and whatever the user did next."""

    name = "idle_after_action"

    def __init__(self, target_events: Sequence[str], min_idle_seconds: int = 120, max_idle_seconds: int = 3600,
                 lookback_days: int = 7, as_of: Optional[datetime] = None):
        super().__init__(as_of)
        self.target_events = list(target_events)
        self.min_idle_seconds = min_idle_seconds
        self.max_idle_seconds = max_idle_seconds
        self.lookback_days = lookback_days

    def find_signals(self, frame, as_of):
        if not self.target_events:
            return
        df = between(frame, as_of, self.lookback_days)
        df = df[df["event"] != "$pageleave"]
        df = df.assign(
            next_event=df.groupby("distinct_id")["event"].shift(-1),
            next_ts=df.groupby("distinct_id")["timestamp"].shift(-1),
        )
        df = df[df["event"].isin(self.target_events) & df["next_event"].notna()]
        if df.empty:
            return
        df = df.assign(idle=(df["next_ts"] - df["timestamp"]).dt.total_seconds())
        df = df[(df["idle"] >= self.min_idle_seconds) & (df["idle"] < self.max_idle_seconds)]
        df = df.sort_values(["idle", "distinct_id"], ascending=[False, True], kind="mergesort")
        seen = set()
        for row in df.itertuples(index=False):
            # longest pause per (user, trigger event)
            if (row.distinct_id, row.event) in seen:
                continue
            seen.add((row.distinct_id, row.event))
            minutes = round_half_up(row.idle / 60)
            yield row.distinct_id, BehavioralSignal(
                type=SignalType.IDLE_AFTER_ACTION,
                description=f'{minutes} min idle after "{row.event}" before "{row.next_event}"',
                weight=min(45, 20 + (minutes // 2) * 5),
                metadata={
                    "triggerEvent": row.event,
                    "nextEvent": row.next_event,
                    "idleSeconds": row.idle,
                    "idleMinutes": minutes,
                    "daysAgo": days_since(as_of, row.timestamp),
                },
            )
