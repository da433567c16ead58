from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from replay_analyzer.metrics import DETECTOR_LATENCY, DETECTOR_RUNS
from replay_analyzer.scoring.signals import BehavioralSignal, UserSignalProfile

logger = logging.getLogger(__name__)

# analytics bookkeeping events that say nothing about product usage
NOISE_EVENTS = frozenset({"$pageview", "$pageleave", "$autocapture", "$feature_interaction"})

REQUIRED_COLUMNS = ("distinct_id", "event", "timestamp")


class SignalDetector(ABC):
    """A stateless producer of per-user signals from one data source."""

    name: str = "detector"

    @abstractmethod
    def detect(self, source: Any) -> List[UserSignalProfile]:
        ...

    def instrumented_detect(self, source: Any) -> List[UserSignalProfile]:
        """Wrap detect with run count and latency metrics."""
        DETECTOR_RUNS.labels(self.name).inc()
        start = time.time()
        try:
            return self.detect(source)
        finally:
            DETECTOR_LATENCY.labels(self.name).observe(time.time() - start)


def prepare_events(source: Any) -> pd.DataFrame:
    """Normalize an events source (DataFrame or iterable of dicts) into a frame.

    Guarantees columns distinct_id, event, timestamp (UTC), properties,
    session_id, email and name, sorted by user then time.
    """
    df = source.copy() if isinstance(source, pd.DataFrame) else pd.DataFrame(list(source or []))
    if df.empty:
        df = pd.DataFrame(columns=list(REQUIRED_COLUMNS))
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"events source missing columns: {', '.join(missing)}")
    df["distinct_id"] = df["distinct_id"].astype(str)
    df["event"] = df["event"].astype(str)
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    if "properties" not in df.columns:
        df["properties"] = [{} for _ in range(len(df))]
    else:
        df["properties"] = df["properties"].apply(lambda v: v if isinstance(v, dict) else {})
    for col in ("session_id", "email", "name"):
        if col not in df.columns:
            df[col] = None
    return df.sort_values(["distinct_id", "timestamp"], kind="mergesort").reset_index(drop=True)


def resolve_as_of(as_of: Optional[datetime]) -> pd.Timestamp:
    if as_of is None:
        return pd.Timestamp(datetime.now(timezone.utc))
    ts = pd.Timestamp(as_of)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def between(df: pd.DataFrame, as_of: pd.Timestamp, newer_than_days: float, older_than_days: float = 0) -> pd.DataFrame:
    """Rows with as_of - newer_than_days < timestamp <= as_of - older_than_days."""
    lo = as_of - pd.Timedelta(days=newer_than_days)
    hi = as_of - pd.Timedelta(days=older_than_days)
    return df[(df["timestamp"] > lo) & (df["timestamp"] <= hi)]


def without_noise(df: pd.DataFrame) -> pd.DataFrame:
    return df[~df["event"].isin(NOISE_EVENTS)]


def days_since(as_of: pd.Timestamp, ts) -> int:
    return max(0, int((as_of - pd.Timestamp(ts)).total_seconds() // 86400))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _identity(df: pd.DataFrame) -> Dict[str, Dict[str, Optional[str]]]:
    ident: Dict[str, Dict[str, Optional[str]]] = {}
    if df.empty:
        return ident
    for col in ("email", "name"):
        vals = df.dropna(subset=[col]).groupby("distinct_id")[col].first()
        for uid, val in vals.items():
            if val:
                ident.setdefault(uid, {})[col] = str(val)
    return ident


def build_profiles(signals: Iterable[tuple[str, BehavioralSignal]], frame: Optional[pd.DataFrame] = None) -> List[UserSignalProfile]:
    """Group (distinct_id, signal) pairs into profiles, in first-seen order."""
    grouped: "OrderedDict[str, List[BehavioralSignal]]" = OrderedDict()
    for uid, signal in signals:
        grouped.setdefault(uid, []).append(signal)
    ident = _identity(frame) if frame is not None else {}
    profiles = []
    for uid, sigs in grouped.items():
        info = ident.get(uid, {})
        profiles.append(UserSignalProfile(distinct_id=uid, signals=sigs, email=info.get("email"), name=info.get("name")))
    return profiles


class EventFrameDetector(SignalDetector):
    """Base for detectors that read a product analytics events table."""

    def __init__(self, as_of: Optional[datetime] = None):
        self.as_of = as_of

    def detect(self, source: Any) -> List[UserSignalProfile]:
        frame = prepare_events(source)
        as_of = resolve_as_of(self.as_of)
        pairs = list(self.find_signals(frame, as_of))
        logger.debug(f"{self.name}: {len(pairs)} signal(s)")
        return build_profiles(pairs, frame)

    @abstractmethod
    def find_signals(self, frame: pd.DataFrame, as_of: pd.Timestamp) -> Iterable[tuple[str, BehavioralSignal]]:
        ...
