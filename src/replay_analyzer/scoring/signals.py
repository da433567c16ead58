"""
Signal and profile types for priority scoring.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class SignalType(str, Enum):
    # core behavioral
    FUNNEL_DROPOFF = "funnel_dropoff"
    RAGE_CLICK = "rage_click"
    ERROR_ENCOUNTER = "error_encounter"
    LOW_ENGAGEMENT = "low_engagement"
    HIGH_SESSION_TIME = "high_session_time"
    REPEAT_VISITOR = "repeat_visitor"
    CHURN_RISK = "churn_risk"
    # cohort classification
    TECHNICAL_VICTIM = "technical_victim"
    CONFUSED_BROWSER = "confused_browser"
    WRONG_FIT = "wrong_fit"
    # profile enrichment
    NEW_USER = "new_user"
    MOBILE_USER = "mobile_user"
    INTERNATIONAL_USER = "international_user"
    ORGANIC_TRAFFIC = "organic_traffic"
    PAID_TRAFFIC = "paid_traffic"
    RETURNING_VISITOR = "returning_visitor"
    POWER_USER = "power_user"
    FEATURE_ADOPTER = "feature_adopter"
    UPGRADE_CANDIDATE = "upgrade_candidate"
    # step-level friction
    STEP_RETRY = "step_retry"
    STEP_LOOP = "step_loop"
    HIGH_TIME_VARIANCE = "high_time_variance"
    # feature-level
    FEATURE_ABANDONED = "feature_abandoned"
    FEATURE_REGRESSION = "feature_regression"
    # behavioral transitions
    ENGAGEMENT_DECAY = "engagement_decay"
    POWER_USER_CHURNING = "power_user_churning"
    ACTIVATED_ABANDONED = "activated_abandoned"
    # micro-signals
    EXCESSIVE_NAVIGATION = "excessive_navigation"
    IDLE_AFTER_ACTION = "idle_after_action"


DEFAULT_SIGNAL_WEIGHTS: Dict[str, int] = {
    "funnel_dropoff": 30,
    "rage_click": 25,
    "error_encounter": 20,
    "low_engagement": 15,
    "high_session_time": 10,
    "repeat_visitor": 5,
    "churn_risk": 35,
    "technical_victim": 15,
    "confused_browser": 40,
    "wrong_fit": 5,
    "new_user": 20,
    "mobile_user": 15,
    "international_user": 12,
    "organic_traffic": 10,
    "paid_traffic": 25,
    "returning_visitor": 18,
    "power_user": 30,
    "feature_adopter": 20,
    "upgrade_candidate": 22,
    "step_retry": 40,
    "step_loop": 45,
    "high_time_variance": 35,
    "feature_abandoned": 38,
    "feature_regression": 42,
    "engagement_decay": 40,
    "power_user_churning": 55,
    "activated_abandoned": 45,
    "excessive_navigation": 35,
    "idle_after_action": 32,
}

DEFAULT_RECENCY_BREAKPOINTS: Tuple[Tuple[float, float], ...] = (
    (1, 1.5),
    (3, 1.3),
    (7, 1.1),
    (14, 1.0),
    (30, 0.8),
)


@dataclass(frozen=True)
class RecencyPolicy:
    """Maps signal age in days to a weight multiplier (first breakpoint with days <= limit wins)."""
    breakpoints: Tuple[Tuple[float, float], ...] = DEFAULT_RECENCY_BREAKPOINTS
    fallback: float = 0.5

    def multiplier(self, days_ago: Optional[float]) -> float:
        if days_ago is None:
            return 1.0
        for limit, mult in self.breakpoints:
            if days_ago <= limit:
                return mult
        return self.fallback


def _type_value(signal_type: Any) -> str:
    return signal_type.value if isinstance(signal_type, SignalType) else str(signal_type)


@dataclass(frozen=True)
class BehavioralSignal:
    type: str
    description: str
    weight: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "type", _type_value(self.type))

    @property
    def key(self) -> Tuple[str, str]:
        return self.type, self.description

    @property
    def days_ago(self) -> Optional[float]:
        value = (self.metadata or {}).get("daysAgo")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type, "description": self.description, "weight": self.weight}
        if self.metadata:
            out["metadata"] = dict(self.metadata)
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BehavioralSignal":
        return cls(
            type=data["type"],
            description=str(data.get("description") or ""),
            weight=data.get("weight"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class UserSignalProfile:
    distinct_id: str
    signals: List[BehavioralSignal] = field(default_factory=list)
    email: Optional[str] = None
    name: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    priority_score: int = 0
    signal_summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "distinctId": self.distinct_id,
            "properties": dict(self.properties),
            "signals": [s.to_dict() for s in self.signals],
            "priorityScore": self.priority_score,
            "signalSummary": self.signal_summary,
        }
        if self.email:
            out["email"] = self.email
        if self.name:
            out["name"] = self.name
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserSignalProfile":
        return cls(
            distinct_id=str(data["distinctId"]),
            signals=[BehavioralSignal.from_dict(s) for s in data.get("signals") or []],
            email=data.get("email") or None,
            name=data.get("name") or None,
            properties=dict(data.get("properties") or {}),
        )


# Ranked output has the same shape as a merged profile.
PriorityQueueEntry = UserSignalProfile
