"""Priority scoring: signal types, the scoring engine and the detector orchestrator."""

from .signals import BehavioralSignal, PriorityQueueEntry, RecencyPolicy, SignalType, UserSignalProfile
from .priority import PriorityScoringEngine, score_signals

__all__ = [
    "BehavioralSignal",
    "PriorityQueueEntry",
    "RecencyPolicy",
    "SignalType",
    "UserSignalProfile",
    "PriorityScoringEngine",
    "score_signals",
]
