"""Signal detectors. Each one reads a single source and returns per-user profiles."""

from .base import EventFrameDetector, SignalDetector, prepare_events
from .engagement import (
    ActivatedAbandonedDetector,
    ChurnRiskDetector,
    EngagementDecayDetector,
    FeatureAbandonedDetector,
    FeatureRegressionDetector,
    PowerUserChurningDetector,
)
from .navigation import ExcessiveNavigationDetector, IdleAfterActionDetector, analyze_navigation
from .replay_sessions import ReplaySessionDetector, ReplaySessionRecord
from .step_friction import (
    FunnelDropoffDetector,
    StepLoopDetector,
    StepRetryDetector,
    TimeVarianceDetector,
    find_loops,
)

__all__ = [
    "SignalDetector",
    "EventFrameDetector",
    "prepare_events",
    "StepRetryDetector",
    "StepLoopDetector",
    "TimeVarianceDetector",
    "FunnelDropoffDetector",
    "find_loops",
    "FeatureAbandonedDetector",
    "FeatureRegressionDetector",
    "EngagementDecayDetector",
    "PowerUserChurningDetector",
    "ActivatedAbandonedDetector",
    "ChurnRiskDetector",
    "ExcessiveNavigationDetector",
    "IdleAfterActionDetector",
    "analyze_navigation",
    "ReplaySessionDetector",
    "ReplaySessionRecord",
]
