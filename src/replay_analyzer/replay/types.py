"""
Typed building blocks for replay parsing: event kind codes of the upstream
recording format and the structures the action logger produces.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict
from enum import IntEnum
from typing import Any, Dict, List


class EventKind(IntEnum):
    FULL_SNAPSHOT = 2
    INCREMENTAL_SNAPSHOT = 3
    META = 4
    CUSTOM = 5
    PLUGIN = 6


class IncrementalSource(IntEnum):
    MUTATION = 0
    MOUSE_MOVE = 1
    MOUSE_INTERACTION = 2
    SCROLL = 3
    VIEWPORT_RESIZE = 4
    INPUT = 5
    TOUCH_MOVE = 6
    MEDIA_INTERACTION = 7
    CANVAS_MUTATION = 9
    LOG = 11
    DRAG = 12


class MouseInteraction(IntEnum):
    MOUSE_UP = 0
    MOUSE_DOWN = 1
    CLICK = 2
    CONTEXT_MENU = 3
    DBL_CLICK = 4
    FOCUS = 5
    BLUR = 6
    TOUCH_START = 7
    TOUCH_MOVE_DEPARTED = 8
    TOUCH_END = 9
    TOUCH_CANCEL = 10


class MediaInteraction(IntEnum):
    PLAY = 0
    PAUSE = 1
    SEEKED = 2
    VOLUME_CHANGE = 3
    RATE_CHANGE = 4


class NodeType(IntEnum):
    DOCUMENT = 0
    DOCUMENT_TYPE = 1
    ELEMENT = 2
    TEXT = 3


@dataclass
class NormalizedEvent:
    kind: int
    timestamp: int
    window_id: str = "default"
    data: Any = None

    @property
    def source(self) -> int | None:
        if self.kind == EventKind.INCREMENTAL_SNAPSHOT and isinstance(self.data, dict):
            src = self.data.get("source")
            return src if isinstance(src, int) else None
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "timestamp": self.timestamp, "windowId": self.window_id, "data": self.data}


@dataclass
class SemanticLogEntry:
    timestamp: str
    action: str
    details: str
    flags: List[str] = field(default_factory=list)
    raw_timestamp: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "action": self.action,
            "details": self.details,
            "flags": list(self.flags),
            "rawTimestamp": self.raw_timestamp,
        }


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.capitalize() for p in rest)


@dataclass
class SessionSummary:
    """Counters accumulated over one session. idle_time is in seconds."""
    total_clicks: int = 0
    rage_clicks: int = 0
    dead_clicks: int = 0
    double_clicks: int = 0
    right_clicks: int = 0

    total_inputs: int = 0
    abandoned_inputs: int = 0
    cleared_inputs: int = 0

    total_scrolls: int = 0
    scroll_depth_max: int = 0
    rapid_scrolls: int = 0
    scroll_reversals: int = 0

    total_hovers: int = 0
    hesitations: int = 0
    hover_time: int = 0

    total_touches: int = 0
    swipes: int = 0
    pinch_zooms: int = 0

    total_media_interactions: int = 0
    video_plays: int = 0
    video_pauses: int = 0

    total_selections: int = 0
    copy_events: int = 0
    paste_events: int = 0

    console_errors: int = 0
    network_errors: int = 0

    tab_switches: int = 0
    idle_time: int = 0
    form_submissions: int = 0

    resize_events: int = 0
    orientation_changes: int = 0

    session_duration_ms: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {_camel(f.name): getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class BehavioralSignals:
    is_exploring: bool = False
    is_frustrated: bool = False
    is_engaged: bool = False
    is_confused: bool = False
    is_mobile: bool = False
    completed_goal: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {_camel(k): v for k, v in asdict(self).items()}


@dataclass
class SemanticSession:
    total_duration: str = "00:00"
    event_count: int = 0
    page_url: str = ""
    page_title: str = ""
    viewport_width: int = 0
    viewport_height: int = 0
    logs: List[SemanticLogEntry] = field(default_factory=list)
    summary: SessionSummary = field(default_factory=SessionSummary)
    behavioral_signals: BehavioralSignals = field(default_factory=BehavioralSignals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalDuration": self.total_duration,
            "eventCount": self.event_count,
            "pageUrl": self.page_url,
            "pageTitle": self.page_title,
            "viewportSize": {"width": self.viewport_width, "height": self.viewport_height},
            "logs": [entry.to_dict() for entry in self.logs],
            "summary": self.summary.to_dict(),
            "behavioralSignals": self.behavioral_signals.to_dict(),
        }


def format_offset(ms: int) -> str:
    """Format a millisecond offset as mm:ss."""
    seconds = max(0, int(ms)) // 1000
    return f"{seconds // 60:02d}:{seconds % 60:02d}"
