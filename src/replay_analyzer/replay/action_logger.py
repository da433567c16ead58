"""
Semantic action logger.

A single left-to-right fold over a session's normalized events. Rolling
state lives in one ParserState value that every handler receives
explicitly; handlers return an Action (or None) and the fold turns actions
into SemanticLogEntry rows. Summary counters are updated on every event,
independent of log throttling.
"""

from __future__ import annotations

import logging
import math
import re
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from replay_analyzer.config import get_settings
from replay_analyzer.ingest.decoder import decode_events
from replay_analyzer.metrics import LOG_ENTRIES, SESSIONS_PARSED, SESSION_PARSE_LATENCY

from .behavioral import synthesize
from .node_registry import NodeRegistry, find_title
from .privacy import redact
from .types import (
    EventKind,
    IncrementalSource,
    MediaInteraction,
    MouseInteraction,
    NormalizedEvent,
    SemanticLogEntry,
    SemanticSession,
    SessionSummary,
    format_offset,
)

logger = logging.getLogger(__name__)

RAGE_CLICK_WINDOW_MS = 2000
RAGE_CLICK_MIN_PRIOR = 2
THRASH_WINDOW_MS = 1500
THRASH_MIN_CLICKS = 3
DEAD_CLICK_WINDOW_MS = 1000
DEAD_CLICK_LOOKAHEAD = 100
HESITATION_MS = 2000
HOVER_LOG_INTERVAL_MS = 3000
SCROLL_LOG_INTERVAL_MS = 2000
RAPID_SCROLL_PX_PER_MS = 5
INPUT_CONSOLIDATE_MS = 500
INPUT_LENGTH_JUMP = 3
TAP_MAX_DISTANCE = 10
TAP_MAX_DURATION_MS = 300
SWIPE_MIN_DISTANCE = 50
LONG_PRESS_MS = 500
BULK_MUTATION_NODES = 10
SLOW_REQUEST_MS = 3000
SLOW_LCP_MS = 4000
MAX_ERROR_TEXT = 100
MAX_PREVIEW = 50

MASKED_TEXT = re.compile(r"^\*+$")


@dataclass
class Action:
    action: str
    details: str = ""
    flags: List[str] = field(default_factory=list)


@dataclass
class InputState:
    last_text: str = ""
    last_timestamp: int = 0
    had_content: bool = False


@dataclass
class TouchStart:
    x: float
    y: float
    time: int


@dataclass
class ParserState:
    """Rolling state threaded through the fold for one session."""
    events: List[NormalizedEvent]
    registry: NodeRegistry
    summary: SessionSummary
    start_time: int
    idle_threshold_ms: int = 5000
    page_multiplier: float = 3.0
    page_url: str = ""
    page_title: str = ""
    current_url: str = ""
    viewport_width: int = 0
    viewport_height: int = 0
    first_meta_index: Optional[int] = None
    first_snapshot_index: Optional[int] = None
    click_history: List[Tuple[Any, int]] = field(default_factory=list)
    hover_node: Any = None
    hover_start: int = 0
    hover_last_seen: int = 0
    hover_flagged: bool = False
    last_hover_log: Optional[int] = None
    input_states: Dict[Any, InputState] = field(default_factory=dict)
    touch_start: Optional[TouchStart] = None
    last_scroll_y: Optional[float] = None
    last_scroll_time: Optional[int] = None
    last_scroll_direction: int = 0
    last_scroll_log: Optional[int] = None
    last_event_time: Optional[int] = None
    idle_ms: int = 0


Handler = Callable[[ParserState, NormalizedEvent, int], Optional[Action]]


def _num(value: Any, default: float = 0) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and math.isnan(value):
        return default
    return value


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _preview(text: str, limit: int = MAX_PREVIEW) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _tag_of(state: ParserState, node_id) -> str:
    info = state.registry.get(node_id)
    return info.tag if info else ""


# ---------------------------------------------------------------------------
# Mouse interactions


def _on_click(state: ParserState, event: NormalizedEvent, index: int) -> Action:
    data = event.data
    node_id = data.get("id")
    ts = event.timestamp
    summary = state.summary
    summary.total_clicks += 1
    act = Action("Clicked", state.registry.describe(node_id))

    same_node = [c for c in state.click_history if c[0] == node_id and ts - c[1] < RAGE_CLICK_WINDOW_MS]
    if len(same_node) >= RAGE_CLICK_MIN_PRIOR:
        act.flags.append("[RAGE CLICK]")
        summary.rage_clicks += 1

    very_recent = [c for c in state.click_history if ts - c[1] < THRASH_WINDOW_MS]
    if len(very_recent) >= THRASH_MIN_CLICKS and len({c[0] for c in very_recent}) >= THRASH_MIN_CLICKS:
        act.flags.append("[CLICK THRASHING]")

    state.click_history.append((node_id, ts))
    # both detection windows are shorter than the rage window
    state.click_history = [c for c in state.click_history if ts - c[1] < RAGE_CLICK_WINDOW_MS]

    responded = False
    for nxt in state.events[index + 1:index + DEAD_CLICK_LOOKAHEAD]:
        if nxt.timestamp - ts > DEAD_CLICK_WINDOW_MS:
            break
        if nxt.source == IncrementalSource.MUTATION:
            responded = True
            break
    if not responded:
        act.flags.append("[NO RESPONSE]")
        summary.dead_clicks += 1

    info = state.registry.get(node_id)
    if info is not None:
        if info.tag == "a" or info.href:
            act.action = "Clicked link"
        elif info.tag == "button" or info.role == "button":
            act.action = "Clicked button"
        elif info.tag == "input" and info.type == "submit":
            act.action = "Clicked submit"
            summary.form_submissions += 1
        elif info.tag == "input" and info.type == "checkbox":
            act.action = "Toggled checkbox"
        elif info.tag == "input" and info.type == "radio":
            act.action = "Selected radio"
    return act


def _on_dblclick(state: ParserState, event: NormalizedEvent, index: int) -> Action:
    state.summary.double_clicks += 1
    return Action("Double-clicked", state.registry.describe(event.data.get("id")))


def _on_context_menu(state: ParserState, event: NormalizedEvent, index: int) -> Action:
    state.summary.right_clicks += 1
    return Action("Right-clicked", state.registry.describe(event.data.get("id")))


def _on_focus(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    node_id = event.data.get("id")
    if _tag_of(state, node_id) not in ("input", "textarea", "select"):
        return None
    if node_id not in state.input_states:
        state.input_states[node_id] = InputState(last_timestamp=event.timestamp)
    return Action("Focused on", state.registry.describe(node_id))


def _on_blur(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    node_id = event.data.get("id")
    if _tag_of(state, node_id) not in ("input", "textarea"):
        return None
    input_state = state.input_states.pop(node_id, None)
    if input_state is None or input_state.last_text:
        return None
    name = state.registry.describe(node_id)
    if not input_state.had_content:
        state.summary.abandoned_inputs += 1
        return Action("Abandoned", f"{name} without entering anything", ["[ABANDONED INPUT]"])
    state.summary.cleared_inputs += 1
    return Action("Cleared and left", name, ["[CLEARED INPUT]"])


def _on_touch_start(state: ParserState, event: NormalizedEvent, index: int) -> Action:
    data = event.data
    state.summary.total_touches += 1
    state.touch_start = TouchStart(_num(data.get("x")), _num(data.get("y")), event.timestamp)
    return Action("Touched", state.registry.describe(data.get("id")))


def _on_touch_end(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    start = state.touch_start
    if start is None:
        return None
    state.touch_start = None
    data = event.data
    dx = _num(data.get("x")) - start.x
    dy = _num(data.get("y")) - start.y
    distance = math.hypot(dx, dy)
    duration = event.timestamp - start.time
    name = state.registry.describe(data.get("id"))
    if distance < TAP_MAX_DISTANCE and duration < TAP_MAX_DURATION_MS:
        return Action("Tapped", name)
    if distance > SWIPE_MIN_DISTANCE:
        state.summary.swipes += 1
        if abs(dx) > abs(dy):
            direction = "right" if dx > 0 else "left"
        else:
            direction = "down" if dy > 0 else "up"
        return Action("Swiped", direction, ["[SWIPE]"])
    if duration > LONG_PRESS_MS:
        return Action("Long pressed", name, ["[LONG PRESS]"])
    return None


def _on_touch_cancel(state: ParserState, event: NormalizedEvent, index: int) -> Action:
    state.touch_start = None
    return Action("Touch cancelled", f"on {state.registry.describe(event.data.get('id'))}")


MOUSE_HANDLERS: Dict[int, Handler] = {
    MouseInteraction.CLICK: _on_click,
    MouseInteraction.DBL_CLICK: _on_dblclick,
    MouseInteraction.CONTEXT_MENU: _on_context_menu,
    MouseInteraction.FOCUS: _on_focus,
    MouseInteraction.BLUR: _on_blur,
    MouseInteraction.TOUCH_START: _on_touch_start,
    MouseInteraction.TOUCH_END: _on_touch_end,
    MouseInteraction.TOUCH_CANCEL: _on_touch_cancel,
}


def _on_mouse_interaction(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    handler = MOUSE_HANDLERS.get(event.data.get("type"))
    return handler(state, event, index) if handler else None


# ---------------------------------------------------------------------------
# Other incremental sources


def _on_mutation(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    adds = event.data.get("adds")
    if not isinstance(adds, list):
        return None
    state.registry.register_mutation(adds)
    if len(adds) > BULK_MUTATION_NODES:
        return Action("Content loaded", f"{len(adds)} elements added")
    return None


def _on_mouse_move(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    positions = event.data.get("positions")
    if not isinstance(positions, list) or not positions or not isinstance(positions[-1], dict):
        return None
    ts = event.timestamp
    node_id = positions[-1].get("id")
    info = state.registry.get(node_id)
    if info is None or not info.is_interactive:
        state.hover_node = None
        return None

    summary = state.summary
    summary.total_hovers += 1
    name = state.registry.describe(node_id)
    if state.hover_node == node_id:
        summary.hover_time += ts - state.hover_last_seen
        state.hover_last_seen = ts
        if ts - state.hover_start > HESITATION_MS and not state.hover_flagged:
            state.hover_flagged = True
            summary.hesitations += 1
            state.last_hover_log = ts
            return Action("Hesitated over", name, ["[HESITATION]"])
    else:
        state.hover_node = node_id
        state.hover_start = ts
        state.hover_last_seen = ts
        state.hover_flagged = False

    if state.last_hover_log is None or ts - state.last_hover_log > HOVER_LOG_INTERVAL_MS:
        state.last_hover_log = ts
        return Action("Hovered over", name)
    return None


def _on_scroll(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    data = event.data
    ts = event.timestamp
    summary = state.summary
    summary.total_scrolls += 1
    y = _num(data.get("y"))
    x = _num(data.get("x"))
    vh = state.viewport_height

    if vh > 0 and state.page_multiplier > 0:
        depth = min(100, _round_half_up(y / (state.page_multiplier * vh) * 100))
        summary.scroll_depth_max = max(summary.scroll_depth_max, depth)

    rapid = False
    if state.last_scroll_y is not None and state.last_scroll_time is not None:
        elapsed = ts - state.last_scroll_time
        if elapsed > 0 and abs(y - state.last_scroll_y) / elapsed > RAPID_SCROLL_PX_PER_MS:
            rapid = True
            summary.rapid_scrolls += 1
        direction = (y > state.last_scroll_y) - (y < state.last_scroll_y)
        if direction:
            if state.last_scroll_direction and direction != state.last_scroll_direction:
                summary.scroll_reversals += 1
            state.last_scroll_direction = direction
    state.last_scroll_y = y
    state.last_scroll_time = ts

    if state.last_scroll_log is not None and ts - state.last_scroll_log <= SCROLL_LOG_INTERVAL_MS:
        return None
    if y <= 100 and not rapid:
        return None
    state.last_scroll_log = ts
    if vh and y > vh * 2:
        details = "deep into page"
    elif vh and y > vh:
        details = "down the page"
    elif y > 100:
        details = "near top"
    else:
        details = "to top"
    act = Action("Scrolled", details)
    if rapid:
        act.flags.append("[RAPID SCROLL]")
    if x > 100:
        act.details += f" (horizontal: {int(x)}px)"
        act.flags.append("[HORIZONTAL SCROLL]")
    return act


def _on_viewport_resize(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    width = int(_num(event.data.get("width")))
    height = int(_num(event.data.get("height")))
    if width <= 0 or height <= 0:
        return None
    old_w, old_h = state.viewport_width, state.viewport_height
    state.viewport_width, state.viewport_height = width, height
    state.summary.resize_events += 1
    if old_w > 0 and old_h > 0 and (old_h > old_w) != (height > width):
        state.summary.orientation_changes += 1
        return Action("Rotated device", "to portrait" if height > width else "to landscape", ["[ORIENTATION CHANGE]"])
    return Action("Resized window", f"to {width}x{height}")


def _on_input(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    data = event.data
    ts = event.timestamp
    node_id = data.get("id")
    state.summary.total_inputs += 1
    name = state.registry.describe(node_id, fallback="input")
    raw_text = data.get("text")
    text = redact(raw_text) if isinstance(raw_text, str) else ""
    prev = state.input_states.get(node_id)
    act: Optional[Action] = None

    if prev is None or prev.last_text != text:
        shrunk = prev is not None and len(text) < len(prev.last_text)
        consolidate = (
            prev is not None
            and prev.last_text
            and not shrunk
            and ts - prev.last_timestamp <= INPUT_CONSOLIDATE_MS
            and abs(len(text) - len(prev.last_text)) <= INPUT_LENGTH_JUMP
        )
        if not consolidate:
            info = state.registry.get(node_id)
            masked = (info is not None and info.type == "password") or bool(MASKED_TEXT.match(text))
            if text:
                if masked:
                    act = Action("Typed", f"in {name} ({len(text)} characters, masked)")
                else:
                    act = Action("Typed", f'"{_preview(text)}" in {name}')
                if shrunk:
                    act.flags.append("[CORRECTION]")
            elif prev is not None and prev.last_text:
                act = Action("Cleared", name)
        state.input_states[node_id] = InputState(
            last_text=text,
            last_timestamp=ts,
            had_content=(prev.had_content if prev else False) or bool(text),
        )

    is_checked = data.get("isChecked")
    if isinstance(is_checked, bool):
        act = Action("Checked" if is_checked else "Unchecked", name)
    return act


def _on_touch_move(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    positions = event.data.get("positions")
    if isinstance(positions, list) and len(positions) >= 2:
        state.summary.pinch_zooms += 1
        return Action("Pinch zoomed", "", ["[PINCH ZOOM]"])
    return None


def _on_media(state: ParserState, event: NormalizedEvent, index: int) -> Action:
    data = event.data
    summary = state.summary
    summary.total_media_interactions += 1
    name = state.registry.describe(data.get("id"), fallback="media")
    kind = data.get("type")
    if kind == MediaInteraction.PLAY:
        summary.video_plays += 1
        return Action("Played", name)
    if kind == MediaInteraction.PAUSE:
        summary.video_pauses += 1
        return Action("Paused", name)
    if kind == MediaInteraction.SEEKED:
        return Action("Seeked", f"{name} to {_round_half_up(_num(data.get('currentTime')))}s", ["[VIDEO SEEK]"])
    if kind == MediaInteraction.VOLUME_CHANGE:
        if data.get("muted"):
            return Action("Muted", name)
        return Action("Changed volume", f"on {name} to {_round_half_up(_num(data.get('volume')) * 100)}%")
    if kind == MediaInteraction.RATE_CHANGE:
        return Action("Changed playback speed", f"on {name} to {_num(data.get('playbackRate'), 1)}x")
    return Action("Interacted with", name)


def _on_canvas(state: ParserState, event: NormalizedEvent, index: int) -> Action:
    return Action("Drew on canvas", "interactive element")


def _error_text(parts: Any) -> str:
    if isinstance(parts, list):
        parts = " ".join(str(p) for p in parts)
    return redact(str(parts or ""))[:MAX_ERROR_TEXT]


def _on_log(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    data = event.data
    level = data.get("level")
    if level == "error":
        state.summary.console_errors += 1
        trace = data.get("trace")
        text = _error_text(data.get("payload")) or _error_text(trace[0] if isinstance(trace, list) and trace else "")
        return Action("Console Error", text or "Unknown error", ["[CONSOLE ERROR]"])
    if level == "warn":
        return Action("Console Warning", _error_text(data.get("payload")), ["[CONSOLE WARNING]"])
    return None


def _on_drag(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    positions = [p for p in (event.data.get("positions") or []) if isinstance(p, dict)]
    if not positions:
        return None
    start, end = positions[0], positions[-1]
    distance = math.hypot(_num(end.get("x")) - _num(start.get("x")), _num(end.get("y")) - _num(start.get("y")))
    return Action("Dragged", f"{_round_half_up(distance)}px")


SOURCE_HANDLERS: Dict[int, Handler] = {
    IncrementalSource.MUTATION: _on_mutation,
    IncrementalSource.MOUSE_MOVE: _on_mouse_move,
    IncrementalSource.MOUSE_INTERACTION: _on_mouse_interaction,
    IncrementalSource.SCROLL: _on_scroll,
    IncrementalSource.VIEWPORT_RESIZE: _on_viewport_resize,
    IncrementalSource.INPUT: _on_input,
    IncrementalSource.TOUCH_MOVE: _on_touch_move,
    IncrementalSource.MEDIA_INTERACTION: _on_media,
    IncrementalSource.CANVAS_MUTATION: _on_canvas,
    IncrementalSource.LOG: _on_log,
    IncrementalSource.DRAG: _on_drag,
}


def _on_incremental(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    handler = SOURCE_HANDLERS.get(event.source)
    return handler(state, event, index) if handler else None


# ---------------------------------------------------------------------------
# Snapshot, meta, custom and plugin events


def _on_full_snapshot(state: ParserState, event: NormalizedEvent, index: int) -> None:
    if index != state.first_snapshot_index and isinstance(event.data, dict):
        state.registry.register_tree(event.data.get("node"))
    return None


def _on_meta(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    if index == state.first_meta_index:
        return None
    data = event.data
    width, height = int(_num(data.get("width"))), int(_num(data.get("height")))
    if width > 0 and height > 0:
        state.viewport_width, state.viewport_height = width, height
    href = data.get("href")
    if isinstance(href, str) and href and href != state.current_url:
        state.current_url = href
        return Action("Navigated", f"to {redact(href)}")
    return None


def _custom_console(payload: dict, state: ParserState) -> Optional[Action]:
    message = payload.get("message") or payload.get("content")
    if payload.get("level") == "error" or payload.get("type") == "error":
        state.summary.console_errors += 1
        return Action("Console Error", _error_text(message) or "Unknown error", ["[CONSOLE ERROR]"])
    if payload.get("level") == "warn" or payload.get("type") == "warning":
        return Action("Console Warning", _error_text(message), ["[CONSOLE WARNING]"])
    return None


def _custom_selection(payload: dict, state: ParserState) -> Optional[Action]:
    state.summary.total_selections += 1
    selected = payload.get("selection") or payload.get("text") or ""
    if isinstance(selected, str) and selected:
        return Action("Selected text", f'"{_preview(redact(selected))}"')
    return None


def _custom_copy(payload: dict, state: ParserState) -> Action:
    state.summary.copy_events += 1
    return Action("Copied", "text to clipboard")


def _custom_paste(payload: dict, state: ParserState) -> Action:
    state.summary.paste_events += 1
    return Action("Pasted", "from clipboard")


def _custom_submit(payload: dict, state: ParserState) -> Action:
    state.summary.form_submissions += 1
    return Action("Submitted", "form", ["[FORM SUBMIT]"])


def _custom_visibility(payload: dict, state: ParserState) -> Action:
    state.summary.tab_switches += 1
    if payload.get("hidden"):
        return Action("Switched away", "from tab", ["[TAB SWITCH]"])
    return Action("Returned", "to tab")


def _custom_keyboard(payload: dict, state: ParserState) -> Optional[Action]:
    key = payload.get("key") or payload.get("code") or ""
    if not key or not (payload.get("ctrlKey") or payload.get("metaKey") or payload.get("altKey")):
        return None
    modifiers = [label for flag, label in (("ctrlKey", "Ctrl"), ("metaKey", "Cmd"), ("altKey", "Alt"), ("shiftKey", "Shift")) if payload.get(flag)]
    return Action("Pressed", "+".join(modifiers + [str(key)]), ["[KEYBOARD SHORTCUT]"])


def _custom_navigation(payload: dict, state: ParserState) -> Action:
    return Action("Navigated", f"to {redact(payload.get('href') or payload.get('url') or 'new page')}")


CUSTOM_TYPE_HANDLERS: Dict[str, Callable[[dict, ParserState], Optional[Action]]] = {
    "error": _custom_console,
    "warning": _custom_console,
    "navigation": _custom_navigation,
    "selection": _custom_selection,
    "copy": _custom_copy,
    "paste": _custom_paste,
    "cut": lambda p, s: Action("Cut", "text to clipboard"),
    "submit": _custom_submit,
    "form_submit": _custom_submit,
    "visibilitychange": _custom_visibility,
    "pagehide": lambda p, s: Action("Left page"),
    "pageshow": lambda p, s: Action("Returned to page"),
    "beforeunload": lambda p, s: Action("Attempted to leave", "page", ["[EXIT INTENT]"]),
    "print": lambda p, s: Action("Printed", "page"),
    "beforeprint": lambda p, s: Action("Printed", "page"),
    "fullscreenchange": lambda p, s: Action("Entered fullscreen" if p.get("isFullscreen") else "Exited fullscreen"),
    "online": lambda p, s: Action("Came online"),
    "offline": lambda p, s: Action("Went offline", "", ["[OFFLINE]"]),
    "storage": lambda p, s: Action("Storage changed", str(p.get("key") or "")),
    "keydown": _custom_keyboard,
    "keypress": _custom_keyboard,
}


def _custom_by_tag(tag: Any, payload: dict) -> Optional[Action]:
    if tag == "$pageview":
        return Action("Viewed page", redact(payload.get("$current_url") or ""))
    if tag == "$pageleave":
        return Action("Left page")
    if tag == "$autocapture":
        text = payload.get("$el_text")
        if isinstance(text, str) and text:
            return Action("Interacted with", f'"{redact(text[:MAX_PREVIEW])}"')
    return None


def _on_custom(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    data = event.data
    payload = data.get("payload")
    if not isinstance(payload, dict):
        return None
    tagged = _custom_by_tag(data.get("tag"), payload)
    if tagged is not None:
        return tagged
    handler = CUSTOM_TYPE_HANDLERS.get(payload.get("type"))
    if handler is not None:
        return handler(payload, state)
    if payload.get("level") in ("error", "warn"):
        return _custom_console(payload, state)
    if payload.get("href"):
        return _custom_navigation(payload, state)
    if payload.get("selection"):
        return _custom_selection(payload, state)
    return None


def _on_plugin(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    payload = event.data.get("payload")
    if not isinstance(payload, dict):
        return None
    actions: List[Action] = []
    requests = payload.get("requests")
    if isinstance(requests, list):
        reqs = [r for r in requests if isinstance(r, dict)]
        failed = [r for r in reqs if _num(r.get("responseStatus"), -1) >= 400 or r.get("responseStatus") == 0]
        if failed:
            state.summary.network_errors += len(failed)
            codes = list(dict.fromkeys(r.get("responseStatus") for r in failed))
            actions.append(Action("Network error", f"{len(failed)} failed request(s) - {', '.join(str(c) for c in codes)}", ["[NETWORK ERROR]"]))
        slow = [r for r in reqs if _num(r.get("duration")) > SLOW_REQUEST_MS and 0 < _num(r.get("responseStatus"), 200) < 400]
        if slow:
            actions.append(Action("Slow network", f"{len(slow)} slow request(s)", ["[SLOW NETWORK]"]))
    if payload.get("type") == "performance" or payload.get("performanceEntries"):
        lcp = _num(payload.get("largestContentfulPaint") or payload.get("lcp"))
        if lcp > SLOW_LCP_MS:
            actions.append(Action("Slow page load", f"LCP: {_round_half_up(lcp)}ms", ["[SLOW LOAD]"]))
    if not actions:
        return None
    merged = actions[0]
    for extra in actions[1:]:
        merged.details += f"; {extra.details}"
        merged.flags.extend(extra.flags)
    return merged


KIND_HANDLERS: Dict[int, Handler] = {
    EventKind.FULL_SNAPSHOT: _on_full_snapshot,
    EventKind.INCREMENTAL_SNAPSHOT: _on_incremental,
    EventKind.META: _on_meta,
    EventKind.CUSTOM: _on_custom,
    EventKind.PLUGIN: _on_plugin,
}


# ---------------------------------------------------------------------------
# Fold


def _prescan(state: ParserState) -> None:
    """Pick up page context from the first Meta and FullSnapshot events."""
    for i, ev in enumerate(state.events):
        if not isinstance(ev.data, dict):
            continue
        if ev.kind == EventKind.META and state.first_meta_index is None:
            state.first_meta_index = i
            href = ev.data.get("href")
            state.page_url = href if isinstance(href, str) else ""
            state.current_url = state.page_url
            state.viewport_width = int(_num(ev.data.get("width")))
            state.viewport_height = int(_num(ev.data.get("height")))
        elif ev.kind == EventKind.FULL_SNAPSHOT and state.first_snapshot_index is None:
            state.first_snapshot_index = i
            root = ev.data.get("node")
            state.registry.register_tree(root)
            state.page_title = find_title(root)
        if state.first_meta_index is not None and state.first_snapshot_index is not None:
            break


def _track_idle(state: ParserState, ts: int) -> None:
    if state.last_event_time is not None:
        gap = ts - state.last_event_time
        if gap > state.idle_threshold_ms:
            state.idle_ms += gap - state.idle_threshold_ms
    state.last_event_time = ts


def step(state: ParserState, event: NormalizedEvent, index: int) -> Optional[Action]:
    """Apply one event to the state; returns the action to log, if any."""
    _track_idle(state, event.timestamp)
    if not isinstance(event.data, dict):
        return None
    handler = KIND_HANDLERS.get(event.kind)
    if handler is None:
        return None
    return handler(state, event, index)


def _session_start_entry(state: ParserState) -> Optional[SemanticLogEntry]:
    if not state.page_url:
        return None
    host = urlparse(state.page_url).hostname or state.page_url
    details = f"on {host}"
    if state.page_title:
        details += f' - "{redact(state.page_title)}"'
    return SemanticLogEntry(format_offset(0), "Session Started", details, [], state.start_time)


def parse_session(
    events: Iterable[Any] | None,
    idle_threshold_ms: int | None = None,
    scroll_depth_page_multiplier: float | None = None,
) -> SemanticSession:
    """Turn one session's events into a SemanticSession.

    Accepts NormalizedEvents or raw records (raw records are decoded first).
    An empty or missing event list yields an empty session.
    """
    items = list(events or [])
    if items and not all(isinstance(e, NormalizedEvent) for e in items):
        items = decode_events(items)
    if not items:
        return SemanticSession()

    settings = get_settings()
    started = time.time()
    ordered = sorted(items, key=lambda e: e.timestamp)
    state = ParserState(
        events=ordered,
        registry=NodeRegistry(),
        summary=SessionSummary(),
        start_time=ordered[0].timestamp,
        idle_threshold_ms=settings.idle_threshold_ms if idle_threshold_ms is None else idle_threshold_ms,
        page_multiplier=settings.scroll_depth_page_multiplier if scroll_depth_page_multiplier is None else scroll_depth_page_multiplier,
    )
    _prescan(state)

    logs: List[SemanticLogEntry] = []
    start_entry = _session_start_entry(state)
    if start_entry:
        logs.append(start_entry)

    for index, event in enumerate(ordered):
        counters = replace(state.summary)
        try:
            act = step(state, event, index)
        except (TypeError, ValueError, AttributeError) as e:
            # a skipped event leaves the counters as they were
            state.summary = counters
            logger.debug(f"skipping malformed event at index {index}: {e}")
            continue
        if act is None or not act.action:
            continue
        logs.append(SemanticLogEntry(
            timestamp=format_offset(event.timestamp - state.start_time),
            action=act.action,
            details=act.details,
            flags=list(dict.fromkeys(act.flags)),
            raw_timestamp=event.timestamp,
        ))

    duration_ms = ordered[-1].timestamp - state.start_time
    summary = state.summary
    summary.idle_time = _round_half_up(state.idle_ms / 1000)
    summary.session_duration_ms = duration_ms

    SESSIONS_PARSED.inc()
    LOG_ENTRIES.inc(len(logs))
    SESSION_PARSE_LATENCY.observe(time.time() - started)
    return SemanticSession(
        total_duration=format_offset(duration_ms),
        event_count=len(ordered),
        page_url=state.page_url,
        page_title=state.page_title,
        viewport_width=state.viewport_width,
        viewport_height=state.viewport_height,
        logs=logs,
        summary=summary,
        behavioral_signals=synthesize(summary),
    )
