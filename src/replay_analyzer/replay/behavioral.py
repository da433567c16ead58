from __future__ import annotations

from .types import BehavioralSignals, SessionSummary

ENGAGED_MIN_DURATION_MS = 30_000


def synthesize(summary: SessionSummary) -> BehavioralSignals:
    """Session-level booleans derived from the summary counters alone."""
    return BehavioralSignals(
        # lots of scrolling, few clicks
        is_exploring=summary.total_scrolls > 20 and summary.total_clicks < 5,
        is_frustrated=(
            summary.rage_clicks > 0
            or summary.dead_clicks > 2
            or summary.rapid_scrolls > 3
            or summary.console_errors > 0
            or summary.network_errors > 0
        ),
        is_engaged=summary.total_clicks > 3 and summary.total_inputs > 0 and summary.session_duration_ms > ENGAGED_MIN_DURATION_MS,
        is_confused=summary.hesitations > 2 or summary.scroll_reversals > 5 or summary.abandoned_inputs > 0,
        is_mobile=summary.total_touches > 0 or summary.swipes > 0 or summary.orientation_changes > 0,
        completed_goal=summary.form_submissions > 0,
    )
