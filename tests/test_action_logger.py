"""Tests for the semantic action logger."""
from __future__ import annotations

from replay_analyzer.ingest.decoder import decode_events
from replay_analyzer.replay.action_logger import parse_session

from replay_builders import (
    BASE_TS,
    PAGE_URL,
    blur,
    click,
    custom,
    focus,
    hover,
    incremental,
    meta,
    mouse,
    mutation,
    plugin,
    scroll,
    session,
    type_text,
)


def actions(parsed, name):
    return [e for e in parsed.logs if e.action == name]


def test_empty_session():
    for empty in ([], None):
        out = parse_session(empty).to_dict()
        assert out["eventCount"] == 0
        assert out["totalDuration"] == "00:00"
        assert out["logs"] == []
        assert not any(out["behavioralSignals"].values())


def test_session_started_entry_and_page_context():
    parsed = parse_session(session(click(61_000, 10)))
    first = parsed.logs[0]
    assert first.action == "Session Started"
    assert first.details == 'on app.example.com - "Sign up"'
    assert first.timestamp == "00:00"
    assert parsed.page_url == PAGE_URL
    assert parsed.page_title == "Sign up"
    assert (parsed.viewport_width, parsed.viewport_height) == (1280, 800)
    assert parsed.total_duration == "01:01"
    assert parsed.event_count == 3


def test_logs_are_sorted_by_time():
    parsed = parse_session(session(click(3000, 10), click(1000, 10), scroll(2000, 1200)))
    stamps = [e.raw_timestamp for e in parsed.logs]
    assert stamps == sorted(stamps)
    assert parsed.total_duration == "00:03"


def test_accepts_normalized_events():
    records = session(click(1000, 10), scroll(2000, 1200))
    assert parse_session(decode_events(records)).to_dict() == parse_session(records).to_dict()


def test_rage_click_within_window():
    parsed = parse_session(session(click(1000, 10), click(1500, 10), click(2000, 10)))
    clicks = actions(parsed, "Clicked button")
    assert [c.details for c in clicks] == ['"Create account" button'] * 3
    assert "[RAGE CLICK]" not in clicks[1].flags
    assert "[RAGE CLICK]" in clicks[2].flags
    assert clicks[2].timestamp == "00:02"
    assert parsed.summary.rage_clicks == 1
    assert parsed.behavioral_signals.is_frustrated


def test_clicks_spread_beyond_window_are_not_rage():
    parsed = parse_session(session(click(1000, 10), click(2250, 10), click(3500, 10)))
    assert parsed.summary.rage_clicks == 0
    assert all("[RAGE CLICK]" not in e.flags for e in parsed.logs)


def test_dead_click_needs_mutation_within_a_second():
    parsed = parse_session(session(click(1000, 10), mutation(1900), click(5000, 10), mutation(6200)))
    first, second = actions(parsed, "Clicked button")
    assert "[NO RESPONSE]" not in first.flags
    assert "[NO RESPONSE]" in second.flags
    assert parsed.summary.dead_clicks == 1


def test_click_thrashing_across_elements():
    parsed = parse_session(session(click(1000, 10), click(1200, 20), click(1400, 30), click(1600, 40)))
    last = [e for e in parsed.logs if e.raw_timestamp == BASE_TS + 1600][0]
    assert "[CLICK THRASHING]" in last.flags
    assert actions(parsed, "Clicked link")[0].details == "link to pricing"


def test_idle_time_counts_gap_beyond_threshold():
    records = session(click(1000, 10), click(9000, 10))
    assert parse_session(records).summary.idle_time == 3
    assert parse_session(records, idle_threshold_ms=10_000).summary.idle_time == 0


def test_abandoned_input():
    parsed = parse_session(session(focus(1000, 20), blur(3000, 20)))
    assert actions(parsed, "Focused on")[0].details == '"Work email" email field'
    (abandoned,) = actions(parsed, "Abandoned")
    assert abandoned.details == '"Work email" email field without entering anything'
    assert abandoned.flags == ["[ABANDONED INPUT]"]
    assert parsed.summary.abandoned_inputs == 1
    assert parsed.behavioral_signals.is_confused


def test_cleared_input():
    parsed = parse_session(session(
        focus(1000, 20),
        type_text(1500, 20, "abc"),
        type_text(4000, 20, ""),
        blur(5000, 20),
    ))
    assert actions(parsed, "Typed")[0].details == '"abc" in "Work email" email field'
    assert len(actions(parsed, "Cleared")) == 1
    assert actions(parsed, "Cleared and left")[0].flags == ["[CLEARED INPUT]"]
    assert parsed.summary.cleared_inputs == 1
    assert parsed.summary.abandoned_inputs == 0
    assert parsed.summary.total_inputs == 2


def test_typing_is_consolidated_and_corrections_flagged():
    parsed = parse_session(session(
        focus(1000, 20),
        type_text(1100, 20, "a"),
        type_text(1300, 20, "ab"),
        type_text(1500, 20, "abc"),
        type_text(1700, 20, "ab"),
    ))
    typed = actions(parsed, "Typed")
    assert [t.details for t in typed] == ['"a" in "Work email" email field', '"ab" in "Work email" email field']
    assert typed[1].flags == ["[CORRECTION]"]


def test_password_input_is_masked():
    parsed = parse_session(session(focus(1000, 50), type_text(1200, 50, "hunter22")))
    (typed,) = actions(parsed, "Typed")
    assert typed.details == 'in "password" password field (8 characters, masked)'
    assert "hunter22" not in str(parsed.to_dict())


def test_hesitation_over_interactive_element():
    parsed = parse_session(session(hover(1000, 10), hover(2000, 10), hover(3500, 10)))
    assert len(actions(parsed, "Hovered over")) == 1
    (hesitated,) = actions(parsed, "Hesitated over")
    assert hesitated.flags == ["[HESITATION]"]
    assert parsed.summary.hesitations == 1
    assert parsed.summary.hover_time == 2500
    assert parsed.summary.total_hovers == 3


def test_scroll_depth_uses_page_multiplier():
    records = session(scroll(1000, 1200))
    parsed = parse_session(records)
    assert parsed.summary.scroll_depth_max == 50
    assert actions(parsed, "Scrolled")[0].details == "down the page"
    assert parse_session(records, scroll_depth_page_multiplier=2.0).summary.scroll_depth_max == 75


def test_rapid_scroll_and_reversal():
    parsed = parse_session(session(scroll(1000, 1200), scroll(1100, 2400), scroll(4000, 100)))
    summary = parsed.summary
    assert summary.total_scrolls == 3
    assert summary.rapid_scrolls == 1
    assert summary.scroll_reversals == 1
    assert summary.scroll_depth_max == 100
    # second scroll is inside the log throttle window, third is near the top
    assert len(actions(parsed, "Scrolled")) == 1


def test_custom_plugin_and_console_events():
    parsed = parse_session(session(
        custom(1000, {"type": "submit"}),
        plugin(2000, {"requests": [
            {"responseStatus": 500, "duration": 100},
            {"responseStatus": 200, "duration": 5000},
        ]}),
        incremental(3000, 11, level="error", payload=["Failed for jane@example.com"], trace=[]),
    ))
    (submitted,) = actions(parsed, "Submitted")
    assert submitted.flags == ["[FORM SUBMIT]"]
    (network,) = actions(parsed, "Network error")
    assert network.details == "1 failed request(s) - 500; 1 slow request(s)"
    assert network.flags == ["[NETWORK ERROR]", "[SLOW NETWORK]"]
    (error,) = actions(parsed, "Console Error")
    assert error.details == "Failed for [REDACTED]"
    assert parsed.summary.form_submissions == 1
    assert parsed.summary.network_errors == 1
    assert parsed.summary.console_errors == 1
    assert parsed.behavioral_signals.completed_goal
    assert parsed.behavioral_signals.is_frustrated


def test_navigation_media_and_touch():
    parsed = parse_session(session(
        incremental(1000, 7, type=0, id=60),
        mouse(2000, 7, 10, x=100, y=100),
        mouse(2200, 9, 10, x=100, y=300),
        incremental(3000, 4, width=800, height=1280),
        meta(4000, href="https://app.example.com/welcome", width=800, height=1280),
    ))
    assert actions(parsed, "Played")[0].details == "#intro video"
    (swipe,) = actions(parsed, "Swiped")
    assert (swipe.details, swipe.flags) == ("down", ["[SWIPE]"])
    assert actions(parsed, "Rotated device")[0].details == "to portrait"
    assert actions(parsed, "Navigated")[0].details == "to https://app.example.com/welcome"
    summary = parsed.summary
    assert (summary.video_plays, summary.total_touches, summary.swipes, summary.orientation_changes) == (1, 1, 1, 1)
    assert parsed.behavioral_signals.is_mobile


def test_malformed_events_are_skipped():
    parsed = parse_session(session(
        incremental(1000, 1, positions="bad"),
        incremental(1100, 5, id=20, text=123),
        incremental(1200, 2, type=2),
        {"type": 3, "timestamp": BASE_TS + 1300, "data": "not a dict"},
        click(1400, 10),
    ))
    assert parsed.summary.total_clicks == 2
    assert actions(parsed, "Clicked button")


def test_unhashable_node_ids_leave_counters_untouched():
    parsed = parse_session(session(
        mouse(1000, 2, [10], x=10, y=10),
        incremental(1100, 5, id={"x": 1}, text="abc"),
    ))
    assert parsed.summary.total_clicks == 0
    assert parsed.summary.total_inputs == 0
    assert not [e for e in parsed.logs if e.action.startswith(("Clicked", "Typed"))]


def test_tap_and_long_press():
    parsed = parse_session(session(
        mouse(1000, 7, 10, x=100, y=100),
        mouse(1150, 9, 10, x=103, y=104),
        mouse(3000, 7, 10, x=100, y=100),
        mouse(3700, 9, 10, x=104, y=103),
    ))
    (tap,) = actions(parsed, "Tapped")
    assert tap.flags == []
    (press,) = actions(parsed, "Long pressed")
    assert press.flags == ["[LONG PRESS]"]
    assert press.details == tap.details
    assert parsed.summary.total_touches == 2
    assert parsed.summary.swipes == 0


def test_touch_matching_no_gesture_is_not_logged():
    parsed = parse_session(session(
        mouse(1000, 7, 10, x=100, y=100),
        mouse(1400, 9, 10, x=100, y=120),
    ))
    assert len(actions(parsed, "Touched")) == 1
    for name in ("Tapped", "Swiped", "Long pressed"):
        assert not actions(parsed, name)
    assert parsed.summary.total_touches == 1


def test_summary_wire_shape():
    out = parse_session(session(click(1000, 10))).to_dict()
    assert out["summary"]["totalClicks"] == 1
    assert "idleTime" in out["summary"]
    assert set(out["behavioralSignals"]) == {"isExploring", "isFrustrated", "isEngaged", "isConfused", "isMobile", "completedGoal"}
    assert out["viewportSize"] == {"width": 1280, "height": 800}
