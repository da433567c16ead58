"""Tests for session-level behavioral signals."""
from __future__ import annotations

from replay_analyzer.replay.behavioral import synthesize
from replay_analyzer.replay.types import SessionSummary


def test_quiet_session_has_no_signals():
    assert not any(synthesize(SessionSummary()).to_dict().values())


def test_exploring_needs_many_scrolls_and_few_clicks():
    assert synthesize(SessionSummary(total_scrolls=21, total_clicks=4)).is_exploring
    assert not synthesize(SessionSummary(total_scrolls=21, total_clicks=5)).is_exploring
    assert not synthesize(SessionSummary(total_scrolls=20)).is_exploring


def test_frustration_sources():
    assert synthesize(SessionSummary(rage_clicks=1)).is_frustrated
    assert synthesize(SessionSummary(dead_clicks=3)).is_frustrated
    assert not synthesize(SessionSummary(dead_clicks=2)).is_frustrated
    assert synthesize(SessionSummary(rapid_scrolls=4)).is_frustrated
    assert synthesize(SessionSummary(network_errors=1)).is_frustrated


def test_engaged_requires_duration():
    busy = dict(total_clicks=4, total_inputs=1)
    assert synthesize(SessionSummary(session_duration_ms=30_001, **busy)).is_engaged
    assert not synthesize(SessionSummary(session_duration_ms=30_000, **busy)).is_engaged


def test_confused_mobile_and_goal():
    assert synthesize(SessionSummary(hesitations=3)).is_confused
    assert synthesize(SessionSummary(scroll_reversals=6)).is_confused
    assert not synthesize(SessionSummary(scroll_reversals=5)).is_confused
    assert synthesize(SessionSummary(orientation_changes=1)).is_mobile
    assert synthesize(SessionSummary(form_submissions=1)).completed_goal
