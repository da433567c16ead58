"""Tests for the signal detectors."""
from __future__ import annotations

from datetime import timedelta

import pandas as pd
import pytest

from replay_analyzer.replay.types import BehavioralSignals, SemanticSession, SessionSummary
from replay_analyzer.scoring.detectors import (
    ActivatedAbandonedDetector,
    ChurnRiskDetector,
    EngagementDecayDetector,
    ExcessiveNavigationDetector,
    FeatureAbandonedDetector,
    FeatureRegressionDetector,
    FunnelDropoffDetector,
    IdleAfterActionDetector,
    PowerUserChurningDetector,
    ReplaySessionDetector,
    ReplaySessionRecord,
    StepLoopDetector,
    StepRetryDetector,
    TimeVarianceDetector,
    analyze_navigation,
    find_loops,
    prepare_events,
)

from replay_builders import analytics_event


def by_user(profiles):
    return {p.distinct_id: p.signals for p in profiles}


def test_prepare_events_validates_columns():
    with pytest.raises(ValueError):
        prepare_events([{"distinct_id": "u1", "event": "x"}])
    frame = prepare_events([])
    assert frame.empty
    assert {"properties", "session_id", "email", "name"} <= set(frame.columns)


def test_step_retry(as_of):
    day = as_of.replace(hour=0) - timedelta(days=1)
    events = [analytics_event("u1", "submit_form", day, minutes=-m) for m in (0, 1, 2)]
    events += [analytics_event("u2", "submit_form", day, minutes=-m) for m in (0, 1)]
    events += [analytics_event("u3", "$pageview", day, minutes=-m) for m in (0, 1, 2)]

    found = by_user(StepRetryDetector(as_of=as_of).detect(events))

    assert list(found) == ["u1"]
    (signal,) = found["u1"]
    assert signal.type == "step_retry"
    assert signal.description == 'Retried "submit_form" 3 times in 2 minutes'
    assert signal.weight == 35
    assert signal.metadata["daysAgo"] == 1


def test_find_loops():
    assert find_loops(["a", "b", "a", "b", "a"]) == [{"stepA": "a", "stepB": "b", "count": 3, "transitions": 6}]
    assert find_loops(["a", "a", "a"]) == []


def test_step_loop(as_of):
    events = [analytics_event("u1", name, as_of, hours=2, minutes=-i) for i, name in enumerate("ababa")]
    (signal,) = by_user(StepLoopDetector(as_of=as_of).detect(events))["u1"]
    assert signal.description == 'Looped between "a" and "b" 3 times'
    assert signal.weight == 55


def test_time_variance(as_of):
    events = []
    for i, seconds in enumerate((100, 110, 120, 130, 1000)):
        uid = f"u{i}"
        events.append(analytics_event(uid, "start", as_of, days=2, seconds=seconds))
        events.append(analytics_event(uid, "finish", as_of, days=2))
    found = by_user(TimeVarianceDetector(["start", "finish"], as_of=as_of).detect(events))
    assert list(found) == ["u4"]
    (signal,) = found["u4"]
    assert signal.weight == 45
    assert signal.metadata["median"] == 120
    assert signal.metadata["daysAgo"] == 2


def test_funnel_dropoff(as_of):
    steps = ["signup", "verify", "activate"]
    events = []
    for uid, reached in (("u1", 3), ("u2", 2), ("u3", 1)):
        events += [analytics_event(uid, step, as_of, days=3, minutes=-i) for i, step in enumerate(steps[:reached])]
    found = by_user(FunnelDropoffDetector(steps, as_of=as_of).detect(events))
    assert set(found) == {"u2", "u3"}
    assert found["u2"][0].description == 'Dropped off at "activate" in "Onboarding" funnel'
    assert found["u3"][0].metadata["stepName"] == "verify"
    assert found["u2"][0].metadata["dropoffRate"] == 0.5


def test_feature_abandoned(as_of):
    events = [
        analytics_event("u1", "export", as_of, days=10),
        analytics_event("u2", "export", as_of, days=10),
        analytics_event("u2", "export", as_of, days=9),
        analytics_event("u3", "export", as_of, days=3),
    ]
    found = by_user(FeatureAbandonedDetector(["export"], as_of=as_of).detect(events))
    assert list(found) == ["u1"]
    (signal,) = found["u1"]
    assert signal.description == 'Used "export" once 10 days ago, never returned'
    assert signal.weight == 25


def test_feature_regression(as_of):
    events = [analytics_event("u1", "export", as_of, days=d) for d in (20, 21, 22, 25)]
    events += [analytics_event("u2", "export", as_of, days=d) for d in (20, 21, 22, 25, 2)]
    found = by_user(FeatureRegressionDetector(["export"], as_of=as_of).detect(events))
    assert list(found) == ["u1"]
    assert found["u1"][0].weight == 37
    assert found["u1"][0].metadata["daysAgo"] == 20


def test_engagement_decay(as_of):
    events = [analytics_event("u1", "view_dashboard", as_of, days=d) for d in range(10, 22)]
    events.append(analytics_event("u1", "view_dashboard", as_of, days=2))
    (signal,) = by_user(EngagementDecayDetector(as_of=as_of).detect(events))["u1"]
    assert signal.metadata["events7d"] == 1
    assert signal.metadata["events30d"] == 13
    assert signal.description.startswith("Activity dropped 67%")


def test_power_user_churning(as_of):
    events = [analytics_event("u1", "edit_doc", as_of, days=20, hours=h) for h in range(50)]
    events.append(analytics_event("u1", "edit_doc", as_of, days=3))
    (signal,) = by_user(PowerUserChurningDetector(as_of=as_of).detect(events))["u1"]
    assert signal.weight == 40
    assert signal.metadata["currentEngagement"] == "churning"
    assert signal.metadata["daysAgo"] == 3


def test_activated_abandoned(as_of):
    events = [
        analytics_event("u1", "signup", as_of, days=20, hours=5),
        analytics_event("u1", "create_project", as_of, days=20),
        analytics_event("u2", "signup", as_of, days=20),
    ]
    found = by_user(ActivatedAbandonedDetector(["signup", "create_project"], as_of=as_of).detect(events))
    assert list(found) == ["u1"]
    assert found["u1"][0].weight == 40
    assert found["u1"][0].metadata["daysInactive"] == 20


def test_churn_risk(as_of):
    events = [
        analytics_event("u1", "login", as_of, days=10, email="u1@example.com"),
        analytics_event("u2", "login", as_of, days=10),
        analytics_event("u2", "login", as_of, days=1),
    ]
    (profile,) = ChurnRiskDetector(as_of=as_of).detect(events)
    assert profile.distinct_id == "u1"
    assert profile.email == "u1@example.com"
    (signal,) = profile.signals
    assert signal.description == "No activity in 10 days (was previously active)"
    assert signal.weight == 30


def test_analyze_navigation():
    nav = analyze_navigation(["/a", "/b", "/a", "/a", "/c"])
    assert nav["backNavigations"] == 1
    assert nav["uniquePages"] == 3
    assert nav["mostRevisitedPage"] == "/a"


def test_excessive_navigation(as_of):
    urls = ["/a", "/b", "/a", "/b", "/a", "/b", "/a"]
    events = [
        analytics_event("u1", "$pageview", as_of, hours=1, minutes=-i, session_id="s1", properties={"$current_url": u})
        for i, u in enumerate(urls)
    ]
    (signal,) = by_user(ExcessiveNavigationDetector(as_of=as_of).detect(pd.DataFrame(events)))["u1"]
    assert signal.description == "5 back navigations, visited 2 pages 7 times"
    assert signal.weight == 35
    assert signal.metadata["sessionId"] == "s1"


def test_idle_after_action(as_of):
    events = [
        analytics_event("u1", "upload_file", as_of, hours=1),
        analytics_event("u1", "view_result", as_of, minutes=50),
        analytics_event("u2", "upload_file", as_of, hours=1),
        analytics_event("u2", "view_result", as_of, hours=1, seconds=-30),
    ]
    found = by_user(IdleAfterActionDetector(["upload_file"], as_of=as_of).detect(events))
    assert list(found) == ["u1"]
    (signal,) = found["u1"]
    assert signal.description == '10 min idle after "upload_file" before "view_result"'
    assert signal.weight == 45


def test_replay_session_detector(as_of):
    def parsed(duration_ms, rage=0, errors=0, confused=False):
        summary = SessionSummary(rage_clicks=rage, console_errors=errors, session_duration_ms=duration_ms)
        return SemanticSession(summary=summary, behavioral_signals=BehavioralSignals(is_confused=confused))

    records = [
        ReplaySessionRecord("u1", parsed(20_000, rage=2, errors=1), recorded_at=as_of - timedelta(days=4)),
        ReplaySessionRecord("u1", parsed(40_000), recorded_at=as_of - timedelta(days=1)),
        ReplaySessionRecord("u2", parsed(300_000, confused=True)),
    ]
    found = by_user(ReplaySessionDetector(as_of=as_of).detect(records))

    u1 = {s.type: s for s in found["u1"]}
    assert set(u1) == {"rage_click", "error_encounter", "technical_victim", "low_engagement"}
    assert u1["rage_click"].description == "2 rage click(s) across 2 session(s)"
    assert u1["error_encounter"].weight == 20
    assert u1["low_engagement"].description == "Average session duration of 30s across 2 session(s)"
    assert u1["low_engagement"].weight == 35
    assert u1["rage_click"].metadata["daysAgo"] == 1
    assert [s.type for s in found["u2"]] == ["confused_browser"]
    assert found["u2"][0].weight is None
