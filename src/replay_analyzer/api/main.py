from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict, Field

from replay_analyzer import __version__
from replay_analyzer.config import get_settings
from replay_analyzer.metrics import VALIDATION_FAILURES, registry
from replay_analyzer.replay.batch import analyze_session, analyze_sessions
from replay_analyzer.scoring.priority import PriorityScoringEngine
from replay_analyzer.validation.events import validate_event

logger = logging.getLogger(__name__)

app = FastAPI(title="Replay Analyzer API", version=__version__)


class ParseSessionIn(BaseModel):
    events: List[Any] = Field(default_factory=list)
    # strict: only plain event objects with a known kind are parsed
    strict: bool = False


class ParseBatchIn(BaseModel):
    sessions: Dict[str, List[Any]] = Field(default_factory=dict)
    concurrency: Optional[int] = Field(None, ge=1, le=64)


class PriorityQueueIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sources: List[List[Dict[str, Any]]] = Field(default_factory=list)
    limit: Optional[int] = Field(None, ge=0)
    min_score: Optional[float] = Field(None, alias="minScore", ge=0, le=100)


def _guard_size(events: List[Any], label: str = "session"):
    limit = get_settings().max_events_per_session
    if len(events) > limit:
        raise HTTPException(status_code=413, detail=f"{label} has {len(events)} events (max {limit})")


def _strict_filter(events: List[Any]) -> tuple[List[Any], int]:
    kept: List[Any] = []
    rejected = 0
    for evt in events:
        ok, reason = validate_event(evt)
        if not ok:
            rejected += 1
            VALIDATION_FAILURES.labels(reason=(reason or "invalid").split(":")[0]).inc()
            continue
        kept.append(evt)
    return kept, rejected


@app.on_event("startup")
def startup():
    settings = get_settings()
    pkg_logger = logging.getLogger("replay_analyzer")
    if not pkg_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        pkg_logger.addHandler(handler)
    pkg_logger.setLevel(settings.log_level.upper())
    logger.info(f"replay analyzer API starting ({settings.environment})")


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}


@app.get("/metrics")
def metrics():
    data = generate_latest(registry)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@app.post("/sessions/parse")
def parse_session_endpoint(body: ParseSessionIn):
    _guard_size(body.events)
    events, rejected = _strict_filter(body.events) if body.strict else (body.events, 0)
    if rejected:
        logger.info(f"strict parse rejected {rejected} of {len(body.events)} events")
    start = time.time()
    session = analyze_session(events)
    logger.debug(f"parsed {len(events)} records into {len(session.logs)} log entries in {time.time() - start:.3f}s")
    out = session.to_dict()
    if body.strict:
        out["rejected"] = rejected
    return out


@app.post("/sessions/parse-batch")
def parse_batch_endpoint(body: ParseBatchIn):
    for session_id, events in body.sessions.items():
        _guard_size(events, label=f"session {session_id}")
    results = analyze_sessions(body.sessions, concurrency=body.concurrency)
    return {"sessions": {sid: s.to_dict() for sid, s in results.items()}}


@app.post("/priority-queue")
def priority_queue_endpoint(body: PriorityQueueIn):
    settings = get_settings()
    engine = PriorityScoringEngine.from_settings(settings)
    try:
        entries = engine.build_queue(
            *body.sources,
            limit=settings.priority_queue_limit if body.limit is None else body.limit,
            min_score=settings.priority_min_score if body.min_score is None else body.min_score,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"invalid profile: {e}")
    return {"entries": [e.to_dict() for e in entries], "count": len(entries)}
