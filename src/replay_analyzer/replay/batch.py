"""Parse many sessions concurrently; each session is an independent fold."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Mapping

from replay_analyzer.config import get_settings
from replay_analyzer.ingest.decoder import decode_events

from .action_logger import parse_session
from .types import SemanticSession

logger = logging.getLogger(__name__)


def analyze_session(records: Iterable[Any] | None) -> SemanticSession:
    """Decode raw records and parse them into a SemanticSession."""
    return parse_session(decode_events(records))


def analyze_sessions(
    sessions: Mapping[str, Iterable[Any]],
    concurrency: int | None = None,
) -> Dict[str, SemanticSession]:
    """Analyze sessions keyed by session id on a bounded worker pool.

    Results keep the input key order. A session whose parse raises is logged
    and returned as an empty SemanticSession.
    """
    if not sessions:
        return {}
    workers = max(1, concurrency or get_settings().session_concurrency)
    keys: List[str] = list(sessions.keys())
    results: Dict[str, SemanticSession] = {}
    with ThreadPoolExecutor(max_workers=min(workers, len(keys))) as pool:
        futures = {key: pool.submit(analyze_session, sessions[key]) for key in keys}
        for key in keys:
            try:
                results[key] = futures[key].result()
            except Exception as e:
                logger.error(f"session {key} failed to parse: {e}")
                results[key] = SemanticSession()
    return results
