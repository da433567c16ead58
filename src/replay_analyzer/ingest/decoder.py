"""
Replay event decoder.

Turns heterogeneous raw records (plain events, snapshot lines shaped as
``[windowId, event(s)]`` or ``{"window_id": ..., "data": ...}``, and gzip
blobs carried as base64 or binary strings) into a flat, order-preserving
list of NormalizedEvent. Decoding is best effort per record: anything that
cannot be interpreted is counted and skipped.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import json
import logging
import math
import zlib
from typing import Any, Callable, Iterable, List, Optional, Tuple

from replay_analyzer.metrics import EVENTS_DECODED, EVENTS_DROPPED
from replay_analyzer.replay.types import NormalizedEvent

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_ID = "default"
GZIP_MAGIC = b"\x1f\x8b"

DecodeOutcome = Tuple[bool, Any]


def _json_strategy(value: str | bytes) -> DecodeOutcome:
    try:
        return True, json.loads(value)
    except (ValueError, TypeError):
        return False, None


def _gunzip_json(raw: bytes) -> DecodeOutcome:
    if not raw.startswith(GZIP_MAGIC):
        return False, None
    try:
        return True, json.loads(gzip.decompress(raw).decode("utf-8"))
    except (OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError):
        return False, None


def _base64_gzip_strategy(value: str | bytes) -> DecodeOutcome:
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return False, None
    return _gunzip_json(raw)


def _binary_gzip_strategy(value: str | bytes) -> DecodeOutcome:
    if isinstance(value, bytes):
        return _gunzip_json(value)
    try:
        raw = value.encode("latin-1")
    except UnicodeEncodeError:
        return False, None
    return _gunzip_json(raw)


# Tried in order; the first strategy that succeeds wins.
DECODE_STRATEGIES: List[Tuple[str, Callable[[str | bytes], DecodeOutcome]]] = [
    ("json", _json_strategy),
    ("base64_gzip", _base64_gzip_strategy),
    ("binary_gzip", _binary_gzip_strategy),
]

# Below the top level only the compressed strategies apply.
NESTED_STRATEGIES = DECODE_STRATEGIES[1:]


def _run_strategies(value: str | bytes, strategies) -> DecodeOutcome:
    for name, strategy in strategies:
        ok, decoded = strategy(value)
        if ok:
            logger.debug(f"payload decoded via {name}")
            return True, decoded
    return False, None


def expand_nested(obj: Any) -> Any:
    """Recursively replace compressed string fields with their decoded content."""
    if isinstance(obj, (str, bytes)):
        if len(obj) < 2:
            return obj
        ok, decoded = _run_strategies(obj, NESTED_STRATEGIES)
        return expand_nested(decoded) if ok else obj
    if isinstance(obj, list):
        return [expand_nested(item) for item in obj]
    if isinstance(obj, dict):
        return {k: expand_nested(v) for k, v in obj.items()}
    return obj


def decode_payload(value: Any) -> DecodeOutcome:
    """Decode one payload; structured values pass through, strings go through the strategy list."""
    if isinstance(value, (str, bytes)):
        ok, decoded = _run_strategies(value, DECODE_STRATEGIES)
        if not ok:
            return False, None
        return True, expand_nested(decoded)
    return True, expand_nested(value)


def _resolve_line(item: Any) -> Tuple[Optional[str], Any]:
    """Split a snapshot line into (explicit window id or None, event payload)."""
    line = item
    if isinstance(item, (str, bytes)):
        ok, line = decode_payload(item)
        if not ok:
            return None, None
    if isinstance(line, list):
        if line and all(isinstance(e, dict) for e in line):
            return None, line
        if len(line) < 2:
            return None, None
        window_id = line[0] if isinstance(line[0], str) and line[0] else None
        return window_id, line[1]
    if isinstance(line, dict):
        if "type" in line:
            window_id = line.get("windowId")
            return (window_id if isinstance(window_id, str) and window_id else None), line
        if line.get("data"):
            window_id = line.get("window_id") or line.get("windowId")
            return (window_id if isinstance(window_id, str) else None), line["data"]
    return None, None


def _decode_event(evt: Any) -> List[dict]:
    """Decode one event (possibly an encoded string or a compressed ``data`` blob)."""
    if isinstance(evt, (str, bytes)):
        ok, evt = decode_payload(evt)
        if not ok:
            return []
        if isinstance(evt, list):
            return [e for item in evt for e in _decode_event(item)]
    if not isinstance(evt, dict):
        return []
    data = evt.get("data")
    if isinstance(data, (str, bytes)):
        ok, decoded = decode_payload(data)
        if not ok:
            return []
        data = decoded
    else:
        data = expand_nested(data)
    out = {k: v for k, v in evt.items() if k != "cv"}
    out["data"] = data
    return [out]


def _to_normalized(evt: dict, window_id: str) -> Optional[NormalizedEvent]:
    kind = evt.get("type")
    ts = evt.get("timestamp")
    if isinstance(kind, bool) or not isinstance(kind, int):
        return None
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        return None
    if isinstance(ts, float) and not math.isfinite(ts):
        return None
    return NormalizedEvent(kind=kind, timestamp=int(ts), window_id=window_id, data=evt.get("data"))


def decode_events(records: Iterable[Any] | None) -> List[NormalizedEvent]:
    """Decode raw replay records into NormalizedEvents, preserving input order."""
    events: List[NormalizedEvent] = []
    if not records:
        return events
    last_window_id: Optional[str] = None
    dropped = 0
    for item in records:
        if item is None:
            continue
        window_id, payload = _resolve_line(item)
        if payload is None:
            dropped += 1
            EVENTS_DROPPED.labels("unresolved_line").inc()
            continue
        if window_id:
            last_window_id = window_id
        else:
            window_id = last_window_id or DEFAULT_WINDOW_ID
        for raw_evt in payload if isinstance(payload, list) else [payload]:
            decoded = _decode_event(raw_evt)
            if not decoded:
                dropped += 1
                EVENTS_DROPPED.labels("undecodable").inc()
                continue
            for evt in decoded:
                normalized = _to_normalized(evt, window_id)
                if normalized is None:
                    dropped += 1
                    EVENTS_DROPPED.labels("missing_fields").inc()
                    continue
                events.append(normalized)
    EVENTS_DECODED.inc(len(events))
    if dropped:
        logger.debug(f"decoder dropped {dropped} record(s), kept {len(events)}")
    return events
