"""Raw replay record decoding."""

from .decoder import decode_events, decode_payload, expand_nested, DECODE_STRATEGIES

__all__ = ["decode_events", "decode_payload", "expand_nested", "DECODE_STRATEGIES"]
