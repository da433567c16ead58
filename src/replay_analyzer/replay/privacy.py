import re

REDACTED = "[REDACTED]"

# email addresses and runs of 13 or more digits (card-like numbers, optional space/dash separators)
PII_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}|(?:\d[ -]*?){13,}")


def redact(text) -> str:
    if not text:
        return ""
    return PII_PATTERN.sub(REDACTED, str(text))
