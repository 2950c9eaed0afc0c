import time
from datetime import datetime, timezone


def now_ms() -> float:
    """Wall-clock epoch milliseconds; the default clock of the in-memory stores."""
    return time.time() * 1000


def utcnow() -> datetime:
    # naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)
