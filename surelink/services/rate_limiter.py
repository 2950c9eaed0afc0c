from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Tuple

from loguru import logger

from surelink.core.logging import short_id
from surelink.utils.clock import now_ms


@dataclass(frozen=True)
class RateLimitPolicy:
    max_requests: int
    window_ms: int


class RateLimiter:
    """
    Sliding-window request counter keyed by (connection_id, event_type).

    Timestamps older than the window are pruned lazily on every check and
    by ``sweep``; keys whose window empties out are dropped.
    """

    def __init__(self, clock: Callable[[], float] = now_ms):
        self._clock = clock
        self._requests: Dict[Tuple[str, str], Deque[float]] = {}

    def _prune(self, key: Tuple[str, str], now: float, window_ms: float) -> Deque[float]:
        window = self._requests.get(key)
        if window is None:
            return deque()
        while window and now - window[0] >= window_ms:
            window.popleft()
        if not window:
            del self._requests[key]
        return window

    def allow(self, connection_id: str, event_type: str, max_requests: int, window_ms: float) -> bool:
        key = (connection_id, event_type)
        now = self._clock()
        window = self._prune(key, now, window_ms)

        if len(window) >= max_requests:
            logger.debug(
                f"Rate limit exceeded | id={short_id(connection_id)} event={event_type} requests={len(window)}"
            )
            return False

        window.append(now)
        self._requests[key] = window
        return True

    def remaining(self, connection_id: str, event_type: str, max_requests: int, window_ms: float) -> int:
        window = self._requests.get((connection_id, event_type), ())
        now = self._clock()
        live = sum(1 for ts in window if now - ts < window_ms)
        return max(0, max_requests - live)

    def reset(self, connection_id: str) -> None:
        for key in [k for k in self._requests if k[0] == connection_id]:
            del self._requests[key]

    def sweep(self, window_ms: float) -> int:
        now = self._clock()
        before = len(self._requests)
        for key in list(self._requests):
            self._prune(key, now, window_ms)

        cleaned = before - len(self._requests)
        if cleaned:
            logger.debug(f"Cleaned {cleaned} expired rate limit records")
        return cleaned

    def __len__(self) -> int:
        return len(self._requests)
