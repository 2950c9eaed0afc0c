from __future__ import annotations

from typing import Callable, Dict, Tuple

from loguru import logger

from surelink.utils.clock import now_ms

DEFAULT_COOLDOWN_MS = 300_000


def pair_key(a: str, b: str) -> Tuple[str, str]:
    low, high = (a, b) if a < b else (b, a)
    return low, high


class EncounterLedger:
    """
    Remembers when each unordered pair of connections last triggered an
    encounter, so a pair that stays close is not notified again until the
    cooldown has passed.
    """

    def __init__(self, clock: Callable[[], float] = now_ms):
        self._clock = clock
        self._last_triggered: Dict[Tuple[str, str], float] = {}

    def should_trigger(self, id_a: str, id_b: str, cooldown_ms: float = DEFAULT_COOLDOWN_MS) -> bool:
        last = self._last_triggered.get(pair_key(id_a, id_b))
        if last is None:
            return True
        return self._clock() - last >= cooldown_ms

    def record_trigger(self, id_a: str, id_b: str) -> None:
        self._last_triggered[pair_key(id_a, id_b)] = self._clock()

    def last_triggered_at(self, id_a: str, id_b: str) -> float | None:
        return self._last_triggered.get(pair_key(id_a, id_b))

    def sweep(self, cooldown_ms: float = DEFAULT_COOLDOWN_MS) -> int:
        now = self._clock()
        expired = [k for k, ts in self._last_triggered.items() if now - ts > cooldown_ms]
        for k in expired:
            del self._last_triggered[k]

        if expired:
            logger.debug(f"Cleaned {len(expired)} old encounter records")
        return len(expired)

    def __len__(self) -> int:
        return len(self._last_triggered)
