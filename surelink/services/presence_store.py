from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

from loguru import logger

from surelink.core.errors import InvalidPositionError
from surelink.core.logging import short_id
from surelink.utils.clock import now_ms
from surelink.utils.geo import Position, distance_meters


@dataclass
class UserPresence:
    connection_id: str
    display_name: str
    position: Position
    last_updated_at: float

    def to_wire(self) -> dict:
        return {
            "lat": self.position.latitude,
            "lng": self.position.longitude,
            "nickname": self.display_name,
        }


@dataclass
class NearbyUser:
    connection_id: str
    display_name: str
    distance_meters: float


class PresenceStore:
    """
    Last known position per live connection.

    The store is the only holder of mutable UserPresence objects; every
    read hands out copies.
    """

    def __init__(self, clock: Callable[[], float] = now_ms):
        self._clock = clock
        self._users: Dict[str, UserPresence] = {}

    def upsert(self, connection_id: str, position: Position, display_name: str) -> UserPresence:
        if not -90 <= position.latitude <= 90:
            raise InvalidPositionError("緯度は-90から90の範囲である必要があります")
        if not -180 <= position.longitude <= 180:
            raise InvalidPositionError("経度は-180から180の範囲である必要があります")

        existing = self._users.get(connection_id)
        if existing is None:
            entry = UserPresence(
                connection_id=connection_id,
                display_name=display_name,
                position=position,
                last_updated_at=self._clock(),
            )
            self._users[connection_id] = entry
        else:
            existing.display_name = display_name
            existing.position = position
            existing.last_updated_at = self._clock()
            entry = existing

        logger.debug(f"Presence updated | id={short_id(connection_id)} nickname={display_name}")
        return replace(entry)

    def remove(self, connection_id: str) -> None:
        entry = self._users.pop(connection_id, None)
        if entry is not None:
            logger.debug(f"Presence removed | id={short_id(connection_id)} nickname={entry.display_name}")

    def get(self, connection_id: str) -> Optional[UserPresence]:
        entry = self._users.get(connection_id)
        return replace(entry) if entry is not None else None

    def snapshot(self) -> Dict[str, UserPresence]:
        return {cid: replace(entry) for cid, entry in self._users.items()}

    def count(self) -> int:
        return len(self._users)

    def evict_stale(self, max_age_ms: float) -> int:
        cutoff = self._clock() - max_age_ms
        stale = [cid for cid, entry in self._users.items() if entry.last_updated_at < cutoff]
        for cid in stale:
            del self._users[cid]

        if stale:
            logger.info(f"Evicted {len(stale)} stale presence entries")
        return len(stale)

    def nearby(self, connection_id: str, radius_meters: float) -> List[NearbyUser]:
        current = self._users.get(connection_id)
        if current is None:
            return []

        out: List[NearbyUser] = []
        for cid, entry in self._users.items():
            if cid == connection_id:
                continue
            d = distance_meters(current.position, entry.position)
            if d <= radius_meters:
                out.append(NearbyUser(connection_id=cid, display_name=entry.display_name, distance_meters=d))

        # nearest first
        out.sort(key=lambda u: u.distance_meters)
        return out
