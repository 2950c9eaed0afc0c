from __future__ import annotations

from dataclasses import dataclass
from typing import List

from loguru import logger

from surelink.services.encounter_ledger import DEFAULT_COOLDOWN_MS, EncounterLedger
from surelink.services.presence_store import PresenceStore
from surelink.utils.geo import Position, distance_meters

DEFAULT_THRESHOLD_METERS = 50.0


@dataclass
class EncounterMatch:
    connection_id: str
    display_name: str
    distance_meters: float
    position: Position


def detect(
    current_id: str,
    store: PresenceStore,
    ledger: EncounterLedger,
    threshold_meters: float = DEFAULT_THRESHOLD_METERS,
    cooldown_ms: float = DEFAULT_COOLDOWN_MS,
) -> List[EncounterMatch]:
    """
    Linear scan of every other live position against ``current_id``.

    Every pair that qualifies is recorded in the ledger before returning,
    so the next update from either side stays quiet until the cooldown ends.
    Result order follows the store's insertion order.
    """
    snapshot = store.snapshot()
    current = snapshot.get(current_id)
    if current is None:
        return []

    matches: List[EncounterMatch] = []
    for other_id, other in snapshot.items():
        if other_id == current_id:
            continue
        if other.position is None:
            continue

        d = distance_meters(current.position, other.position)
        if d >= threshold_meters:
            continue
        if not ledger.should_trigger(current_id, other_id, cooldown_ms):
            continue

        ledger.record_trigger(current_id, other_id)
        matches.append(
            EncounterMatch(
                connection_id=other_id,
                display_name=other.display_name,
                distance_meters=d,
                position=other.position,
            )
        )
        logger.info(
            f"Encounter detected | {current.display_name} <-> {other.display_name} distance={round(d)}m"
        )

    return matches
