from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from surelink.core.db import SessionLocal
from surelink.core.errors import PersistenceFailure
from surelink.models.encounter import Encounter
from surelink.utils.clock import utcnow


@dataclass
class EncounterParty:
    connection_id: str
    nickname: str
    lat: Optional[float] = None
    lng: Optional[float] = None


class EncounterService:
    """Encounter records and per-connection history / statistics."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def save_encounter(self, user1: EncounterParty, user2: EncounterParty, distance: float) -> int:
        try:
            with self._session_factory() as db:
                row = Encounter(
                    user1_socket_id=user1.connection_id,
                    user1_nickname=user1.nickname,
                    user2_socket_id=user2.connection_id,
                    user2_nickname=user2.nickname,
                    distance=distance,
                    latitude=user1.lat,
                    longitude=user1.lng,
                )
                db.add(row)
                db.commit()
                db.refresh(row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save encounter: {e}")
            raise PersistenceFailure("遭遇の保存に失敗しました") from e

        logger.info(
            f"Encounter saved | {user1.nickname} <-> {user2.nickname} distance={round(distance)}m"
        )
        return row.id

    def get_history(self, connection_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(Encounter)
                    .filter(_involves(connection_id))
                    .order_by(Encounter.encountered_at.desc(), Encounter.id.desc())
                    .limit(limit)
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to get encounter history: {e}")
            raise PersistenceFailure("遭遇履歴の取得に失敗しました") from e

        out = []
        for r in rows:
            peer = r.user2_nickname if r.user1_socket_id == connection_id else r.user1_nickname
            has_location = r.latitude is not None and r.longitude is not None
            out.append(
                {
                    "user": peer,
                    "distance": float(r.distance),
                    "location": {"lat": r.latitude, "lng": r.longitude} if has_location else None,
                    "timestamp": r.encountered_at.isoformat(),
                }
            )
        return out

    def get_stats(self, connection_id: str) -> Dict[str, int]:
        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        week = today - timedelta(days=7)
        peer_nickname = case(
            (Encounter.user1_socket_id == connection_id, Encounter.user2_nickname),
            else_=Encounter.user1_nickname,
        )

        try:
            with self._session_factory() as db:
                base = db.query(func.count(Encounter.id)).filter(_involves(connection_id))
                total = base.scalar() or 0
                today_count = base.filter(Encounter.encountered_at >= today).scalar() or 0
                week_count = base.filter(Encounter.encountered_at >= week).scalar() or 0
                unique_users = (
                    db.query(func.count(func.distinct(peer_nickname)))
                    .filter(_involves(connection_id))
                    .scalar()
                    or 0
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to get encounter stats: {e}")
            raise PersistenceFailure("統計の取得に失敗しました") from e

        return {
            "total": int(total),
            "today": int(today_count),
            "week": int(week_count),
            "uniqueUsers": int(unique_users),
        }

    def get_heatmap_data(self, connection_id: str) -> List[Dict[str, Any]]:
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(Encounter.latitude, Encounter.longitude, func.count(Encounter.id).label("intensity"))
                    .filter(
                        _involves(connection_id),
                        Encounter.latitude.isnot(None),
                        Encounter.longitude.isnot(None),
                    )
                    .group_by(Encounter.latitude, Encounter.longitude)
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to get heatmap data: {e}")
            raise PersistenceFailure("ヒートマップの取得に失敗しました") from e

        return [
            {"lat": float(r.latitude), "lng": float(r.longitude), "intensity": int(r.intensity)}
            for r in rows
        ]

    def get_daily_stats(self, connection_id: str, days: int = 30) -> List[Dict[str, Any]]:
        since = utcnow() - timedelta(days=days)
        day = func.date(Encounter.encountered_at)
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(day.label("date"), func.count(Encounter.id).label("count"))
                    .filter(_involves(connection_id), Encounter.encountered_at >= since)
                    .group_by(day)
                    .order_by(day.desc())
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to get daily stats: {e}")
            raise PersistenceFailure("日別統計の取得に失敗しました") from e

        return [{"date": str(r.date), "count": int(r.count)} for r in rows]


def _involves(connection_id: str):
    return or_(
        Encounter.user1_socket_id == connection_id,
        Encounter.user2_socket_id == connection_id,
    )
