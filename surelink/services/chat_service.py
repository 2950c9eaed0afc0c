from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from surelink.core.db import SessionLocal
from surelink.core.errors import PersistenceFailure
from surelink.models.message import Message
from surelink.services.validation import sanitize_message, validate_message
from surelink.utils.clock import utcnow


def _start_of_today():
    return utcnow().replace(hour=0, minute=0, second=0, microsecond=0)


class ChatService:
    """
    Durable chat history. Methods are synchronous and are expected to run
    off the event loop (see SessionCoordinator.spawn).
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def get_history(self, limit: int = 50) -> List[Dict[str, Any]]:
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(Message)
                    .order_by(Message.created_at.desc(), Message.id.desc())
                    .limit(limit)
                    .all()
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to load chat history: {e}")
            raise PersistenceFailure("チャット履歴の取得に失敗しました") from e

        # oldest first
        return [
            {
                "username": m.username,
                "text": m.text,
                "created_at": m.created_at.isoformat(),
            }
            for m in reversed(rows)
        ]

    def save_message(self, username: str, text: str) -> Dict[str, Any]:
        try:
            with self._session_factory() as db:
                msg = Message(username=username, text=text)
                db.add(msg)
                db.commit()
                db.refresh(msg)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save message | user={username} error={e}")
            raise PersistenceFailure("メッセージの保存に失敗しました") from e

        logger.info(f"Message saved | user={username} id={msg.id}")
        return {"id": msg.id, "created_at": msg.created_at.isoformat()}

    def process_message(self, payload: Any) -> Dict[str, Any]:
        """Validate, sanitize and store in one go."""
        clean = sanitize_message(validate_message(payload))
        self.save_message(clean["user"], clean["text"])
        return clean

    def delete_old_messages(self, days: int = 30) -> int:
        cutoff = utcnow() - timedelta(days=days)
        try:
            with self._session_factory() as db:
                count = (
                    db.query(Message)
                    .filter(Message.created_at < cutoff)
                    .delete(synchronize_session=False)
                )
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete old messages: {e}")
            raise PersistenceFailure() from e

        logger.info(f"Deleted {count} old messages (older than {days} days)")
        return count

    def get_statistics(self) -> Dict[str, int]:
        today = _start_of_today()
        week = today - timedelta(days=7)
        try:
            with self._session_factory() as db:
                total = _count(db)
                today_count = _count(db, Message.created_at >= today)
                week_count = _count(db, Message.created_at >= week)
        except SQLAlchemyError as e:
            logger.error(f"Failed to get chat statistics: {e}")
            raise PersistenceFailure() from e

        return {"total": total, "today": today_count, "week": week_count}


def _count(db: Session, *criteria) -> int:
    return int(db.query(func.count(Message.id)).filter(*criteria).scalar() or 0)
