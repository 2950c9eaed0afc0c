from sqlalchemy import Column, Integer, Text, DateTime, Index

from surelink.core.db import Base
from surelink.utils.clock import utcnow


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    # stored sanitized; escaping can lengthen the validated input
    username = Column(Text, nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_messages_created_at", "created_at"),
    )
