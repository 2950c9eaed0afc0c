from sqlalchemy import Column, Integer, String, Text, Float, DateTime, Index

from surelink.core.db import Base
from surelink.utils.clock import utcnow


class Encounter(Base):
    __tablename__ = "encounters"

    id = Column(Integer, primary_key=True, index=True)

    user1_socket_id = Column(String, nullable=False)
    user1_nickname = Column(Text, nullable=False)
    user2_socket_id = Column(String, nullable=False)
    user2_nickname = Column(Text, nullable=False)

    distance = Column(Float, nullable=False)

    # where user1 stood when the encounter fired
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    encountered_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_encounters_user1", "user1_socket_id"),
        Index("idx_encounters_user2", "user2_socket_id"),
        Index("idx_encounters_at", "encountered_at"),
    )
