from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from friendss.database import Base
from friendss.models.room import new_id, utcnow


class Participant(Base):
    __tablename__ = "participants"

    id = Column(String(36), primary_key=True, default=new_id)
    room_id = Column(String(36), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    is_host = Column(Boolean, nullable=False, default=False)
    assigned_recipient = Column(String(100), nullable=True)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    room = relationship("Room", back_populates="participants")

    __table_args__ = (
        Index("idx_participants_room_joined", "room_id", "joined_at"),
    )
