import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from friendss.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Room(Base):
    __tablename__ = "rooms"

    id = Column(String(36), primary_key=True, default=new_id)
    # Capability string handed to the creator in the host link, never verified server-side
    host_token = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    drawn = Column(Boolean, nullable=False, default=False)

    participants = relationship(
        "Participant",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="Participant.joined_at",
    )
