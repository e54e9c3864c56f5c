from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
from friendss.models.room import Room
from friendss.models.participant import Participant
from friendss.schemas.room import RoomCreate, RoomUpdate, RoomResponse
from friendss.schemas.participant import ParticipantUpdate, ParticipantResponse
import logging

logger = logging.getLogger(__name__)


class RoomService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, room_id: str) -> Optional[Room]:
        return self.db.query(Room).filter(Room.id == room_id).first()

    def create(self, room_data: RoomCreate) -> Room:
        room = Room(**room_data.model_dump())
        self.db.add(room)
        self.db.commit()
        self.db.refresh(room)
        logger.info(f"Created room: {room.id}")
        return room

    def update(self, room_id: str, room_data: RoomUpdate) -> Optional[Room]:
        room = self.get_by_id(room_id)
        if not room:
            return None

        update_data = room_data.model_dump(exclude_unset=True)
        if update_data.get("drawn") is False and room.drawn:
            # A drawn room never goes back to undrawn
            update_data.pop("drawn")
        for field, value in update_data.items():
            setattr(room, field, value)

        self.db.commit()
        self.db.refresh(room)
        logger.info(f"Updated room: {room.id} (drawn={room.drawn})")
        return room

    def delete(self, room_id: str) -> Optional[Tuple[RoomResponse, List[ParticipantResponse]]]:
        """Delete a room and its roster, returning snapshots of what was removed."""
        room = self.get_by_id(room_id)
        if not room:
            return None

        snapshot = RoomResponse.model_validate(room)
        removed = [ParticipantResponse.model_validate(p) for p in room.participants]
        self.db.delete(room)
        self.db.commit()
        logger.info(f"Deleted room: {room_id} with {len(removed)} participant(s)")
        return snapshot, removed


class ParticipantService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, participant_id: str) -> Optional[Participant]:
        return self.db.query(Participant).filter(Participant.id == participant_id).first()

    def list_by_room(self, room_id: str) -> List[Participant]:
        return (
            self.db.query(Participant)
            .filter(Participant.room_id == room_id)
            .order_by(Participant.joined_at.asc(), Participant.id.asc())
            .all()
        )

    def create(self, room_id: str, name: str, is_host: bool = False) -> Participant:
        participant = Participant(room_id=room_id, name=name, is_host=is_host)
        self.db.add(participant)
        self.db.commit()
        self.db.refresh(participant)
        logger.info(f"Participant {participant.name} joined room {room_id} (host={is_host})")
        return participant

    def update(self, participant_id: str, participant_data: ParticipantUpdate) -> Optional[Participant]:
        participant = self.get_by_id(participant_id)
        if not participant:
            return None

        update_data = participant_data.model_dump(exclude_unset=True)
        # A recipient is written once and never cleared
        if participant.assigned_recipient or update_data.get("assigned_recipient") is None:
            update_data.pop("assigned_recipient", None)
        for field, value in update_data.items():
            setattr(participant, field, value)

        self.db.commit()
        self.db.refresh(participant)
        return participant

    def delete(self, participant_id: str) -> Optional[ParticipantResponse]:
        participant = self.get_by_id(participant_id)
        if not participant:
            return None

        snapshot = ParticipantResponse.model_validate(participant)
        self.db.delete(participant)
        self.db.commit()
        logger.info(f"Participant {snapshot.name} left room {snapshot.room_id}")
        return snapshot
