from enum import Enum
from pydantic import BaseModel
from typing import Any, Dict, Union
from friendss.schemas.room import RoomResponse
from friendss.schemas.participant import ParticipantResponse


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class EntityType(str, Enum):
    ROOM = "room"
    PARTICIPANT = "participant"


class ChangeEvent(BaseModel):
    """One committed mutation, as fanned out on the room's change feed.

    ``record`` is the new row for inserts and updates and the last known row
    for deletes.
    """

    kind: ChangeKind
    entity_type: EntityType
    room_id: str
    record: Dict[str, Any]

    @classmethod
    def for_room(cls, kind: ChangeKind, room: RoomResponse) -> "ChangeEvent":
        return cls(kind=kind, entity_type=EntityType.ROOM, room_id=room.id, record=room.model_dump(mode="json"))

    @classmethod
    def for_participant(cls, kind: ChangeKind, participant: ParticipantResponse) -> "ChangeEvent":
        return cls(
            kind=kind,
            entity_type=EntityType.PARTICIPANT,
            room_id=participant.room_id,
            record=participant.model_dump(mode="json"),
        )

    def room(self) -> RoomResponse:
        return RoomResponse.model_validate(self.record)

    def participant(self) -> ParticipantResponse:
        return ParticipantResponse.model_validate(self.record)

    @property
    def subject(self) -> Union[RoomResponse, ParticipantResponse]:
        if self.entity_type == EntityType.ROOM:
            return self.room()
        return self.participant()
