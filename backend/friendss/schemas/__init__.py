from friendss.schemas.room import RoomCreate, RoomUpdate, RoomResponse
from friendss.schemas.participant import ParticipantCreate, ParticipantUpdate, ParticipantResponse
from friendss.schemas.change import ChangeEvent, ChangeKind, EntityType

__all__ = [
    "RoomCreate",
    "RoomUpdate",
    "RoomResponse",
    "ParticipantCreate",
    "ParticipantUpdate",
    "ParticipantResponse",
    "ChangeEvent",
    "ChangeKind",
    "EntityType",
]
