import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional
from friendss.errors import FeedInterrupted, StoreOperationFailed
from friendss.schemas.change import ChangeEvent, ChangeKind, EntityType
from friendss.schemas.participant import ParticipantResponse
from friendss.schemas.room import RoomResponse
from friendss.store.base import RoomStore, Subscription

logger = logging.getLogger(__name__)

ROOM_FIELDS = {"drawn"}
PARTICIPANT_FIELDS = {"assigned_recipient"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRoomStore(RoomStore):
    """Process-local store with the same contract as the hosted one.

    Every session sharing an instance sees the others' writes through
    ``subscribe``, which makes it the backing store for tests and demos.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self.rooms: Dict[str, RoomResponse] = {}
        self.participants: Dict[str, ParticipantResponse] = {}
        self._order: Dict[str, int] = {}
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._sequence = 0

    async def create_room(self, host_token: str) -> RoomResponse:
        room = RoomResponse(id=str(uuid.uuid4()), host_token=host_token, created_at=self.clock(), drawn=False)
        self.rooms[room.id] = room
        logger.info(f"Created room: {room.id}")
        self._publish(ChangeEvent.for_room(ChangeKind.INSERT, room))
        return room.model_copy()

    async def get_room(self, room_id: str) -> Optional[RoomResponse]:
        room = self.rooms.get(room_id)
        return room.model_copy() if room else None

    async def update_room(self, room_id: str, **fields) -> Optional[RoomResponse]:
        self._check_fields(fields, ROOM_FIELDS)
        room = self.rooms.get(room_id)
        if not room:
            return None
        if room.drawn:
            fields.pop("drawn", None)
        room = room.model_copy(update=fields)
        self.rooms[room_id] = room
        self._publish(ChangeEvent.for_room(ChangeKind.UPDATE, room))
        return room.model_copy()

    async def delete_room(self, room_id: str) -> None:
        room = self.rooms.pop(room_id, None)
        if not room:
            return
        logger.info(f"Deleted room: {room_id}")
        self._publish(ChangeEvent.for_room(ChangeKind.DELETE, room))
        for participant in self._roster(room_id):
            del self.participants[participant.id]
            self._order.pop(participant.id, None)
            self._publish(ChangeEvent.for_participant(ChangeKind.DELETE, participant))

    async def list_participants(self, room_id: str) -> List[ParticipantResponse]:
        return [p.model_copy() for p in self._roster(room_id)]

    async def insert_participant(self, room_id: str, name: str, is_host: bool = False) -> ParticipantResponse:
        if room_id not in self.rooms:
            raise StoreOperationFailed(f"Room {room_id} does not exist")

        participant = ParticipantResponse(
            id=str(uuid.uuid4()),
            room_id=room_id,
            name=name,
            is_host=is_host,
            joined_at=self.clock(),
        )
        self._sequence += 1
        self._order[participant.id] = self._sequence
        self.participants[participant.id] = participant
        logger.info(f"Participant {name} joined room {room_id} (host={is_host})")
        self._publish(ChangeEvent.for_participant(ChangeKind.INSERT, participant))
        return participant.model_copy()

    async def update_participant(self, participant_id: str, **fields) -> Optional[ParticipantResponse]:
        self._check_fields(fields, PARTICIPANT_FIELDS)
        participant = self.participants.get(participant_id)
        if not participant:
            return None
        if participant.assigned_recipient or fields.get("assigned_recipient") is None:
            fields.pop("assigned_recipient", None)
        participant = participant.model_copy(update=fields)
        self.participants[participant_id] = participant
        self._publish(ChangeEvent.for_participant(ChangeKind.UPDATE, participant))
        return participant.model_copy()

    async def delete_participant(self, participant_id: str) -> None:
        participant = self.participants.pop(participant_id, None)
        if not participant:
            return
        self._order.pop(participant_id, None)
        logger.info(f"Participant {participant.name} left room {participant.room_id}")
        self._publish(ChangeEvent.for_participant(ChangeKind.DELETE, participant))

    async def subscribe(self, room_id: str, entity_type: Optional[EntityType] = None) -> Subscription:
        subscription = _LocalSubscription(self, room_id, entity_type)
        self._subscriptions.setdefault(room_id, []).append(subscription)
        return subscription

    def interrupt(self, room_id: str) -> None:
        """Drop every feed of a room, as a lost connection would."""
        for subscription in list(self._subscriptions.get(room_id, [])):
            subscription.fail(FeedInterrupted(f"Feed for room {room_id} dropped"))

    def subscriber_count(self, room_id: str) -> int:
        return len(self._subscriptions.get(room_id, []))

    def _unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscriptions.get(subscription.room_id, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscriptions.pop(subscription.room_id, None)

    def _publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions.get(event.room_id, [])):
            subscription.push(event)

    def _roster(self, room_id: str) -> List[ParticipantResponse]:
        roster = [p for p in self.participants.values() if p.room_id == room_id]
        return sorted(roster, key=lambda p: (p.joined_at, self._order.get(p.id, 0)))

    @staticmethod
    def _check_fields(fields: dict, allowed: set) -> None:
        unknown = set(fields) - allowed
        if unknown:
            raise StoreOperationFailed(f"Unknown field(s): {', '.join(sorted(unknown))}")


class _LocalSubscription(Subscription):
    def __init__(self, store: InMemoryRoomStore, room_id: str, entity_type: Optional[EntityType]):
        super().__init__(room_id, entity_type)
        self._store = store

    async def _on_close(self) -> None:
        self._store._unsubscribe(self)
