import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Union
from friendss.errors import StoreOperationFailed
from friendss.schemas.change import ChangeEvent, EntityType
from friendss.schemas.participant import ParticipantResponse
from friendss.schemas.room import RoomResponse

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """Change events for one room, optionally narrowed to one entity type.

    Events are buffered from the moment the subscription exists, so nothing
    committed after ``subscribe()`` returns can be lost to a slow consumer.
    Iteration ends only after ``close()``; a dropped feed surfaces as a
    ``StoreOperationFailed`` raised from the iterator.
    """

    def __init__(self, room_id: str, entity_type: Optional[EntityType] = None):
        self.room_id = room_id
        self.entity_type = entity_type
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def matches(self, event: ChangeEvent) -> bool:
        if event.room_id != self.room_id:
            return False
        return self.entity_type is None or event.entity_type == self.entity_type

    def push(self, event: ChangeEvent) -> None:
        if not self.closed and self.matches(event):
            self._queue.put_nowait(event)

    def fail(self, error: StoreOperationFailed) -> None:
        if not self.closed:
            self._queue.put_nowait(error)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSED)
        await self._on_close()

    async def _on_close(self) -> None:
        pass

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        item: Union[ChangeEvent, StoreOperationFailed, object] = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, StoreOperationFailed):
            raise item
        return item


class RoomStore(ABC):
    """Keyed storage for rooms and participants plus a per-room change feed.

    Single-record writes are atomic; there are no cross-record transactions
    and no server-side expiry. Deleting an absent record is a no-op and
    deleting a room removes its participants.
    """

    @abstractmethod
    async def create_room(self, host_token: str) -> RoomResponse: ...

    @abstractmethod
    async def get_room(self, room_id: str) -> Optional[RoomResponse]: ...

    @abstractmethod
    async def update_room(self, room_id: str, **fields) -> Optional[RoomResponse]: ...

    @abstractmethod
    async def delete_room(self, room_id: str) -> None: ...

    @abstractmethod
    async def list_participants(self, room_id: str) -> List[ParticipantResponse]:
        """Roster of a room, oldest member first."""

    @abstractmethod
    async def insert_participant(self, room_id: str, name: str, is_host: bool = False) -> ParticipantResponse: ...

    @abstractmethod
    async def update_participant(self, participant_id: str, **fields) -> Optional[ParticipantResponse]: ...

    @abstractmethod
    async def delete_participant(self, participant_id: str) -> None: ...

    @abstractmethod
    async def subscribe(self, room_id: str, entity_type: Optional[EntityType] = None) -> Subscription: ...

    async def close(self) -> None:
        pass
