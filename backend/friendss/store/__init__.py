from friendss.store.base import RoomStore, Subscription
from friendss.store.memory import InMemoryRoomStore

__all__ = ["RoomStore", "Subscription", "InMemoryRoomStore"]
