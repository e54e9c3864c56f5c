"""
Room store client for the Friendss API.

CRUD goes through ``httpx.AsyncClient``; the change feed rides a
``socketio.AsyncClient`` per subscription. A feed that disconnects is
reported to its consumer instead of reconnecting silently, so the consumer
knows to reload state before resubscribing.
"""

import logging
from typing import List, Optional
import httpx
import socketio
from pydantic import ValidationError as PydanticValidationError
from socketio.exceptions import ConnectionError as FeedConnectionError, TimeoutError as FeedTimeoutError
from friendss.errors import FeedInterrupted, StoreOperationFailed
from friendss.schemas.change import ChangeEvent, EntityType
from friendss.schemas.participant import ParticipantResponse
from friendss.schemas.room import RoomResponse
from friendss.store.base import RoomStore, Subscription

logger = logging.getLogger(__name__)


class HttpRoomStore(RoomStore):
    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise StoreOperationFailed(f"{method} {url} failed: {e}") from e

    @staticmethod
    def _check(response: httpx.Response) -> httpx.Response:
        if response.is_error:
            raise StoreOperationFailed(
                f"{response.request.method} {response.request.url} returned {response.status_code}: {response.text}"
            )
        return response

    async def create_room(self, host_token: str) -> RoomResponse:
        response = self._check(await self._request("POST", "/rooms", json={"host_token": host_token}))
        return RoomResponse.model_validate(response.json())

    async def get_room(self, room_id: str) -> Optional[RoomResponse]:
        response = await self._request("GET", f"/rooms/{room_id}")
        if response.status_code == 404:
            return None
        return RoomResponse.model_validate(self._check(response).json())

    async def update_room(self, room_id: str, **fields) -> Optional[RoomResponse]:
        response = await self._request("PATCH", f"/rooms/{room_id}", json=fields)
        if response.status_code == 404:
            return None
        return RoomResponse.model_validate(self._check(response).json())

    async def delete_room(self, room_id: str) -> None:
        response = await self._request("DELETE", f"/rooms/{room_id}")
        if response.status_code != 404:
            self._check(response)

    async def list_participants(self, room_id: str) -> List[ParticipantResponse]:
        response = self._check(await self._request("GET", f"/rooms/{room_id}/participants"))
        return [ParticipantResponse.model_validate(item) for item in response.json()]

    async def insert_participant(self, room_id: str, name: str, is_host: bool = False) -> ParticipantResponse:
        response = self._check(
            await self._request("POST", f"/rooms/{room_id}/participants", json={"name": name, "is_host": is_host})
        )
        return ParticipantResponse.model_validate(response.json())

    async def update_participant(self, participant_id: str, **fields) -> Optional[ParticipantResponse]:
        response = await self._request("PATCH", f"/participants/{participant_id}", json=fields)
        if response.status_code == 404:
            return None
        return ParticipantResponse.model_validate(self._check(response).json())

    async def delete_participant(self, participant_id: str) -> None:
        response = await self._request("DELETE", f"/participants/{participant_id}")
        if response.status_code != 404:
            self._check(response)

    async def subscribe(self, room_id: str, entity_type: Optional[EntityType] = None) -> Subscription:
        subscription = FeedSubscription(self.base_url, room_id, entity_type)
        await subscription.open()
        return subscription

    async def close(self) -> None:
        await self.client.aclose()


class FeedSubscription(Subscription):
    def __init__(self, base_url: str, room_id: str, entity_type: Optional[EntityType] = None):
        super().__init__(room_id, entity_type)
        self.base_url = base_url
        self.sio = socketio.AsyncClient(reconnection=False)
        self.sio.on("change", self._on_change)
        self.sio.on("disconnect", self._on_disconnect)

    async def open(self) -> None:
        try:
            await self.sio.connect(self.base_url, transports=["websocket"])
            ack = await self.sio.call("subscribe", {"roomId": self.room_id})
        except (FeedConnectionError, FeedTimeoutError) as e:
            await self.close()
            raise StoreOperationFailed(f"Could not subscribe to room {self.room_id}: {e}") from e
        if not ack or not ack.get("ok"):
            await self.close()
            raise StoreOperationFailed(f"Subscription to room {self.room_id} refused: {ack}")
        logger.info(f"Subscribed to room {self.room_id} ({self.entity_type or 'all'})")

    async def _on_change(self, data) -> None:
        try:
            event = ChangeEvent.model_validate(data)
        except PydanticValidationError as e:
            logger.error(f"Dropping malformed change for room {self.room_id}: {e}")
            return
        self.push(event)

    async def _on_disconnect(self, *args) -> None:
        if not self.closed:
            logger.warning(f"Feed for room {self.room_id} disconnected")
            self.fail(FeedInterrupted(f"Feed for room {self.room_id} disconnected"))

    async def _on_close(self) -> None:
        if self.sio.connected:
            await self.sio.disconnect()
