import logging
from typing import Dict, Iterable, Set
import socketio
from friendss.config import settings
from friendss.schemas.change import ChangeEvent

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins=settings.CORS_ORIGINS if settings.CORS_ORIGINS != ["*"] else '*',
    logger=False,
    engineio_logger=False
)

# sid -> room ids it listens to
subscriptions: Dict[str, Set[str]] = {}


def feed_room(room_id: str) -> str:
    return f"room:{room_id}"


@sio.event
async def connect(sid, environ):
    logger.info(f"Socket.IO client connected: {sid}")
    subscriptions[sid] = set()


@sio.event
async def disconnect(sid):
    logger.info(f"Socket.IO client disconnected: {sid}")
    subscriptions.pop(sid, None)


@sio.event
async def subscribe(sid, data):
    room_id = (data or {}).get('roomId')
    if not room_id:
        return {'ok': False, 'error': 'roomId is required'}

    await sio.enter_room(sid, feed_room(room_id))
    subscriptions.setdefault(sid, set()).add(room_id)
    logger.info(f"Client {sid} subscribed to room {room_id}")
    return {'ok': True}


@sio.event
async def unsubscribe(sid, data):
    room_id = (data or {}).get('roomId')
    if not room_id:
        return {'ok': False, 'error': 'roomId is required'}

    await sio.leave_room(sid, feed_room(room_id))
    subscriptions.get(sid, set()).discard(room_id)
    return {'ok': True}


async def broadcast_change(event: ChangeEvent):
    await sio.emit('change', event.model_dump(mode='json'), room=feed_room(event.room_id))


async def broadcast_changes(events: Iterable[ChangeEvent]):
    for event in events:
        await broadcast_change(event)


class WebSocketHandler:
    def __init__(self):
        self.sio = sio

    async def broadcast_change(self, event: ChangeEvent):
        await broadcast_change(event)

    async def broadcast_changes(self, events: Iterable[ChangeEvent]):
        await broadcast_changes(events)

    @property
    def connection_count(self) -> int:
        return len(subscriptions)


ws_handler = WebSocketHandler()
