from fastapi import APIRouter
from datetime import datetime, timezone
from friendss.websocket.handler import ws_handler

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "feed_connections": ws_handler.connection_count,
    }
