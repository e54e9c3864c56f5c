from friendss.api.rooms import router as rooms_router
from friendss.api.participants import router as participants_router
from friendss.api.health import router as health_router

__all__ = ["rooms_router", "participants_router", "health_router"]
