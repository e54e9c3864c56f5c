"""
Friendss - secret friend rooms

FastAPI application exposing the room store (rooms, participants) over HTTP
and its change feed over Socket.IO.
"""

import logging
import socketio
import uvicorn
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from friendss.config import settings
from friendss.database import Base, engine
from friendss.api import rooms_router, participants_router, health_router
from friendss.websocket.handler import sio

import friendss.models  # noqa: F401  registers tables on Base

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.APP_NAME} starting")
    yield
    logger.info(f"{settings.APP_NAME} shutting down")


app = FastAPI(
    title=settings.APP_NAME,
    description="Ephemeral secret friend rooms",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(rooms_router)
app.include_router(participants_router)

# Socket.IO handles /socket.io/, everything else falls through to FastAPI
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)


def run():
    uvicorn.run(
        "friendss.main:asgi_app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
