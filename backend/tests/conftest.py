import asyncio
from datetime import datetime, timedelta, timezone
from typing import List
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from friendss.config import Settings
from friendss.database import Base, get_db
from friendss.main import app
from friendss.session.room_session import RoomSession, SessionListener, open_room
from friendss.store.memory import InMemoryRoomStore
from friendss.websocket import handler

import friendss.models  # noqa: F401


class FakeClock:
    """Manually driven clock that creeps forward a millisecond per reading,
    so records created back to back still sort in creation order."""

    def __init__(self, start: datetime, step: timedelta = timedelta(milliseconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.now
        self.now += self.step
        return now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingListener(SessionListener):
    def __init__(self):
        self.notices: List[str] = []
        self.navigations = 0

    def notice(self, message: str) -> None:
        self.notices.append(message)

    def navigate_away(self) -> None:
        self.navigations += 1


async def settle(rounds: int = 20) -> None:
    """Let feed consumers and scheduled navigation run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 12, 20, 18, 0, tzinfo=timezone.utc))


@pytest.fixture
def config():
    return Settings(
        EXIT_GRACE_SECONDS=0,
        LEAVE_GRACE_SECONDS=0,
        RESUBSCRIBE_DELAY_SECONDS=0,
        TIMER_TICK_SECONDS=3600,
    )


@pytest.fixture
def store(clock):
    return InMemoryRoomStore(clock=clock)


class RoomHarness:
    """Opens a room and connects host and guest sessions to one store."""

    def __init__(self, store, clock, config):
        self.store = store
        self.clock = clock
        self.config = config
        self.sessions: List[RoomSession] = []
        self.room = None
        self.host_token = None

    def session(self, host_token=None) -> RoomSession:
        session = RoomSession(
            self.store,
            self.room.id,
            host_token=host_token,
            listener=RecordingListener(),
            clock=self.clock,
            config=self.config,
        )
        self.sessions.append(session)
        return session

    async def open(self, host_name: str = "H") -> RoomSession:
        self.room, _, self.host_token = await open_room(self.store, host_name)
        host = self.session(self.host_token)
        await host.load()
        return host

    async def guest(self, name: str) -> RoomSession:
        guest = self.session()
        await guest.load()
        await guest.join(name)
        return guest

    async def close(self) -> None:
        for session in self.sessions:
            await session.close()


@pytest.fixture
async def harness(store, clock, config):
    harness = RoomHarness(store, clock, config)
    yield harness
    await harness.close()


@pytest.fixture
def db_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def broadcasts(monkeypatch):
    sent = []

    async def record(event):
        sent.append(event)

    monkeypatch.setattr(handler, "broadcast_change", record)
    return sent


@pytest.fixture
def api(db_session_factory, broadcasts):
    def override_get_db():
        db = db_session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(api):
    return TestClient(api)
