import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional
from friendss.config import Settings, settings
from friendss.schemas.room import RoomResponse

logger = logging.getLogger(__name__)


class ExpiryAction(str, Enum):
    NONE = "none"
    WARN = "warn"
    EXPIRE = "expire"


def time_limit(drawn: bool, config: Settings = settings) -> timedelta:
    seconds = config.DRAWN_ROOM_TTL_SECONDS if drawn else config.ROOM_TTL_SECONDS
    return timedelta(seconds=seconds)


def remaining_time(room: RoomResponse, now: datetime, config: Settings = settings) -> timedelta:
    """Time left before the room expires, never negative.

    Both budgets count from ``room.created_at``: drawing a room does not
    restart the clock, it only shortens the budget.
    """
    left = time_limit(room.drawn, config) - (now - room.created_at)
    return max(left, timedelta(0))


class LifecycleTimer:
    """Host-side countdown that deletes the room when its time runs out.

    ``check`` is the pure decision for one tick; ``run`` drives it once per
    ``TIMER_TICK_SECONDS`` until the room expires or the task is cancelled.
    """

    def __init__(
        self,
        room: Callable[[], Optional[RoomResponse]],
        on_warning: Callable[[timedelta], None],
        on_expired: Callable[[], Awaitable[None]],
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        config: Settings = settings,
    ):
        self._room = room
        self._on_warning = on_warning
        self._on_expired = on_expired
        self.clock = clock
        self.config = config
        self.remaining: Optional[timedelta] = None
        self.warned = False
        self.expired = False

    def check(self, now: Optional[datetime] = None) -> ExpiryAction:
        room = self._room()
        if room is None or self.expired:
            return ExpiryAction.NONE

        self.remaining = remaining_time(room, now or self.clock(), self.config)
        if self.remaining == timedelta(0):
            self.expired = True
            return ExpiryAction.EXPIRE
        if self.remaining < timedelta(seconds=self.config.EXPIRY_WARNING_SECONDS) and not self.warned:
            self.warned = True
            return ExpiryAction.WARN
        return ExpiryAction.NONE

    async def tick(self, now: Optional[datetime] = None) -> ExpiryAction:
        action = self.check(now)
        if action == ExpiryAction.WARN:
            self._on_warning(self.remaining)
        elif action == ExpiryAction.EXPIRE:
            await self._on_expired()
        return action

    async def run(self) -> None:
        while not self.expired:
            await self.tick()
            if self.expired:
                break
            await asyncio.sleep(self.config.TIMER_TICK_SECONDS)
        logger.info("Lifecycle timer finished")


def format_remaining(remaining: Optional[timedelta]) -> str:
    """Countdown text: ``M:SS`` with a minute or more left, else ``Ns``."""
    if not remaining:
        return ""
    seconds = int(remaining.total_seconds())
    minutes, rest = divmod(seconds, 60)
    if minutes > 0:
        return f"{minutes}:{rest:02d}"
    return f"{seconds}s"
