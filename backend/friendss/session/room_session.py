"""
Client-side state machine for one room.

A ``RoomSession`` loads a room, keeps a local copy of its roster in step with
the store's change feed, and carries out the user's actions (join, draw,
leave, end). The feed is best effort: events can be missed, repeated or
reordered, so every event is applied as an idempotent upsert or removal and a
dropped feed triggers a full reload.

All background work (feed consumers, the host's lifecycle timer, delayed
navigation) runs in tasks owned by the session and cancelled by ``close()``.
"""

import asyncio
import logging
import random
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple
from pydantic import ValidationError as PydanticValidationError
from friendss.config import Settings, settings
from friendss.errors import (
    AlreadyDrawn,
    BlankName,
    DuplicateName,
    JoinFailed,
    NotGuest,
    NotHost,
    PartialDrawFailure,
    RoomNotFound,
    StoreOperationFailed,
    TooFewParticipants,
    ValidationError,
)
from friendss.schemas.change import ChangeEvent, ChangeKind, EntityType
from friendss.schemas.participant import ParticipantResponse
from friendss.schemas.room import RoomResponse
from friendss.services.assignment import assign
from friendss.session.lifecycle import LifecycleTimer, format_remaining
from friendss.store.base import RoomStore, Subscription

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    NOT_FOUND = "not_found"
    AWAITING_IDENTITY = "awaiting_identity"
    JOINED = "joined"
    CLOSED = "closed"


class ViewState(str, Enum):
    LOADING = "loading"
    ROOM_NOT_FOUND = "room_not_found"
    AWAITING_NAME = "awaiting_name"
    AWAITING_DRAW = "awaiting_draw"
    RESULT_READY = "result_ready"
    AWAITING_RESULT = "awaiting_result"
    CLOSED = "closed"


class SessionListener:
    """Presentation hooks. The default only logs."""

    def notice(self, message: str) -> None:
        logger.info(f"Notice: {message}")

    def navigate_away(self) -> None:
        logger.info("Navigating away from room")

    def changed(self, session: "RoomSession") -> None:
        pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def roster_order(participant: ParticipantResponse) -> Tuple[datetime, str]:
    return participant.joined_at, participant.id


class RoomSession:
    def __init__(
        self,
        store: RoomStore,
        room_id: str,
        host_token: Optional[str] = None,
        listener: Optional[SessionListener] = None,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
        config: Settings = settings,
    ):
        self.store = store
        self.room_id = room_id
        self.host_token = host_token
        self.listener = listener or SessionListener()
        self.clock = clock
        self.rng = rng
        self.config = config

        self.state = SessionState.LOADING
        self.room: Optional[RoomResponse] = None
        self.roster: Dict[str, ParticipantResponse] = {}
        self.is_host = False
        self.my_id: Optional[str] = None
        self.joining_as: Optional[str] = None
        self.my_recipient: Optional[str] = None
        self.has_left = False
        self.room_deleted = False
        self.navigated = False
        self.timer: Optional[LifecycleTimer] = None

        self._removed: Set[str] = set()
        self._subscriptions: Set[Subscription] = set()
        self._tasks: Set[asyncio.Task] = set()

    async def __aenter__(self) -> "RoomSession":
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ---------- derived state ---------- #

    @property
    def participants(self) -> List[ParticipantResponse]:
        return sorted(self.roster.values(), key=roster_order)

    @property
    def me(self) -> Optional[ParticipantResponse]:
        return self.roster.get(self.my_id) if self.my_id else None

    @property
    def drawn(self) -> bool:
        return bool(self.room and self.room.drawn)

    @property
    def view_state(self) -> ViewState:
        if self.state == SessionState.LOADING:
            return ViewState.LOADING
        if self.state == SessionState.NOT_FOUND:
            return ViewState.ROOM_NOT_FOUND
        if self.state == SessionState.AWAITING_IDENTITY:
            return ViewState.AWAITING_NAME
        if self.state == SessionState.CLOSED:
            return ViewState.CLOSED
        if not self.drawn:
            return ViewState.AWAITING_DRAW
        return ViewState.RESULT_READY if self.my_recipient else ViewState.AWAITING_RESULT

    @property
    def remaining(self) -> Optional[timedelta]:
        """Time left before expiry, only known to the host."""
        return self.timer.remaining if self.timer else None

    @property
    def countdown(self) -> str:
        return format_remaining(self.remaining)

    @property
    def confirm_exit_required(self) -> bool:
        # Leaving after the draw loses the result, so the UI should ask first
        return self.drawn and self.my_id is not None and not self.has_left

    # ---------- loading and the change feed ---------- #

    async def load(self) -> None:
        room = await self.store.get_room(self.room_id)
        if room is None:
            self.state = SessionState.NOT_FOUND
            self._changed()
            raise RoomNotFound(self.room_id)

        self.room = room
        if self.host_token:
            self.is_host = self.host_token == room.host_token
            if not self.is_host:
                logger.warning(f"Host token does not match room {self.room_id}, continuing as guest")

        await self.subscribe()
        await self._reload_roster()

        if self.is_host:
            host = next((p for p in self.participants if p.is_host), None)
            if host is None:
                logger.warning(f"Room {self.room_id} has no host participant")
            else:
                self._take_identity(host)
            self.state = SessionState.JOINED
            self._start_timer()
        else:
            self.state = SessionState.AWAITING_IDENTITY
        logger.info(f"Loaded room {self.room_id} as {'host' if self.is_host else 'guest'}")
        self._changed()

    async def subscribe(self) -> None:
        """Open the participant and room feeds and start applying their events."""
        for entity_type in (EntityType.PARTICIPANT, EntityType.ROOM):
            subscription = await self.store.subscribe(self.room_id, entity_type)
            self._subscriptions.add(subscription)
            self._spawn(self._consume(entity_type, subscription))

    async def _consume(self, entity_type: EntityType, subscription: Subscription) -> None:
        while True:
            try:
                async for event in subscription:
                    try:
                        self.apply(event)
                    except PydanticValidationError as e:
                        logger.error(f"Skipping malformed {entity_type.value} event for room {self.room_id}: {e}")
                return
            except StoreOperationFailed as e:
                logger.warning(f"{entity_type.value} feed for room {self.room_id} interrupted: {e}")
            finally:
                self._subscriptions.discard(subscription)
                await subscription.close()

            subscription = await self._resubscribe(entity_type)

    async def _resubscribe(self, entity_type: EntityType) -> Subscription:
        while True:
            await asyncio.sleep(self.config.RESUBSCRIBE_DELAY_SECONDS)
            try:
                subscription = await self.store.subscribe(self.room_id, entity_type)
            except StoreOperationFailed as e:
                logger.warning(f"Resubscribing to room {self.room_id} failed: {e}")
                continue

            self._subscriptions.add(subscription)
            try:
                await self._resync(entity_type)
            except StoreOperationFailed as e:
                logger.warning(f"Reloading room {self.room_id} failed: {e}")
            return subscription

    async def _resync(self, entity_type: EntityType) -> None:
        # Anything missed while the feed was down is picked up by a fresh read
        if entity_type == EntityType.PARTICIPANT:
            await self._reload_roster(prune=True)
        else:
            room = await self.store.get_room(self.room_id)
            if room is None:
                self._room_gone()
            else:
                self._apply_room(room)
        self._changed()

    async def _reload_roster(self, prune: bool = False) -> None:
        participants = await self.store.list_participants(self.room_id)
        if prune:
            listed = {p.id for p in participants}
            for participant_id in [pid for pid in self.roster if pid not in listed]:
                self._removed.add(participant_id)
                del self.roster[participant_id]
        for participant in participants:
            self._upsert_participant(participant, announce=False)

    def apply(self, event: ChangeEvent) -> None:
        """Fold one feed event into local state. Safe to call twice with the same event."""
        if event.room_id != self.room_id or self.state == SessionState.CLOSED:
            return

        if event.entity_type == EntityType.PARTICIPANT:
            participant = event.participant()
            if event.kind == ChangeKind.DELETE:
                self._remove_participant(participant)
            else:
                self._upsert_participant(participant, announce=event.kind == ChangeKind.INSERT)
        elif event.kind == ChangeKind.DELETE:
            self._room_gone()
        else:
            self._apply_room(event.room())
        self._changed()

    def _upsert_participant(self, participant: ParticipantResponse, announce: bool) -> None:
        if participant.id in self._removed:
            return
        known = self.roster.get(participant.id)
        if known and known.assigned_recipient and not participant.assigned_recipient:
            # A stale copy arrived late; a recipient is never cleared
            participant = participant.model_copy(update={"assigned_recipient": known.assigned_recipient})
        self.roster[participant.id] = participant

        if known is None and announce and participant.id != self.my_id and not self._is_own_join(participant):
            self.listener.notice(f"{participant.name} joined the room!")
        if participant.id == self.my_id and participant.assigned_recipient:
            self.my_recipient = participant.assigned_recipient

    def _is_own_join(self, participant: ParticipantResponse) -> bool:
        # Our insert can arrive on the feed before the store call returns it
        return (
            self.joining_as is not None
            and not participant.is_host
            and participant.name.casefold() == self.joining_as.casefold()
        )

    def _remove_participant(self, participant: ParticipantResponse) -> None:
        self._removed.add(participant.id)
        known = self.roster.pop(participant.id, None)
        if known and participant.id != self.my_id and not self.room_deleted:
            self.listener.notice(f"{known.name} left the room")

    def _apply_room(self, room: RoomResponse) -> None:
        if self.room and self.room.drawn and not room.drawn:
            room = room.model_copy(update={"drawn": True})
        self.room = room

    def _room_gone(self) -> None:
        if self.room_deleted:
            return
        self.room_deleted = True
        if self.timer:
            self.timer.expired = True
        if not self.is_host:
            self.listener.notice("The host has ended the room")
            self._navigate_after(self.config.EXIT_GRACE_SECONDS)

    # ---------- user actions ---------- #

    async def join(self, name: str) -> ParticipantResponse:
        if self.state != SessionState.AWAITING_IDENTITY:
            raise ValidationError("You are already in this room")

        name = (name or "").strip()
        if not name:
            raise BlankName()
        wanted = name.casefold()
        if any(p.name.casefold() == wanted for p in self.roster.values()):
            raise DuplicateName(name)

        self.joining_as = name
        try:
            participant = await self.store.insert_participant(self.room_id, name, is_host=False)
        except StoreOperationFailed as e:
            logger.error(f"Joining room {self.room_id} as {name} failed: {e}")
            raise JoinFailed(name, e) from e
        finally:
            self.joining_as = None

        self._removed.discard(participant.id)
        self._take_identity(participant)
        self.roster.setdefault(participant.id, participant)
        self.state = SessionState.JOINED
        logger.info(f"Joined room {self.room_id} as {name}")
        self._changed()
        return participant

    async def draw(self) -> None:
        """Assign everyone a secret friend and mark the room drawn.

        One write per participant, then one for the room. A failure stops the
        sequence; writes that already landed stay.
        """
        if not self.is_host:
            raise NotHost("draw")
        if self.drawn:
            raise AlreadyDrawn()

        roster = self.participants
        assigned = [p for p in roster if p.assigned_recipient]
        if assigned:
            # Recipients are written once; a half-finished draw is not redone
            raise AlreadyDrawn(len(assigned))
        if len(roster) < self.config.MIN_PARTICIPANTS:
            raise TooFewParticipants(len(roster), self.config.MIN_PARTICIPANTS)

        assignments = assign(
            roster,
            rng=self.rng,
            min_participants=self.config.MIN_PARTICIPANTS,
            max_attempts=self.config.MAX_DRAW_ATTEMPTS,
        )

        written: List[str] = []
        try:
            for assignment in assignments:
                updated = await self.store.update_participant(
                    assignment.participant_id, assigned_recipient=assignment.recipient_name
                )
                if updated is None:
                    raise StoreOperationFailed(f"Participant {assignment.participant_id} left during the draw")
                if updated.assigned_recipient != assignment.recipient_name:
                    raise StoreOperationFailed(f"Participant {assignment.participant_id} was already assigned")
                written.append(assignment.participant_id)
                self._upsert_participant(updated, announce=False)

            room = await self.store.update_room(self.room_id, drawn=True)
            if room is None:
                raise StoreOperationFailed(f"Room {self.room_id} disappeared during the draw")
        except StoreOperationFailed as e:
            logger.error(f"Draw in room {self.room_id} failed after {len(written)} write(s): {e}")
            if written:
                raise PartialDrawFailure(written, e) from e
            raise

        self._apply_room(room)
        logger.info(f"Draw finished in room {self.room_id} for {len(assignments)} participants")
        self.listener.notice("Draw complete! Everyone has their secret friend!")
        self._changed()

    async def leave(self) -> None:
        if self.is_host:
            raise NotGuest()
        if self.my_id is None or self.has_left:
            return

        await self.store.delete_participant(self.my_id)
        self.has_left = True
        self._removed.add(self.my_id)
        self.roster.pop(self.my_id, None)
        logger.info(f"Left room {self.room_id}")
        self.listener.notice("You left the room")
        self._navigate_after(self.config.LEAVE_GRACE_SECONDS)
        self._changed()

    async def end_room(self) -> None:
        if not self.is_host:
            raise NotHost("end the room")

        await self.store.delete_room(self.room_id)
        self.room_deleted = True
        if self.timer:
            self.timer.expired = True
        logger.info(f"Ended room {self.room_id}")
        self.listener.notice("Room ended")
        self._navigate_after(self.config.LEAVE_GRACE_SECONDS)
        self._changed()

    async def close(self) -> None:
        """Tear the session down and make one best-effort cleanup call."""
        if self.state == SessionState.CLOSED:
            return
        was_joined = self.state in (SessionState.JOINED, SessionState.AWAITING_IDENTITY)
        self.state = SessionState.CLOSED

        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for subscription in list(self._subscriptions):
            await subscription.close()
        self._subscriptions.clear()

        if was_joined:
            await self._cleanup()
        self._changed()

    async def _cleanup(self) -> None:
        try:
            if self.is_host:
                await self.store.delete_room(self.room_id)
            elif self.my_id and not self.has_left:
                await self.store.delete_participant(self.my_id)
        except Exception as e:
            # Teardown never waits on or retries cleanup
            logger.warning(f"Cleanup for room {self.room_id} failed: {e}")

    # ---------- host lifecycle ---------- #

    def _start_timer(self) -> None:
        if self.timer is not None:
            return
        self.timer = LifecycleTimer(
            room=lambda: None if self.room_deleted else self.room,
            on_warning=self._on_expiry_warning,
            on_expired=self._on_expired,
            clock=self.clock,
            config=self.config,
        )
        self._spawn(self.timer.run())

    def _on_expiry_warning(self, remaining: timedelta) -> None:
        self.listener.notice("The room will close soon!")

    async def _on_expired(self) -> None:
        logger.info(f"Room {self.room_id} expired")
        self.room_deleted = True
        try:
            await self.store.delete_room(self.room_id)
        except StoreOperationFailed as e:
            logger.error(f"Deleting expired room {self.room_id} failed: {e}")
        self.listener.notice("Time is up! Room closed.")
        self._navigate_after(self.config.EXIT_GRACE_SECONDS)
        self._changed()

    # ---------- helpers ---------- #

    def _take_identity(self, participant: ParticipantResponse) -> None:
        self.my_id = participant.id
        if participant.assigned_recipient:
            self.my_recipient = participant.assigned_recipient

    def _navigate_after(self, delay: float) -> None:
        if self.navigated:
            return
        self.navigated = True

        async def navigate():
            await asyncio.sleep(delay)
            self.listener.navigate_away()

        self._spawn(navigate())

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _changed(self) -> None:
        self.listener.changed(self)


async def open_room(
    store: RoomStore,
    host_name: str,
    host_token: Optional[str] = None,
) -> Tuple[RoomResponse, ParticipantResponse, str]:
    """Create a room with its host as first participant.

    Returns the room, the host participant and the host token to put in the
    host link.
    """
    host_name = (host_name or "").strip()
    if not host_name:
        raise BlankName()

    host_token = host_token or str(uuid.uuid4())
    room = await store.create_room(host_token)
    host = await store.insert_participant(room.id, host_name, is_host=True)
    logger.info(f"Opened room {room.id} hosted by {host_name}")
    return room, host, host_token
