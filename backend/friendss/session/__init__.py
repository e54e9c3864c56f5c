from friendss.session.room_session import RoomSession, SessionListener, SessionState, ViewState, open_room
from friendss.session.lifecycle import LifecycleTimer, ExpiryAction, remaining_time, format_remaining
from friendss.session.links import room_url, host_url, parse_room_url

__all__ = [
    "RoomSession",
    "SessionListener",
    "SessionState",
    "ViewState",
    "open_room",
    "LifecycleTimer",
    "ExpiryAction",
    "remaining_time",
    "format_remaining",
    "room_url",
    "host_url",
    "parse_room_url",
]
