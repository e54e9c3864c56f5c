from typing import List, Optional


class FriendssError(Exception):
    pass


class RoomNotFound(FriendssError):
    def __init__(self, room_id: str):
        super().__init__(f"Room {room_id} not found")
        self.room_id = room_id


class ValidationError(FriendssError):
    """Bad user input. Recoverable by correcting the input."""


class BlankName(ValidationError):
    def __init__(self):
        super().__init__("Name is required")


class DuplicateName(ValidationError):
    def __init__(self, name: str):
        super().__init__(f"Someone named {name!r} is already in the room")
        self.name = name


class TooFewParticipants(ValidationError):
    def __init__(self, count: int, minimum: int):
        super().__init__(f"At least {minimum} participants are required to draw, got {count}")
        self.count = count
        self.minimum = minimum


class AlreadyDrawn(ValidationError):
    """The room is drawn, or an earlier draw already wrote some recipients."""

    def __init__(self, assigned: int = 0):
        if assigned:
            super().__init__(f"A draw already assigned {assigned} participant(s); assignments cannot be redone")
        else:
            super().__init__("This room has already been drawn")
        self.assigned = assigned


class NotHost(FriendssError):
    def __init__(self, operation: str):
        super().__init__(f"Only the host can {operation}")
        self.operation = operation


class AssignmentFailed(FriendssError):
    def __init__(self, attempts: int):
        super().__init__(f"Could not draw a valid assignment after {attempts} attempts")
        self.attempts = attempts


class StoreOperationFailed(FriendssError):
    pass


class JoinFailed(StoreOperationFailed):
    def __init__(self, name: str, cause: Optional[BaseException] = None):
        super().__init__(f"Could not join the room as {name!r}: {cause}")
        self.name = name


class PartialDrawFailure(StoreOperationFailed):
    """Some draw writes landed before one failed. Nothing is rolled back."""

    def __init__(self, written: List[str], cause: Optional[BaseException] = None):
        super().__init__(f"Draw interrupted after {len(written)} assignment write(s): {cause}")
        self.written = written


class NotGuest(FriendssError):
    def __init__(self):
        super().__init__("The host ends the room instead of leaving it")


class FeedInterrupted(StoreOperationFailed):
    """The change feed dropped. Events may have been missed."""
