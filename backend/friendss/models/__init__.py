from friendss.models.room import Room
from friendss.models.participant import Participant

__all__ = ["Room", "Participant"]
