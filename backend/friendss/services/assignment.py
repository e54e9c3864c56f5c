import random
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence
from friendss.config import settings
from friendss.errors import AssignmentFailed, TooFewParticipants


class Drawable(Protocol):
    id: str
    name: str


@dataclass(frozen=True)
class Assignment:
    participant_id: str
    recipient_name: str


def is_derangement(names: Sequence[str], shuffled: Sequence[str]) -> bool:
    return all(original != drawn for original, drawn in zip(names, shuffled))


def assign(
    participants: Sequence[Drawable],
    rng: Optional[random.Random] = None,
    min_participants: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> List[Assignment]:
    """Pair every participant with another participant's name.

    Shuffles the name list until no position keeps its own name. The result
    follows input order: participant ``i`` gets ``shuffled[i]``.
    """
    minimum = settings.MIN_PARTICIPANTS if min_participants is None else min_participants
    attempts = settings.MAX_DRAW_ATTEMPTS if max_attempts is None else max_attempts
    if len(participants) < minimum:
        raise TooFewParticipants(len(participants), minimum)

    rng = rng or random
    names = [p.name for p in participants]
    shuffled = list(names)
    for _ in range(attempts):
        # Fisher-Yates, uniform over all permutations
        rng.shuffle(shuffled)
        if is_derangement(names, shuffled):
            return [Assignment(p.id, drawn) for p, drawn in zip(participants, shuffled)]

    raise AssignmentFailed(attempts)
