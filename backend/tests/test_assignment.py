import random
from collections import Counter
from dataclasses import dataclass
import pytest
from friendss.errors import AssignmentFailed, TooFewParticipants
from friendss.services.assignment import assign, is_derangement


@dataclass
class Person:
    id: str
    name: str


def people(*names):
    return [Person(id=f"p{i}", name=name) for i, name in enumerate(names)]


class NoShuffle(random.Random):
    def __init__(self):
        super().__init__()
        self.calls = 0

    def shuffle(self, x):
        self.calls += 1


@pytest.mark.parametrize("size", [5, 20])
def test_assignment_is_always_a_derangement(size):
    group = people(*[f"name-{i}" for i in range(size)])
    names = [p.name for p in group]
    for _ in range(10_000):
        result = assign(group)
        assert [a.participant_id for a in result] == [p.id for p in group]
        drawn = [a.recipient_name for a in result]
        assert sorted(drawn) == sorted(names)
        assert is_derangement(names, drawn)


def test_assignment_rejects_four_participants_without_shuffling():
    rng = NoShuffle()
    with pytest.raises(TooFewParticipants) as exc:
        assign(people("A", "B", "C", "D"), rng=rng)
    assert exc.value.count == 4
    assert rng.calls == 0


def test_assignment_accepts_exactly_five():
    result = assign(people("A", "B", "C", "D", "E"))
    assert len(result) == 5


def test_assignment_gives_up_after_attempt_cap():
    rng = NoShuffle()
    with pytest.raises(AssignmentFailed) as exc:
        assign(people("A", "B", "C", "D", "E"), rng=rng)
    assert exc.value.attempts == 100
    assert rng.calls == 100


def test_assignment_allows_duplicate_names():
    group = people("Ana", "Ana", "Bia", "Caio", "Duda")
    result = assign(group)
    assert all(a.recipient_name != p.name for a, p in zip(result, group))
    assert Counter(a.recipient_name for a in result) == Counter(p.name for p in group)


def test_assignment_varies_and_covers_every_derangement():
    group = people("A", "B", "C", "D", "E")
    outcomes = Counter(tuple(a.recipient_name for a in assign(group)) for _ in range(20_000))

    # 5 people have 44 derangements, each expected ~455 times
    assert len(outcomes) == 44
    assert max(outcomes.values()) < 2 * 20_000 / 44


def test_first_participant_recipient_is_not_biased():
    group = people("A", "B", "C", "D", "E")
    trials = 20_000
    firsts = Counter(assign(group)[0].recipient_name for _ in range(trials))
    assert set(firsts) == {"B", "C", "D", "E"}
    for count in firsts.values():
        assert 0.20 < count / trials < 0.30


def test_assignment_honours_custom_minimum():
    result = assign(people("A", "B"), min_participants=2, rng=random.Random(3))
    assert [a.recipient_name for a in result] == ["B", "A"]
