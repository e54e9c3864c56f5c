import pytest
from friendss.session.links import host_url, parse_room_url, room_url
from friendss.session.room_session import open_room
from friendss.errors import BlankName


def test_room_and_host_links_round_trip():
    assert room_url("https://friendss.app/", "abc") == "https://friendss.app/rooms/abc"
    link = host_url("https://friendss.app", "abc", "tok-1")
    assert link == "https://friendss.app/rooms/abc?host=tok-1"
    assert parse_room_url(link) == ("abc", "tok-1")
    assert parse_room_url("https://friendss.app/rooms/abc") == ("abc", None)


def test_parse_rejects_other_links():
    with pytest.raises(ValueError):
        parse_room_url("https://friendss.app/about")


async def test_open_room_creates_host_participant(store):
    room, host, token = await open_room(store, "  Hana ")
    assert room.host_token == token
    assert host.name == "Hana"
    assert host.is_host
    assert [p.id for p in await store.list_participants(room.id)] == [host.id]


async def test_open_room_requires_a_name(store):
    with pytest.raises(BlankName):
        await open_room(store, " ")
    assert store.rooms == {}
