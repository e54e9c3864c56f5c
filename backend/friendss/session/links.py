from typing import Optional, Tuple
from urllib.parse import parse_qs, quote, urlencode, urlsplit


def room_url(base_url: str, room_id: str) -> str:
    return f"{base_url.rstrip('/')}/rooms/{quote(room_id)}"


def host_url(base_url: str, room_id: str, host_token: str) -> str:
    # Whoever holds this link acts as host; nothing else is checked
    return f"{room_url(base_url, room_id)}?{urlencode({'host': host_token})}"


def parse_room_url(url: str) -> Tuple[str, Optional[str]]:
    """Split a room link into ``(room_id, host_token)``."""
    parts = urlsplit(url)
    segments = [s for s in parts.path.split("/") if s]
    if len(segments) < 2 or segments[-2] != "rooms":
        raise ValueError(f"Not a room link: {url}")
    host = parse_qs(parts.query).get("host", [None])[0]
    return segments[-1], host or None
