"""Test doubles and payload builders shared across the suite."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx

from jukebox import constants
from jukebox.core.playback import PlaybackEngine, PlaybackMode
from jukebox.utils.clock import FakeClock
from jukebox.utils.storage import MemoryStore

API = "https://api.test/v1"
ACCOUNTS = "https://accounts.test"
BACKEND = "https://backend.test"

Reply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class FakeServer:
    """Route table for MockTransport. Replies are consumed in order; the last one repeats."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._routes: Dict[Tuple[str, str], List[Reply]] = defaultdict(list)

    def on(self, method: str, path: str, *replies: Reply) -> "FakeServer":
        self._routes[(method.upper(), path)].extend(replies)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": {"status": 404, "message": "unrouted"}})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        return reply

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def paths(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]


def devices_payload(*devices: Dict[str, Any]) -> httpx.Response:
    return httpx.Response(200, json={"devices": list(devices)})


def track_item(track_id: str, duration_ms: int = 200_000) -> Dict[str, Any]:
    return {
        "id": track_id,
        "uri": f"spotify:track:{track_id}",
        "name": f"Track {track_id}",
        "duration_ms": duration_ms,
        "artists": [{"name": "Artist"}],
        "album": {"name": "Album"},
    }


def playback_state(track_id: str, *, progress_ms: int = 0, is_playing: bool = True, device_id: str = "A") -> httpx.Response:
    return httpx.Response(200, json={
        "is_playing": is_playing,
        "progress_ms": progress_ms,
        "shuffle_state": False,
        "repeat_state": "off",
        "item": track_item(track_id),
        "device": {"id": device_id, "name": "Kitchen", "is_active": True, "volume_percent": 40},
    })


def seed_session(
    store: MemoryStore,
    clock: FakeClock,
    *,
    expires_in_ms: int = 3_600_000,
    access_token: str = "access-1",
    refresh_token: Optional[str] = "refresh-1",
) -> None:
    """Persist a signed-in session the way the token manager writes it."""
    store.data[constants.ACCESS_TOKEN_KEY] = access_token
    store.data[constants.TOKEN_EXPIRY_KEY] = str(clock.now_ms() + expires_in_ms)
    if refresh_token:
        store.data[constants.REFRESH_TOKEN_KEY] = refresh_token
    store.data[constants.USER_ID_KEY] = "user-1"


def force_mode(engine: PlaybackEngine, mode: PlaybackMode) -> None:
    """Put the engine into a mode without a device check round trip."""
    engine._session.mode = mode
