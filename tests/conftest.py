"""Shared pytest fixtures for the Jukebox test suite.

No real network and no real delays: requests are answered by an
``httpx.MockTransport`` routed through ``FakeServer`` and waiting goes
through a ``FakeClock``.
"""

from __future__ import annotations

import httpx
import pytest

from jukebox.api.backend import BackendClient
from jukebox.api.http import ResilientTransport
from jukebox.api.spotify import SpotifyClient
from jukebox.core.playback import PlaybackEngine
from jukebox.core.tokens import TokenLifecycleManager
from jukebox.utils.clock import FakeClock
from jukebox.utils.storage import MemoryStore

from .fakes import ACCOUNTS, API, BACKEND, FakeServer, seed_session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def http_client(server: FakeServer) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(server))


@pytest.fixture
def transport(http_client: httpx.AsyncClient, clock: FakeClock) -> ResilientTransport:
    return ResilientTransport(
        http_client,
        timeout_seconds=5,
        max_attempts=3,
        backoff_unit_ms=1000,
        clock=clock,
    )


@pytest.fixture
def backend(transport: ResilientTransport, clock: FakeClock) -> BackendClient:
    return BackendClient(transport, BACKEND, anon_key="anon-key", clock=clock)


@pytest.fixture
def spotify_client(transport: ResilientTransport, clock: FakeClock) -> SpotifyClient:
    return SpotifyClient(
        transport,
        api_base=API,
        accounts_url=ACCOUNTS,
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="jukebox://auth/callback",
        clock=clock,
    )


@pytest.fixture
def tokens(store, backend, spotify_client, clock) -> TokenLifecycleManager:
    return TokenLifecycleManager(store, backend, spotify=spotify_client, clock=clock)


@pytest.fixture
def engine(tokens, spotify_client, clock) -> PlaybackEngine:
    return PlaybackEngine(tokens, spotify_client, clock=clock)


@pytest.fixture
def signed_in(store, clock) -> MemoryStore:
    seed_session(store, clock)
    return store
