#!/usr/bin/env python3
"""
🏗️ Service Layer Test Suite
===========================

Builds the full graph through ServiceManager against a mocked wire and
exercises the auth and player services end to end.
"""

import httpx
import pytest

from jukebox.config_schema import JukeboxConfig
from jukebox.core.playback import PlaybackMode
from jukebox.services.service_manager import ServiceManager
from jukebox.utils.storage import JsonFileStore, KeyValueStore, MemoryStore

from .fakes import ACCOUNTS, API, BACKEND, devices_payload, seed_session


@pytest.fixture
def config() -> JukeboxConfig:
    return JukeboxConfig(
        spotify_api_base=API,
        spotify_accounts_url=ACCOUNTS,
        client_id="client-id",
        backend_url=BACKEND,
        backend_anon_key="anon-key",
    )


@pytest.fixture
def manager(config, store, clock, http_client) -> ServiceManager:
    return ServiceManager(config, store=store, clock=clock, http_client=http_client)


@pytest.mark.asyncio
async def test_service_health(manager, store, clock):
    seed_session(store, clock)

    result = await manager.health_check_all()

    assert result.success is True
    health = result.data
    assert health["total_services"] == 2
    assert set(health["services"]) == {"auth", "player"}
    assert health["services"]["auth"]["status"]["token_state"] == "valid"
    assert health["services"]["player"]["status"]["mode"] == "browse"
    assert health["overall_healthy"] is True


@pytest.mark.asyncio
async def test_player_service_reports_guidance(manager, store, clock):
    seed_session(store, clock)

    result = await manager.player.play()

    assert result.success is False
    assert result.error_code == "CONTROLS_DISABLED"
    assert result.message
    assert result.data["mode"] == "browse"


@pytest.mark.asyncio
async def test_player_service_check_devices_enables_controls(manager, store, clock, server):
    seed_session(store, clock)
    server.on("GET", "/v1/me/player/devices", devices_payload({"id": "B", "name": "Phone", "is_active": True}))

    result = await manager.player.check_devices()

    assert result.success is True
    assert result.data["mode"] == "play"
    assert result.data["device_id"] == "B"
    assert result.to_dict()["success"] is True


@pytest.mark.asyncio
async def test_player_service_without_session(manager):
    manager.engine._session.mode = PlaybackMode.PLAY

    result = await manager.player.pause()
    assert result.success is True  # nothing playing, nothing to do

    result = await manager.player.resume()
    assert result.success is False
    assert result.error_code == "AUTH_REQUIRED"


@pytest.mark.asyncio
async def test_auth_service_status_and_sign_out(manager, store, clock, server):
    seed_session(store, clock)
    server.on("POST", "/auth/v1/logout", httpx.Response(204))

    status = await manager.auth.get_authentication_status()
    assert status.success is True
    assert status.data["user_id"] == "user-1"

    result = await manager.auth.sign_out()
    assert result.data == {"remote_revoked": True}
    assert store.data == {}

    status = await manager.auth.get_authentication_status()
    assert status.error_code == "AUTH_REQUIRED"


@pytest.mark.asyncio
async def test_auth_service_rejected_redirect(manager):
    result = await manager.auth.complete_sign_in("jukebox://auth/callback?error=access_denied")

    assert result.success is False
    assert result.error_code == "AUTH_DENIED"


def test_sign_in_url(manager):
    result = manager.auth.get_sign_in_url("abc")

    assert result.success is True
    assert result.data["url"].startswith(f"{ACCOUNTS}/authorize?")


def test_store_selection(tmp_path, clock):
    memory = ServiceManager(JukeboxConfig(), clock=clock)
    on_disk = ServiceManager(JukeboxConfig(storage_path=str(tmp_path / "session.json")), clock=clock)

    assert isinstance(memory.store, MemoryStore)
    assert isinstance(on_disk.store, JsonFileStore)


@pytest.mark.asyncio
async def test_json_file_store_round_trip(tmp_path):
    path = tmp_path / "nested" / "session.json"
    store = JsonFileStore(path)

    await store.set("access_token", "abc")
    await store.set("user_id", "u")
    await store.remove_many(["user_id", "missing"])

    reopened = JsonFileStore(path)
    assert await reopened.get("access_token") == "abc"
    assert await reopened.get("user_id") is None


def test_store_interface_is_abstract():
    with pytest.raises(TypeError):
        KeyValueStore()
