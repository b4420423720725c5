"""Backend and Music Service client tests: response parsing and error mapping."""

import httpx
import pytest

from jukebox.api.backend import BackendClient, parse_grant
from jukebox.api.spotify import error_from_response
from jukebox.errors import (
    ApiError,
    PlaybackError,
    PlaybackErrorKind,
    TokenError,
    TokenErrorKind,
)

NOW_MS = 1_700_000_000_000


def _error(status, message, reason=None):
    body = {"error": {"status": status, "message": message}}
    if reason:
        body["error"]["reason"] = reason
    return httpx.Response(status, json=body)


class TestErrorMapping:

    def test_premium_required(self):
        error = error_from_response(_error(403, "Player command failed: Premium required", "PREMIUM_REQUIRED"))

        assert isinstance(error, PlaybackError)
        assert error.kind is PlaybackErrorKind.PREMIUM_REQUIRED

    def test_no_active_device(self):
        error = error_from_response(_error(404, "Player command failed: No active device found", "NO_ACTIVE_DEVICE"))

        assert isinstance(error, PlaybackError)
        assert error.kind is PlaybackErrorKind.NO_DEVICE

    def test_other_forbidden_is_api_error(self):
        error = error_from_response(_error(403, "Insufficient client scope"))

        assert isinstance(error, ApiError)
        assert error.status == 403

    def test_unauthorized(self):
        error = error_from_response(_error(401, "The access token expired"))

        assert isinstance(error, ApiError)
        assert error.unauthorized is True

    def test_non_json_body(self):
        error = error_from_response(httpx.Response(502, text="<html>bad gateway</html>"))

        assert isinstance(error, ApiError)
        assert "bad gateway" in error.message


class TestParseGrant:

    def test_relative_expiry(self):
        grant = parse_grant({"access_token": "a", "expires_in": 60, "refresh_token": "r"}, NOW_MS)

        assert grant.expires_at_ms == NOW_MS + 60_000
        assert grant.refresh_token == "r"
        assert grant.user_id is None

    def test_absolute_expiry_wins(self):
        grant = parse_grant({"access_token": "a", "expires_in": 60, "expires_at": 1_700_000_500}, NOW_MS)

        assert grant.expires_at_ms == 1_700_000_500_000

    def test_default_lifetime(self):
        grant = parse_grant({"access_token": "a", "user": {"id": "u"}}, NOW_MS)

        assert grant.expires_at_ms == NOW_MS + 3_600_000
        assert grant.user_id == "u"

    def test_missing_access_token(self):
        with pytest.raises(ValueError):
            parse_grant({"expires_in": 60}, NOW_MS)

    @pytest.mark.parametrize("payload", [[], "ok", None, 42])
    def test_non_object_payload(self, payload):
        with pytest.raises(ValueError):
            parse_grant(payload, NOW_MS)

    def test_expiry_out_of_range(self):
        with pytest.raises(ValueError):
            parse_grant({"access_token": "a", "expires_at": float("inf")}, NOW_MS)


class TestBackendClient:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [b"[]", b'"ok"', b'{"access_token": "a", "expires_at": 1e400}'])
    async def test_unusable_refresh_body(self, backend, server, body):
        server.on("POST", "/auth/v1/token", httpx.Response(200, content=body))

        with pytest.raises(TokenError) as excinfo:
            await backend.refresh_session("r")

        assert excinfo.value.kind is TokenErrorKind.REFRESH_FAILED

    @pytest.mark.asyncio
    async def test_malformed_refresh_body(self, backend, server):
        server.on("POST", "/auth/v1/token", httpx.Response(200, json={"token": "nope"}))

        with pytest.raises(TokenError) as excinfo:
            await backend.refresh_session("r")

        assert excinfo.value.kind is TokenErrorKind.REFRESH_FAILED

    @pytest.mark.asyncio
    async def test_unconfigured_backend(self, transport, server):
        backend = BackendClient(transport, "")

        with pytest.raises(TokenError):
            await backend.refresh_session("r")
        assert await backend.sign_out("a") is False
        assert server.requests == []


class TestSpotifyClient:

    @pytest.mark.asyncio
    async def test_idle_player_returns_none(self, spotify_client, server):
        server.on("GET", "/v1/me/player", httpx.Response(204))

        assert await spotify_client.get_playback_state("tok") is None

    @pytest.mark.asyncio
    async def test_commands_target_device(self, spotify_client, server):
        server.on("PUT", "/v1/me/player/pause", httpx.Response(204))

        await spotify_client.pause("tok", "dev-1")

        request = server.calls("PUT", "/v1/me/player/pause")[0]
        assert request.url.params["device_id"] == "dev-1"
        assert request.headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_error_status_raises_mapped_error(self, spotify_client, server):
        server.on("POST", "/v1/me/player/next", _error(403, "Premium required", "PREMIUM_REQUIRED"))

        with pytest.raises(PlaybackError):
            await spotify_client.skip_next("tok")
