#!/usr/bin/env python3
"""
🎵 Music Service (Spotify Web API) client for Jukebox
Covers sign-in (authorize URL, code exchange, current user), device
management and every player command the playback engine issues.

All calls go through the resilient transport. Non-success responses are
translated here into the error taxonomy:
- 403 "premium required"  -> PlaybackError(PREMIUM_REQUIRED)
- 404 "no active device"  -> PlaybackError(NO_DEVICE)
- anything else           -> ApiError(status, reason)
"""

import base64
import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlencode

import httpx

from .. import constants
from ..errors import ApiError, JukeboxError, PlaybackError, PlaybackErrorKind
from ..utils.clock import SYSTEM_CLOCK, Clock
from .backend import SessionGrant, parse_grant
from .http import ResilientTransport

logger = logging.getLogger("jukebox.spotify")

_SUCCESS_STATUSES = (200, 201, 202, 204)


def _error_details(response: httpx.Response) -> Dict[str, Any]:
    """Pull ``{"error": {"message", "reason"}}`` out of an error body."""
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text[:200]}
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error
        if isinstance(error, str):
            return {"message": body.get("error_description") or error, "reason": error}
    return {}


def error_from_response(response: httpx.Response) -> JukeboxError:
    """Map a failed Music Service response to the error taxonomy."""
    status = response.status_code
    details = _error_details(response)
    message = str(details.get("message") or f"Music Service error {status}")
    reason = details.get("reason")
    lowered = message.lower()

    if status == 403 and (reason == "PREMIUM_REQUIRED" or "premium" in lowered):
        return PlaybackError(PlaybackErrorKind.PREMIUM_REQUIRED, message, status=status)
    if status == 404 and (reason == "NO_ACTIVE_DEVICE" or "device" in lowered):
        return PlaybackError(PlaybackErrorKind.NO_DEVICE, message, status=status)
    return ApiError(status, message, reason=reason)


def _device_params(device_id: Optional[str], **extra: Any) -> Dict[str, Any]:
    params = {k: v for k, v in extra.items() if v is not None}
    if device_id:
        params["device_id"] = device_id
    return params


class SpotifyClient:
    """Thin async wrapper over the Music Service endpoints Jukebox uses."""

    def __init__(
        self,
        transport: ResilientTransport,
        *,
        api_base: str = constants.SPOTIFY_API_BASE_URL,
        accounts_url: str = constants.SPOTIFY_ACCOUNTS_URL,
        client_id: str = "",
        client_secret: str = "",
        redirect_uri: str = "",
        scopes: Sequence[str] = constants.SPOTIFY_SCOPES,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        self._transport = transport
        self._api_base = api_base.rstrip("/")
        self._accounts_url = accounts_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._scopes = list(scopes)
        self._clock = clock

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    def build_authorize_url(self, state: Optional[str] = None) -> str:
        """Authorization-code flow URL the UI opens in a browser."""
        params = {
            "client_id": self._client_id,
            "response_type": "code",
            "redirect_uri": self._redirect_uri,
            "scope": " ".join(self._scopes),
            "show_dialog": "true",
        }
        if state:
            params["state"] = state
        return f"{self._accounts_url}/authorize?{urlencode(params)}"

    async def exchange_code(self, code: str) -> SessionGrant:
        """Exchange an authorization code for an access/refresh token pair.

        Raises:
            ApiError: The accounts service rejected the code
            TransportError: The transport gave up
        """
        basic = base64.b64encode(f"{self._client_id}:{self._client_secret}".encode()).decode()
        response = await self._transport.send(
            "POST",
            f"{self._accounts_url}/api/token",
            headers={
                "Authorization": f"Basic {basic}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            },
        )
        if not response.is_success:
            raise error_from_response(response)
        try:
            return parse_grant(response.json(), self._clock.now_ms())
        except (ValueError, TypeError) as exc:
            raise ApiError(response.status_code, f"Malformed token response: {exc}") from exc

    async def get_current_user(self, token: str) -> Dict[str, Any]:
        response = await self._request("GET", "/me", token)
        return response.json()

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def get_devices(self, token: str) -> List[Dict[str, Any]]:
        response = await self._request("GET", "/me/player/devices", token)
        devices = response.json().get("devices") or []
        return [d for d in devices if isinstance(d, dict)]

    async def transfer_playback(self, token: str, device_id: str, play: bool = False) -> None:
        await self._request("PUT", "/me/player", token, json={"device_ids": [device_id], "play": play})

    # ------------------------------------------------------------------
    # Player commands
    # ------------------------------------------------------------------

    async def play(
        self,
        token: str,
        device_id: Optional[str] = None,
        *,
        uris: Optional[List[str]] = None,
        context_uri: Optional[str] = None,
        position_ms: Optional[int] = None,
    ) -> None:
        payload: Dict[str, Any] = {}
        if uris:
            payload["uris"] = uris
        if context_uri:
            payload["context_uri"] = context_uri
        if position_ms is not None:
            payload["position_ms"] = position_ms
        await self._request(
            "PUT", "/me/player/play", token,
            params=_device_params(device_id),
            json=payload or None,
        )

    async def resume(self, token: str, device_id: Optional[str] = None) -> None:
        await self._request("PUT", "/me/player/play", token, params=_device_params(device_id))

    async def pause(self, token: str, device_id: Optional[str] = None) -> None:
        await self._request("PUT", "/me/player/pause", token, params=_device_params(device_id))

    async def skip_next(self, token: str, device_id: Optional[str] = None) -> None:
        await self._request("POST", "/me/player/next", token, params=_device_params(device_id))

    async def skip_previous(self, token: str, device_id: Optional[str] = None) -> None:
        await self._request("POST", "/me/player/previous", token, params=_device_params(device_id))

    async def seek(self, token: str, position_ms: int, device_id: Optional[str] = None) -> None:
        await self._request(
            "PUT", "/me/player/seek", token,
            params=_device_params(device_id, position_ms=int(position_ms)),
        )

    async def set_shuffle(self, token: str, state: bool, device_id: Optional[str] = None) -> None:
        await self._request(
            "PUT", "/me/player/shuffle", token,
            params=_device_params(device_id, state="true" if state else "false"),
        )

    async def set_repeat(self, token: str, state: str, device_id: Optional[str] = None) -> None:
        await self._request("PUT", "/me/player/repeat", token, params=_device_params(device_id, state=state))

    async def set_volume(self, token: str, volume_percent: int, device_id: Optional[str] = None) -> None:
        await self._request(
            "PUT", "/me/player/volume", token,
            params=_device_params(device_id, volume_percent=int(volume_percent)),
        )

    async def get_playback_state(self, token: str) -> Optional[Dict[str, Any]]:
        """Full player state, or None when no player is active (204)."""
        response = await self._request("GET", "/me/player", token)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        response = await self._transport.send(
            method,
            f"{self._api_base}{path}",
            bearer=token,
            params=params or None,
            json=json,
        )
        if response.status_code in _SUCCESS_STATUSES:
            return response

        error = error_from_response(response)
        logger.warning(
            "spotify.request.failed",
            extra={
                "method": method,
                "path": path,
                "status": response.status_code,
                "error": error.__class__.__name__,
            },
        )
        raise error


__all__ = ["SpotifyClient", "error_from_response"]
