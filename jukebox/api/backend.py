#!/usr/bin/env python3
"""Backend (auth/data service) client: refresh-session and sign-out.

The client secret never lives on the device, so renewing a Music Service
token goes through the Backend. Both calls run over the resilient
transport; this module only interprets the responses.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .. import constants
from ..errors import TokenError, TokenErrorKind
from ..utils.clock import SYSTEM_CLOCK, Clock
from .http import ResilientTransport

logger = logging.getLogger("jukebox.backend")


@dataclass
class SessionGrant:
    """Normalized token payload returned by a refresh or code exchange."""
    access_token: str
    expires_at_ms: int
    refresh_token: Optional[str] = None
    user_id: Optional[str] = None


def parse_grant(payload: Dict[str, Any], now_ms: int) -> SessionGrant:
    """Build a SessionGrant from a token response.

    Accepts an absolute ``expires_at`` (epoch seconds) or a relative
    ``expires_in`` (seconds); falls back to one hour when neither is present.

    Raises:
        ValueError: If the payload is not an object or has no usable access
            token or expiry
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Token response is not an object: {type(payload).__name__}")

    access_token = payload.get("access_token")
    if not access_token or not isinstance(access_token, str):
        raise ValueError("Token response missing access_token")

    try:
        if payload.get("expires_at") is not None:
            expires_at_ms = int(float(payload["expires_at"]) * 1000)
        else:
            expires_in = int(payload.get("expires_in", constants.DEFAULT_TOKEN_LIFETIME_SECONDS))
            expires_at_ms = now_ms + expires_in * 1000
    except OverflowError as exc:
        raise ValueError(f"Token expiry out of range: {exc}") from exc

    user = payload.get("user")
    user_id = user.get("id") if isinstance(user, dict) else None

    return SessionGrant(
        access_token=access_token,
        expires_at_ms=expires_at_ms,
        refresh_token=payload.get("refresh_token") or None,
        user_id=user_id,
    )


class BackendClient:
    def __init__(
        self,
        transport: ResilientTransport,
        base_url: str,
        *,
        anon_key: str = "",
        refresh_path: str = "/auth/v1/token?grant_type=refresh_token",
        sign_out_path: str = "/auth/v1/logout",
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._refresh_path = refresh_path
        self._sign_out_path = sign_out_path
        self._clock = clock

    def _headers(self) -> Dict[str, str]:
        return {"apikey": self._anon_key} if self._anon_key else {}

    async def refresh_session(self, refresh_token: str) -> SessionGrant:
        """Exchange a refresh token for a new access token.

        Raises:
            TokenError: Backend not configured, rejected or malformed response
            TransportError: The transport gave up
        """
        if not self._base_url:
            raise TokenError(TokenErrorKind.REFRESH_FAILED, "Backend URL is not configured")

        response = await self._transport.send(
            "POST",
            f"{self._base_url}{self._refresh_path}",
            headers=self._headers(),
            bearer=self._anon_key or None,
            json={"refresh_token": refresh_token},
        )

        if not response.is_success:
            logger.warning(
                "backend.refresh.rejected",
                extra={"status": response.status_code, "body": response.text[:200]},
            )
            raise TokenError(
                TokenErrorKind.REFRESH_FAILED,
                f"Backend rejected refresh with status {response.status_code}",
            )

        try:
            grant = parse_grant(response.json(), self._clock.now_ms())
        except (ValueError, TypeError) as exc:
            logger.error("backend.refresh.parse_error", extra={"cause": str(exc)})
            raise TokenError(TokenErrorKind.REFRESH_FAILED, f"Malformed refresh response: {exc}") from exc

        return grant

    async def sign_out(self, access_token: Optional[str]) -> bool:
        """Revoke the session remotely. Returns whether the Backend accepted."""
        if not self._base_url:
            return False

        response = await self._transport.send(
            "POST",
            f"{self._base_url}{self._sign_out_path}",
            headers=self._headers(),
            bearer=access_token or self._anon_key or None,
        )
        if response.is_success:
            return True

        logger.info("backend.sign_out.rejected", extra={"status": response.status_code})
        return False
