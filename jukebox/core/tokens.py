#!/usr/bin/env python3
"""
🎟️ Token Lifecycle Manager for Jukebox
Owns the persisted Music Service session and decides, on every read,
whether the stored access token can be used as-is.

- Tokens are treated as expired a fixed safety margin before ``expires_at``.
- A usable token is returned with zero network calls.
- Refresh goes through the Backend (over the resilient transport); any
  refresh failure signs the user out. No retries beyond the transport's.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from .. import constants
from ..api.backend import BackendClient
from ..api.spotify import SpotifyClient
from ..errors import JukeboxError, TokenError, TokenErrorKind
from ..utils.clock import SYSTEM_CLOCK, Clock
from ..utils.logger import mask_token
from ..utils.storage import KeyValueStore


class TokenState(str, Enum):
    NO_SESSION = "no_session"
    VALID = "valid"
    NEAR_EXPIRY = "near_expiry"
    INVALID = "invalid"


@dataclass
class TokenRecord:
    """One authenticated Music Service session as persisted."""
    access_token: str
    expires_at_ms: Optional[int]  # None when the persisted expiry is unreadable
    refresh_token: Optional[str] = None

    def is_usable(self, now_ms: int, margin_ms: int) -> bool:
        """Usable only while ``now + margin`` is still before the expiry."""
        if self.expires_at_ms is None:
            return False
        return now_ms + margin_ms < self.expires_at_ms

    def time_until_expiry_ms(self, now_ms: int) -> int:
        if self.expires_at_ms is None:
            return 0
        return max(0, self.expires_at_ms - now_ms)


def _parse_expiry(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except (ValueError, AttributeError):
        return None


SignOutListener = Callable[[], None]


class TokenLifecycleManager:
    """
    Pull-based token state machine: NoSession, Valid, NearExpiry, Invalid.

    State is evaluated fresh on each access; there is no background timer.
    Concurrent readers that all find the token expired share one refresh.
    """

    def __init__(
        self,
        store: KeyValueStore,
        backend: BackendClient,
        *,
        spotify: Optional[SpotifyClient] = None,
        clock: Clock = SYSTEM_CLOCK,
        safety_margin_seconds: int = constants.TOKEN_SAFETY_MARGIN_SECONDS,
    ) -> None:
        self._store = store
        self._backend = backend
        self._spotify = spotify
        self._clock = clock
        self._margin_ms = safety_margin_seconds * 1000
        self._inflight: Optional["asyncio.Task[Optional[str]]"] = None
        self._listeners: List[SignOutListener] = []
        self._logger = logging.getLogger('jukebox.tokens')

        self._metrics = {
            'cache_hits': 0,
            'cache_misses': 0,
            'refresh_attempts': 0,
            'refresh_successes': 0,
            'refresh_failures': 0,
            'sign_outs': 0,
            'total_requests': 0,
        }

    @property
    def safety_margin_ms(self) -> int:
        return self._margin_ms

    def add_sign_out_listener(self, listener: SignOutListener) -> None:
        """Register a callback fired after local session state is cleared."""
        self._listeners.append(listener)

    async def load_record(self) -> Optional[TokenRecord]:
        access_token = await self._store.get(constants.ACCESS_TOKEN_KEY)
        if not access_token:
            return None
        return TokenRecord(
            access_token=access_token,
            expires_at_ms=_parse_expiry(await self._store.get(constants.TOKEN_EXPIRY_KEY)),
            refresh_token=await self._store.get(constants.REFRESH_TOKEN_KEY),
        )

    async def evaluate(self) -> TokenState:
        """Current state of the persisted session, without side effects."""
        record = await self.load_record()
        if record is None:
            return TokenState.NO_SESSION
        if record.expires_at_ms is None:
            return TokenState.INVALID
        if record.is_usable(self._clock.now_ms(), self._margin_ms):
            return TokenState.VALID
        return TokenState.NEAR_EXPIRY

    async def get_valid_token(self) -> Optional[str]:
        """
        Get a usable access token, refreshing if it is inside the margin.

        Returns:
            Optional[str]: Access token, or None when there is no session or
            the refresh failed (the session is signed out in that case)
        """
        self._metrics['total_requests'] += 1
        record = await self.load_record()
        if record is None:
            return None

        now_ms = self._clock.now_ms()
        if record.is_usable(now_ms, self._margin_ms):
            self._metrics['cache_hits'] += 1
            return record.access_token

        self._metrics['cache_misses'] += 1
        if record.expires_at_ms is None:
            self._logger.warning("token.expiry.unreadable - refreshing")
        else:
            self._logger.debug(
                "token.refresh.due",
                extra={"expires_in_ms": record.expires_at_ms - now_ms, "margin_ms": self._margin_ms},
            )
        return await self.refresh()

    async def refresh(self) -> Optional[str]:
        """Refresh via the Backend; sign out and return None on any failure."""
        task = self._inflight
        if task is not None:
            return await asyncio.shield(task)

        task = asyncio.ensure_future(self._refresh_and_store())
        self._inflight = task
        task.add_done_callback(self._clear_inflight)
        return await asyncio.shield(task)

    def _clear_inflight(self, task: "asyncio.Task[Optional[str]]") -> None:
        if self._inflight is task:
            self._inflight = None

    async def _refresh_and_store(self) -> Optional[str]:
        self._metrics['refresh_attempts'] += 1
        refresh_token = await self._store.get(constants.REFRESH_TOKEN_KEY)

        if not refresh_token:
            self._metrics['refresh_failures'] += 1
            self._logger.error("token.refresh.fail", extra={"reason": TokenErrorKind.NO_SESSION.value})
            await self.sign_out()
            return None

        try:
            grant = await self._backend.refresh_session(refresh_token)
        except Exception as exc:
            self._metrics['refresh_failures'] += 1
            self._logger.error(
                "token.refresh.fail",
                extra={
                    "reason": TokenErrorKind.REFRESH_FAILED.value,
                    "error": exc.__class__.__name__,
                    "detail": exc.message if isinstance(exc, JukeboxError) else str(exc),
                },
            )
            await self.sign_out()
            return None

        await self._store.set(constants.ACCESS_TOKEN_KEY, grant.access_token)
        await self._store.set(constants.TOKEN_EXPIRY_KEY, str(grant.expires_at_ms))
        if grant.refresh_token:
            await self._store.set(constants.REFRESH_TOKEN_KEY, grant.refresh_token)
        if grant.user_id:
            await self._store.set(constants.USER_ID_KEY, grant.user_id)

        self._metrics['refresh_successes'] += 1
        self._logger.info(
            "token.refresh.ok",
            extra={
                "token": mask_token(grant.access_token),
                "expires_at": datetime.fromtimestamp(grant.expires_at_ms / 1000).strftime("%H:%M:%S"),
            },
        )
        return grant.access_token

    async def sign_out(self) -> bool:
        """
        Best-effort remote revoke, then unconditionally clear local state.

        Returns:
            bool: Whether the remote revoke succeeded (diagnostic only)
        """
        access_token = await self._store.get(constants.ACCESS_TOKEN_KEY)
        revoked = False
        try:
            if access_token:
                revoked = await self._backend.sign_out(access_token)
        except JukeboxError as exc:
            self._logger.warning("token.sign_out.remote_failed", extra={"error": exc.__class__.__name__})
        finally:
            await self._store.remove_many(constants.SESSION_KEYS)
            self._metrics['sign_outs'] += 1
            self._notify_signed_out()

        self._logger.info("token.sign_out", extra={"remote_revoked": revoked})
        return revoked

    def _notify_signed_out(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                self._logger.exception("token.sign_out.listener_failed")

    async def invalidate(self) -> None:
        """Force the next ``get_valid_token()`` to refresh (e.g. after a 401)."""
        if await self._store.get(constants.ACCESS_TOKEN_KEY):
            self._logger.debug("🗑️ Invalidating stored token expiry")
            await self._store.set(constants.TOKEN_EXPIRY_KEY, "0")

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    def build_authorize_url(self, state: Optional[str] = None) -> str:
        return self._require_spotify().build_authorize_url(state)

    async def sign_in_with_code(self, code: str) -> TokenRecord:
        """
        Create the session from an authorization code.

        Raises:
            ApiError / TransportError: exchange failed; nothing is persisted
        """
        spotify = self._require_spotify()
        grant = await spotify.exchange_code(code)

        await self._store.set(constants.ACCESS_TOKEN_KEY, grant.access_token)
        await self._store.set(constants.TOKEN_EXPIRY_KEY, str(grant.expires_at_ms))
        if grant.refresh_token:
            await self._store.set(constants.REFRESH_TOKEN_KEY, grant.refresh_token)
        else:
            await self._store.remove(constants.REFRESH_TOKEN_KEY)

        try:
            profile = await spotify.get_current_user(grant.access_token)
            if profile.get("id"):
                await self._store.set(constants.USER_ID_KEY, str(profile["id"]))
        except JukeboxError as exc:
            self._logger.warning("token.sign_in.profile_failed", extra={"error": exc.__class__.__name__})

        self._logger.info("token.sign_in.ok", extra={"token": mask_token(grant.access_token)})
        return TokenRecord(grant.access_token, grant.expires_at_ms, grant.refresh_token)

    async def handle_auth_redirect(self, url: str) -> TokenRecord:
        """
        Finish sign-in from the OAuth redirect URL.

        Raises:
            TokenError: The redirect carries an error or no code
        """
        query = parse_qs(urlparse(url).query)
        if query.get("error"):
            raise TokenError(TokenErrorKind.NO_SESSION, f"Authorization denied: {query['error'][0]}")
        code = (query.get("code") or [None])[0]
        if not code:
            raise TokenError(TokenErrorKind.NO_SESSION, "No code parameter found in the redirect URL")
        return await self.sign_in_with_code(code)

    def _require_spotify(self) -> SpotifyClient:
        if self._spotify is None:
            raise TokenError(TokenErrorKind.NO_SESSION, "Sign-in is not configured")
        return self._spotify

    async def get_user_id(self) -> Optional[str]:
        return await self._store.get(constants.USER_ID_KEY)

    async def get_info(self) -> Dict[str, Any]:
        """Token state and performance counters."""
        record = await self.load_record()
        info: Dict[str, Any] = {
            'state': (await self.evaluate()).value,
            'metrics': self._metrics.copy(),
            'has_refresh_token': bool(record and record.refresh_token),
        }
        total = self._metrics['cache_hits'] + self._metrics['cache_misses']
        if total:
            info['cache_hit_rate_percent'] = round(self._metrics['cache_hits'] / total * 100, 1)
        if record is not None:
            info['time_until_expiry_seconds'] = record.time_until_expiry_ms(self._clock.now_ms()) // 1000
        return info
