#!/usr/bin/env python3
"""
🎛️ Playback Reconciliation Engine for Jukebox
Keeps the local PlaybackSession in step with the remote multi-device
player and exposes the user intents the UI calls.

Every intent:
- is rejected before any network call while ``mode`` is ``browse``
  (except the explicit device check, which is what promotes to ``play``)
- asks the Token Lifecycle Manager for a token; no token aborts silently
- writes the session only after its awaited calls resolve
- never raises; failures become a guidance message and/or a mode downgrade
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .. import constants
from ..api.spotify import SpotifyClient
from ..errors import (
    ApiError,
    JukeboxError,
    PlaybackError,
    PlaybackErrorKind,
    TransportError,
)
from ..utils.clock import SYSTEM_CLOCK, Clock
from ..utils.translations import t
from .tokens import TokenLifecycleManager


class PlaybackMode(str, Enum):
    BROWSE = "browse"
    PLAY = "play"


class RepeatMode(str, Enum):
    OFF = "off"
    TRACK = "track"
    CONTEXT = "context"


class Guidance(str, Enum):
    """User-facing guidance codes; values double as translation keys."""
    NO_DEVICE = "no_device"
    DEVICE_ACTIVATION_FAILED = "device_activation_failed"
    NO_ACTIVE_DEVICE = "no_active_device"
    PREMIUM_REQUIRED = "premium_required"
    NOTHING_TO_PLAY = "nothing_to_play"
    NOTHING_PLAYING = "nothing_playing"
    SIGN_IN_REQUIRED = "sign_in_required"
    CONTROLS_DISABLED = "controls_disabled"
    REQUEST_FAILED = "request_failed"


@dataclass
class Track:
    id: str
    uri: str
    name: str = ""
    duration_ms: int = 0
    artists: List[str] = field(default_factory=list)
    album: Optional[str] = None

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "Track":
        """Build a Track from a Music Service track object."""
        track_id = str(item.get("id") or "")
        artists = [a.get("name", "") for a in item.get("artists") or [] if isinstance(a, dict)]
        album = item.get("album")
        return cls(
            id=track_id,
            uri=item.get("uri") or f"spotify:track:{track_id}",
            name=item.get("name") or "",
            duration_ms=int(item.get("duration_ms") or 0),
            artists=artists,
            album=album.get("name") if isinstance(album, dict) else None,
        )


@dataclass
class Device:
    id: str
    name: str
    is_active: bool = False
    type: Optional[str] = None
    volume_percent: Optional[int] = None

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "Device":
        return cls(
            id=str(item.get("id") or ""),
            name=item.get("name") or "Unknown Device",
            is_active=bool(item.get("is_active", False)),
            type=item.get("type"),
            volume_percent=item.get("volume_percent"),
        )


@dataclass
class PlaybackSession:
    """Local mirror of the remote playback state."""
    is_playing: bool = False
    current_track: Optional[Track] = None
    queue: List[Track] = field(default_factory=list)
    progress_ms: int = 0
    duration_ms: int = 0
    volume: float = 1.0
    shuffled: bool = False
    repeat_mode: RepeatMode = RepeatMode.OFF
    device_id: Optional[str] = None
    mode: PlaybackMode = PlaybackMode.BROWSE


GuidanceNotifier = Callable[[Guidance, str], None]


@dataclass(frozen=True)
class _Ticket:
    seq: int
    generation: int  # bumped on sign-out and on the premium downgrade


class PlaybackEngine:
    """Single owner of the PlaybackSession; all writes go through here."""

    def __init__(
        self,
        tokens: TokenLifecycleManager,
        client: SpotifyClient,
        *,
        clock: Clock = SYSTEM_CLOCK,
        device_settle_ms: int = constants.DEVICE_SETTLE_DELAY_MS,
        settle_poll_enabled: bool = False,
        settle_poll_interval_ms: int = 250,
        settle_max_wait_ms: int = 3000,
        previous_restart_threshold_ms: int = constants.PREVIOUS_RESTART_THRESHOLD_MS,
        strict_ordering: bool = False,
        language: str = 'en',
        notifier: Optional[GuidanceNotifier] = None,
    ) -> None:
        self._tokens = tokens
        self._client = client
        self._clock = clock
        self._device_settle_ms = device_settle_ms
        self._settle_poll_enabled = settle_poll_enabled
        self._settle_poll_interval_ms = settle_poll_interval_ms
        self._settle_max_wait_ms = settle_max_wait_ms
        self._previous_threshold_ms = previous_restart_threshold_ms
        self._strict_ordering = strict_ordering
        self._language = language
        self._notifier = notifier
        self._logger = logging.getLogger('jukebox.playback')

        self._session = PlaybackSession()
        self._premium_notice_shown = False
        self._intent_seq = 0
        self._last_applied_seq = 0
        self._generation = 0

        self.last_guidance: Optional[Guidance] = None
        self.last_message: Optional[str] = None

        tokens.add_sign_out_listener(self._on_signed_out)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def mode(self) -> PlaybackMode:
        return self._session.mode

    def snapshot(self) -> PlaybackSession:
        """Read-only copy of the current session."""
        return copy.deepcopy(self._session)

    def clear_guidance(self) -> None:
        self.last_guidance = None
        self.last_message = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _on_signed_out(self) -> None:
        self._logger.info("playback.session.reset", extra={"reason": "signed_out"})
        self._session = PlaybackSession()
        self._premium_notice_shown = False
        self._reset_generation()

    def _surface(self, guidance: Guidance, **kwargs: Any) -> None:
        message = t(guidance.value, self._language, **kwargs)
        self.last_guidance = guidance
        self.last_message = message
        self._logger.info("playback.guidance", extra={"code": guidance.value})
        if self._notifier is not None:
            self._notifier(guidance, message)

    def _next_ticket(self) -> _Ticket:
        self._intent_seq += 1
        return _Ticket(self._intent_seq, self._generation)

    def _reset_generation(self) -> None:
        """Invalidate every intent that is still awaiting."""
        self._generation += 1

    def _superseded(self, generation: int) -> bool:
        if generation == self._generation:
            return False
        self._logger.debug(
            "playback.intent.superseded",
            extra={"generation": generation, "current": self._generation},
        )
        return True

    def _may_write(self, ticket: _Ticket, require_play: bool = True) -> bool:
        """Re-validate after an await before touching the session."""
        if self._superseded(ticket.generation):
            return False
        if require_play and self._session.mode is not PlaybackMode.PLAY:
            self._logger.debug("playback.write.skipped", extra={"ticket": ticket.seq, "reason": "mode"})
            return False
        if self._strict_ordering and ticket.seq < self._last_applied_seq:
            self._logger.debug(
                "playback.write.stale",
                extra={"ticket": ticket.seq, "applied": self._last_applied_seq},
            )
            return False
        self._last_applied_seq = max(self._last_applied_seq, ticket.seq)
        return True

    def _controls_enabled(self, intent: str) -> bool:
        if self._session.mode is PlaybackMode.PLAY:
            return True
        self._logger.debug("playback.intent.rejected", extra={"intent": intent, "mode": self._session.mode.value})
        self._surface(Guidance.CONTROLS_DISABLED)
        return False

    async def _token(self) -> Optional[str]:
        token = await self._tokens.get_valid_token()
        if token is None:
            self._session.mode = PlaybackMode.BROWSE
        return token

    async def _guard(self, intent: str, flow: Callable[[], Awaitable[bool]]) -> bool:
        try:
            return await flow()
        except JukeboxError as exc:
            await self._handle_failure(intent, exc)
            return False
        except Exception:
            self._logger.exception("playback.intent.crashed", extra={"intent": intent})
            self._surface(Guidance.REQUEST_FAILED, detail=intent)
            return False

    async def _handle_failure(self, intent: str, exc: JukeboxError) -> None:
        self._logger.warning(
            "playback.intent.failed",
            extra={"intent": intent, "error": exc.__class__.__name__, "detail": exc.message},
        )
        if isinstance(exc, PlaybackError):
            if exc.kind is PlaybackErrorKind.PREMIUM_REQUIRED:
                self._session.mode = PlaybackMode.BROWSE
                self._reset_generation()
                if not self._premium_notice_shown:
                    self._premium_notice_shown = True
                    self._surface(Guidance.PREMIUM_REQUIRED)
            elif exc.kind is PlaybackErrorKind.NO_DEVICE:
                self._surface(Guidance.NO_ACTIVE_DEVICE)
            elif exc.kind is PlaybackErrorKind.DEVICE_ACTIVATION_FAILED:
                self._surface(Guidance.DEVICE_ACTIVATION_FAILED)
            else:
                self._surface(Guidance.NOTHING_PLAYING)
        elif isinstance(exc, ApiError) and exc.unauthorized:
            await self._tokens.invalidate()
            self._surface(Guidance.SIGN_IN_REQUIRED)
        elif isinstance(exc, ApiError):
            self._surface(Guidance.REQUEST_FAILED, detail=exc.status)
        elif isinstance(exc, TransportError):
            self._surface(Guidance.REQUEST_FAILED, detail=exc.kind.value)
        else:
            self._surface(Guidance.REQUEST_FAILED, detail=exc.message)

    def _apply_remote(self, state: Optional[Dict[str, Any]]) -> None:
        """Overwrite remote-owned fields; queue and mode stay local."""
        session = self._session
        if not state:
            session.is_playing = False
            return

        item = state.get("item")
        session.current_track = Track.from_api(item) if isinstance(item, dict) else None
        session.is_playing = bool(state.get("is_playing", False))
        session.progress_ms = int(state.get("progress_ms") or 0)
        session.duration_ms = session.current_track.duration_ms if session.current_track else 0
        session.shuffled = bool(state.get("shuffle_state", session.shuffled))
        try:
            session.repeat_mode = RepeatMode(state.get("repeat_state") or RepeatMode.OFF.value)
        except ValueError:
            session.repeat_mode = RepeatMode.OFF

        device = state.get("device")
        if isinstance(device, dict):
            session.device_id = device.get("id") or session.device_id
            if device.get("volume_percent") is not None:
                session.volume = max(0.0, min(1.0, int(device["volume_percent"]) / 100))

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def list_devices(self, token: Optional[str] = None) -> List[Device]:
        """Devices as reported right now; empty without a session."""
        if token is None:
            token = await self._token()
            if token is None:
                return []
        return [Device.from_api(d) for d in await self._client.get_devices(token)]

    async def ensure_active_device(self, token: str, generation: Optional[int] = None) -> Optional[str]:
        """
        Make sure the Music Service has an output device to play on.

        Args:
            token: Access token for the device calls
            generation: Session generation the caller started under; the
                current one when omitted

        Returns:
            Optional[str]: Device id, or None after surfacing guidance or when
            the session was reset while waiting

        Raises:
            JukeboxError: Listing devices failed, or activation hit a 401
        """
        if generation is None:
            generation = self._generation
        devices = await self.list_devices(token)
        if self._superseded(generation):
            return None

        if not devices:
            self._logger.info("playback.device.none")
            self._session.mode = PlaybackMode.BROWSE
            self._surface(Guidance.NO_DEVICE)
            return None

        for device in devices:
            if device.is_active:
                self._logger.debug("playback.device.active", extra={"device": device.name})
                self._session.mode = PlaybackMode.PLAY
                return device.id

        target = devices[0]
        self._logger.info("playback.device.activate", extra={"device": target.name, "device_id": target.id})
        try:
            await self._client.transfer_playback(token, target.id, play=False)
            await self._wait_for_device(token, target.id)
        except JukeboxError as exc:
            if isinstance(exc, ApiError) and exc.unauthorized:
                raise
            if self._superseded(generation):
                return None
            self._logger.warning(
                "playback.device.activate_failed",
                extra={"device_id": target.id, "error": exc.__class__.__name__},
            )
            self._session.mode = PlaybackMode.BROWSE
            self._surface(Guidance.DEVICE_ACTIVATION_FAILED)
            return None

        if self._superseded(generation):
            return None
        self._session.mode = PlaybackMode.PLAY
        return target.id

    async def _wait_for_device(self, token: str, device_id: str) -> None:
        if not self._settle_poll_enabled:
            await self._clock.sleep_ms(self._device_settle_ms)
            return

        waited = 0
        while waited < self._settle_max_wait_ms:
            await self._clock.sleep_ms(self._settle_poll_interval_ms)
            waited += self._settle_poll_interval_ms
            devices = await self.list_devices(token)
            if any(d.id == device_id and d.is_active for d in devices):
                self._logger.debug("playback.device.settled", extra={"device_id": device_id, "waited_ms": waited})
                return
        self._logger.warning("playback.device.settle_timeout", extra={"device_id": device_id, "waited_ms": waited})

    async def check_devices(self) -> bool:
        """Explicit device check; the only way back into ``play`` mode."""
        async def flow() -> bool:
            ticket = self._next_ticket()
            token = await self._token()
            if token is None:
                return False
            device_id = await self.ensure_active_device(token, ticket.generation)
            if device_id is None:
                return False
            self._premium_notice_shown = False
            if self._may_write(ticket):
                self._session.device_id = device_id
            return True

        return await self._guard("check_devices", flow)

    # ------------------------------------------------------------------
    # Transport intents
    # ------------------------------------------------------------------

    async def play(self, track: Optional[Track] = None, queue: Optional[Sequence[Track]] = None) -> bool:
        async def flow() -> bool:
            if not self._controls_enabled("play"):
                return False
            ticket = self._next_ticket()
            token = await self._token()
            if token is None:
                return False

            device_id = await self.ensure_active_device(token, ticket.generation)
            if device_id is None:
                return False

            target = track
            if target is None and queue:
                target = queue[0]
            if target is None and self._session.queue:
                target = self._session.queue[0]
            if target is None:
                self._surface(Guidance.NOTHING_TO_PLAY)
                return False

            await self._client.play(token, device_id, uris=[target.uri])

            if not self._may_write(ticket):
                return False
            session = self._session
            session.current_track = target
            session.is_playing = True
            session.device_id = device_id
            session.progress_ms = 0
            session.duration_ms = target.duration_ms
            if queue is not None:
                session.queue = list(queue)
            self._logger.info("▶️ playback.play", extra={"track": target.name or target.id, "device_id": device_id})
            return True

        return await self._guard("play", flow)

    async def pause(self) -> bool:
        async def flow() -> bool:
            if not self._controls_enabled("pause"):
                return False
            if not self._session.is_playing:
                return True
            ticket = self._next_ticket()
            token = await self._token()
            if token is None:
                return False
            await self._client.pause(token, self._session.device_id)
            if self._may_write(ticket):
                self._session.is_playing = False
            return True

        return await self._guard("pause", flow)

    async def resume(self) -> bool:
        async def flow() -> bool:
            if not self._controls_enabled("resume"):
                return False
            if self._session.is_playing:
                return True
            ticket = self._next_ticket()
            token = await self._token()
            if token is None:
                return False
            device_id = await self.ensure_active_device(token, ticket.generation)
            if device_id is None:
                return False
            await self._client.resume(token, device_id)
            if self._may_write(ticket):
                self._session.is_playing = True
                self._session.device_id = device_id
            return True

        return await self._guard("resume", flow)

    async def next(self) -> bool:
        async def flow() -> bool:
            if not self._controls_enabled("next"):
                return False
            ticket = self._next_ticket()
            token = await self._token()
            if token is None:
                return False
            await self._client.skip_next(token, self._session.device_id)
            state = await self._client.get_playback_state(token)
            if self._may_write(ticket):
                self._apply_remote(state)
            return True

        return await self._guard("next", flow)

    async def previous(self) -> bool:
        """Restart the current track past the threshold, else skip back."""
        async def flow() -> bool:
            if not self._controls_enabled("previous"):
                return False
            ticket = self._next_ticket()
            token = await self._token()
            if token is None:
                return False

            if self._session.current_track is not None and self._session.progress_ms > self._previous_threshold_ms:
                await self._client.seek(token, 0, self._session.device_id)
                if self._may_write(ticket):
                    self._session.progress_ms = 0
                return True

            await self._client.skip_previous(token, self._session.device_id)
            state = await self._client.get_playback_state(token)
            if self._may_write(ticket):
                self._apply_remote(state)
            return True

        return await self._guard("previous", flow)

    async def seek(self, position_ms: int) -> bool:
        async def flow() -> bool:
            if not self._controls_enabled("seek"):
                return False
            track = self._session.current_track
            if track is None:
                raise PlaybackError(PlaybackErrorKind.NOT_PLAYING, "Nothing to seek in")

            position = max(0, int(position_ms))
            duration = self._session.duration_ms or track.duration_ms
            if duration:
                position = min(position, duration)

            ticket = self._next_ticket()
            token = await self._token()
            if token is None:
                return False
            await self._client.seek(token, position, self._session.device_id)
            if self._may_write(ticket):
                self._session.progress_ms = position
            return True

        return await self._guard("seek", flow)

    async def toggle_shuffle(self) -> bool:
        async def flow() -> bool:
            if not self._controls_enabled("toggle_shuffle"):
                return False
            ticket = self._next_ticket()
            token = await self._token()
            if token is None:
                return False
            target = not self._session.shuffled
            await self._client.set_shuffle(token, target, self._session.device_id)
            if self._may_write(ticket):
                self._session.shuffled = target
            return True

        return await self._guard("toggle_shuffle", flow)

    async def set_repeat_mode(self, mode: Any) -> bool:
        async def flow() -> bool:
            if not self._controls_enabled("set_repeat_mode"):
                return False
            try:
                target = RepeatMode(mode)
            except ValueError:
                self._logger.warning("playback.repeat.invalid", extra={"value": str(mode)})
                return False
            ticket = self._next_ticket()
            token = await self._token()
            if token is None:
                return False
            await self._client.set_repeat(token, target.value, self._session.device_id)
            if self._may_write(ticket):
                self._session.repeat_mode = target
            return True

        return await self._guard("set_repeat_mode", flow)

    async def set_volume(self, volume: float) -> bool:
        """Set volume from ``[0, 1]``; the wire takes an integer percentage."""
        async def flow() -> bool:
            if not self._controls_enabled("set_volume"):
                return False
            level = max(0.0, min(1.0, float(volume)))
            ticket = self._next_ticket()
            token = await self._token()
            if token is None:
                return False
            await self._client.set_volume(token, int(round(level * 100)), self._session.device_id)
            if self._may_write(ticket):
                self._session.volume = level
            return True

        return await self._guard("set_volume", flow)

    # ------------------------------------------------------------------
    # Local-only intents
    # ------------------------------------------------------------------

    def add_to_queue(self, track: Track) -> None:
        self._session.queue.append(track)

    def clear_queue(self) -> None:
        self._session.queue = []

    async def sync(self) -> bool:
        """Reconcile the whole session from the remote playback state."""
        async def flow() -> bool:
            ticket = self._next_ticket()
            token = await self._token()
            if token is None:
                return False
            state = await self._client.get_playback_state(token)
            if self._may_write(ticket, require_play=False):
                self._apply_remote(state)
            return True

        return await self._guard("sync", flow)

    async def tick(self, elapsed_ms: int) -> None:
        """Advance local progress between syncs."""
        session = self._session
        if not session.is_playing or session.current_track is None:
            return
        session.progress_ms += max(0, int(elapsed_ms))
        if session.duration_ms and session.progress_ms >= session.duration_ms:
            if session.repeat_mode is RepeatMode.TRACK:
                session.progress_ms = 0
            else:
                await self.next()


__all__ = [
    "Device",
    "Guidance",
    "PlaybackEngine",
    "PlaybackMode",
    "PlaybackSession",
    "RepeatMode",
    "Track",
]
