"""
🎵 Player Service - Playback intents for the UI
===============================================

Runs PlaybackEngine intents and reports each one as a ServiceResult that
carries the current session snapshot, or the guidance message when the
intent could not run.
"""

from dataclasses import asdict
from enum import Enum
from typing import Any, Awaitable, Dict, Optional, Sequence

from . import BaseService, ServiceResult
from ..core.playback import PlaybackEngine, PlaybackMode, PlaybackSession, Track
from ..utils.translations import t


def session_to_dict(session: PlaybackSession) -> Dict[str, Any]:
    """Plain-dict view of a session with enums flattened to their values."""
    data = asdict(session)
    for key, value in data.items():
        if isinstance(value, Enum):
            data[key] = value.value
    return data


class PlayerService(BaseService):
    """Service for playback control."""

    def __init__(self, engine: PlaybackEngine, language: str = 'en'):
        super().__init__("player")
        self.engine = engine
        self.language = language

    async def _run(self, operation: str, intent: Awaitable[bool]) -> ServiceResult:
        self.engine.clear_guidance()
        ok = await intent
        state = session_to_dict(self.engine.snapshot())
        if ok:
            return self._success_result(data=state)

        guidance = self.engine.last_guidance
        if guidance is None:
            # Silent abort: no token was available
            return self._error_result(
                t('sign_in_required', self.language),
                error_code="AUTH_REQUIRED",
                data=state
            )
        self.logger.debug(f"{operation} not completed: {guidance.value}")
        return self._error_result(
            self.engine.last_message or guidance.value,
            error_code=guidance.value.upper(),
            data=state
        )

    def get_state(self) -> ServiceResult:
        return self._success_result(data=session_to_dict(self.engine.snapshot()))

    async def get_devices(self) -> ServiceResult:
        try:
            devices = await self.engine.list_devices()
        except Exception as e:
            return self._handle_error(e, "get_devices")
        return self._success_result(data={"devices": [asdict(d) for d in devices]})

    async def check_devices(self) -> ServiceResult:
        return await self._run("check_devices", self.engine.check_devices())

    async def play(self, track: Optional[Track] = None, queue: Optional[Sequence[Track]] = None) -> ServiceResult:
        return await self._run("play", self.engine.play(track, queue))

    async def pause(self) -> ServiceResult:
        return await self._run("pause", self.engine.pause())

    async def resume(self) -> ServiceResult:
        return await self._run("resume", self.engine.resume())

    async def next(self) -> ServiceResult:
        return await self._run("next", self.engine.next())

    async def previous(self) -> ServiceResult:
        return await self._run("previous", self.engine.previous())

    async def seek(self, position_ms: int) -> ServiceResult:
        return await self._run("seek", self.engine.seek(position_ms))

    async def toggle_shuffle(self) -> ServiceResult:
        return await self._run("toggle_shuffle", self.engine.toggle_shuffle())

    async def set_repeat_mode(self, mode: str) -> ServiceResult:
        return await self._run("set_repeat_mode", self.engine.set_repeat_mode(mode))

    async def set_volume(self, volume: float) -> ServiceResult:
        return await self._run("set_volume", self.engine.set_volume(volume))

    async def sync(self) -> ServiceResult:
        return await self._run("sync", self.engine.sync())

    def add_to_queue(self, track: Track) -> ServiceResult:
        self.engine.add_to_queue(track)
        return self.get_state()

    def clear_queue(self) -> ServiceResult:
        self.engine.clear_queue()
        return self.get_state()

    async def health_check(self) -> ServiceResult:
        mode = self.engine.mode
        return ServiceResult(
            success=True,
            data={
                "status": "healthy" if mode is PlaybackMode.PLAY else "idle",
                "service": self.name,
                "mode": mode.value,
            }
        )
