"""Exception hierarchy for Jukebox.

Transport failures sit at the bottom, token failures build on them and
playback failures are the ones the player layer turns into guidance.
Every exception carries an HTTP-ish ``status_code`` so a UI bridge can map
it without inspecting the class.
"""

from enum import Enum
from typing import Optional


class JukeboxError(Exception):
    """Base exception for Jukebox.

    Attributes:
        status_code: HTTP status code for API error responses.
    """

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(JukeboxError):
    """Configuration could not be validated."""


class TransportErrorKind(str, Enum):
    TIMEOUT = "timeout"
    NETWORK = "network"
    ABORTED = "aborted"


class TransportError(JukeboxError):
    """Raised by the resilient transport once its retry budget is spent.

    Only raised for failures below the HTTP layer. A response with an error
    status is returned to the caller, never raised here.
    """

    status_code: int = 503

    def __init__(self, kind: TransportErrorKind, message: str, *, attempts: int = 1) -> None:
        super().__init__(message)
        self.kind = kind
        self.attempts = attempts

    @property
    def retryable(self) -> bool:
        return self.kind is TransportErrorKind.TIMEOUT


class TokenErrorKind(str, Enum):
    NO_SESSION = "no_session"
    REFRESH_FAILED = "refresh_failed"


class TokenError(JukeboxError):
    """The Music Service session cannot be used or renewed."""

    status_code: int = 401

    def __init__(self, kind: TokenErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class PlaybackErrorKind(str, Enum):
    NO_DEVICE = "no_device"
    DEVICE_ACTIVATION_FAILED = "device_activation_failed"
    PREMIUM_REQUIRED = "premium_required"
    NOT_PLAYING = "not_playing"


class PlaybackError(JukeboxError):
    """A player command was refused by the Music Service."""

    status_code: int = 409

    def __init__(self, kind: PlaybackErrorKind, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status


class ApiError(JukeboxError):
    """Any other non-success response from the Music Service or the Backend."""

    status_code: int = 502  # Bad Gateway (upstream failure)

    def __init__(self, status: int, message: str, *, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason

    @property
    def unauthorized(self) -> bool:
        return self.status == 401


__all__ = [
    "JukeboxError",
    "ConfigError",
    "TransportError",
    "TransportErrorKind",
    "TokenError",
    "TokenErrorKind",
    "PlaybackError",
    "PlaybackErrorKind",
    "ApiError",
]
