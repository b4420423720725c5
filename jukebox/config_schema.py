"""
Pydantic models for Jukebox configuration validation

Every tunable of the transport, the token lifecycle and the playback
engine is declared here with its bounds, so a malformed environment fails
at start-up instead of in the middle of a request.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from . import constants


class JukeboxConfig(BaseModel):
    """Complete Jukebox configuration schema.

    Example:
        >>> cfg = JukeboxConfig(backend_url="https://example.supabase.co")
        >>> cfg.http_max_attempts
        3
    """

    # Music Service
    spotify_api_base: str = Field(default=constants.SPOTIFY_API_BASE_URL, description="Music Service Web API base URL")
    spotify_accounts_url: str = Field(default=constants.SPOTIFY_ACCOUNTS_URL, description="Music Service accounts host")
    client_id: str = Field(default="", description="Music Service application client id")
    client_secret: str = Field(default="", description="Music Service application client secret")
    redirect_uri: str = Field(default="jukebox://auth/callback", description="OAuth redirect URI")
    scopes: list[str] = Field(default_factory=lambda: list(constants.SPOTIFY_SCOPES), description="Requested OAuth scopes")

    # Backend
    backend_url: str = Field(default="", description="Backend base URL")
    backend_anon_key: str = Field(default="", description="Backend client identity (anon key)")
    backend_refresh_path: str = Field(default="/auth/v1/token?grant_type=refresh_token", description="Refresh-session endpoint")
    backend_sign_out_path: str = Field(default="/auth/v1/logout", description="Sign-out (revoke) endpoint")

    # Resilient transport
    http_timeout_seconds: float = Field(default=constants.HTTP_TIMEOUT_SECONDS, gt=0, le=300, description="Per-attempt timeout")
    http_max_attempts: int = Field(default=constants.HTTP_MAX_ATTEMPTS, ge=1, le=10, description="Total attempts per request")
    http_backoff_unit_ms: int = Field(default=constants.HTTP_BACKOFF_UNIT_MS, ge=0, le=60_000, description="Backoff = attempt * unit")

    # Token lifecycle
    token_safety_margin_seconds: int = Field(default=constants.TOKEN_SAFETY_MARGIN_SECONDS, ge=0, le=3600, description="Treat tokens as expired this early")

    # Playback reconciliation
    device_settle_ms: int = Field(default=constants.DEVICE_SETTLE_DELAY_MS, ge=0, le=30_000, description="Wait after device activation")
    settle_poll_enabled: bool = Field(default=False, description="Poll device state after activation instead of a fixed wait")
    settle_poll_interval_ms: int = Field(default=250, ge=50, le=10_000, description="Polling interval while settling")
    settle_max_wait_ms: int = Field(default=3000, ge=0, le=60_000, description="Upper bound for settle polling")
    previous_restart_threshold_ms: int = Field(default=constants.PREVIOUS_RESTART_THRESHOLD_MS, ge=0, description="previous() restarts the track past this position")
    strict_ordering: bool = Field(default=False, description="Drop state writes from intents superseded by a newer intent")

    # Runtime
    storage_path: Optional[str] = Field(default=None, description="JSON file for persisted session state; memory only when unset")
    log_level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$", description="Logging level")
    language: str = Field(default="en", description="Language for user guidance (en/de)")

    model_config = {
        "extra": "ignore",
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    @field_validator('spotify_api_base', 'spotify_accounts_url', 'backend_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip('/')

    @field_validator('language')
    @classmethod
    def validate_language(cls, v: str) -> str:
        v = v.lower()
        if v not in ('en', 'de'):
            raise ValueError(f"Unsupported language: {v}. Must be 'en' or 'de'")
        return v

    @field_validator('scopes', mode='before')
    @classmethod
    def split_scopes(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [scope for scope in v.replace(',', ' ').split() if scope]
        return v

    @model_validator(mode='after')
    def validate_settle_window(self) -> 'JukeboxConfig':
        """Polling must be able to run at least once inside the max wait."""
        if self.settle_poll_enabled and self.settle_max_wait_ms < self.settle_poll_interval_ms:
            raise ValueError("settle_max_wait_ms must be >= settle_poll_interval_ms when polling is enabled")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with secrets masked."""
        data = self.model_dump(mode='json')
        for secret in ('client_secret', 'backend_anon_key'):
            if data.get(secret):
                data[secret] = '***'
        return data


def validate_config_dict(config_dict: Dict[str, Any]) -> JukeboxConfig:
    """Validate a config dictionary against the schema.

    Raises:
        ValueError: If config is invalid with detailed error messages
    """
    try:
        return JukeboxConfig(**config_dict)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {str(e)}")
