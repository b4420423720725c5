"""
Centralized configuration management for Jukebox
Reads ``JUKEBOX_*`` environment variables (optionally from .env files) and
validates them against the Pydantic schema.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from .config_schema import JukeboxConfig, validate_config_dict
from .errors import ConfigError

ENV_PREFIX = "JUKEBOX_"

_INT_FIELDS = {
    "http_max_attempts", "http_backoff_unit_ms", "token_safety_margin_seconds",
    "device_settle_ms", "settle_poll_interval_ms", "settle_max_wait_ms",
    "previous_restart_threshold_ms",
}
_FLOAT_FIELDS = {"http_timeout_seconds"}
_BOOL_FIELDS = {"settle_poll_enabled", "strict_ordering"}
_STR_FIELDS = {
    "spotify_api_base", "spotify_accounts_url", "client_id", "client_secret",
    "redirect_uri", "scopes", "backend_url", "backend_anon_key",
    "backend_refresh_path", "backend_sign_out_path", "storage_path",
    "log_level", "language",
}


def _get_app_config_dir() -> Path:
    """Get application configuration directory path-agnostically"""
    app_name = os.getenv("JUKEBOX_APP_NAME", "jukebox")
    return Path.home() / f".{app_name}"


def load_environment(env_file: Optional[str] = None) -> None:
    """Load .env files into the process environment without overriding it."""
    user_env = _get_app_config_dir() / ".env"
    if user_env.exists():
        load_dotenv(dotenv_path=user_env)
    if env_file:
        load_dotenv(dotenv_path=env_file)
    else:
        # Project-root .env supplies overrides in dev setups
        load_dotenv()


def _coerce_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _collect_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Map JUKEBOX_* variables onto schema fields, skipping unparsable numbers."""
    logger = logging.getLogger("jukebox.config")
    raw: Dict[str, Any] = {}

    for name in _INT_FIELDS | _FLOAT_FIELDS | _BOOL_FIELDS | _STR_FIELDS:
        value = environ.get(ENV_PREFIX + name.upper())
        if value is None or value == "":
            continue
        if name in _INT_FIELDS:
            try:
                raw[name] = int(value)
            except ValueError:
                logger.warning("Invalid %s%s=%s; using default", ENV_PREFIX, name.upper(), value)
        elif name in _FLOAT_FIELDS:
            try:
                raw[name] = float(value)
            except ValueError:
                logger.warning("Invalid %s%s=%s; using default", ENV_PREFIX, name.upper(), value)
        elif name in _BOOL_FIELDS:
            raw[name] = _coerce_bool(value)
        else:
            raw[name] = value
    return raw


def load_config(
    env_file: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> JukeboxConfig:
    """
    Build a validated configuration.

    Args:
        env_file: Optional explicit .env file
        environ: Mapping to read instead of ``os.environ`` (skips .env loading)
        **overrides: Field values that win over the environment

    Returns:
        Validated JukeboxConfig

    Raises:
        ConfigError: If the merged values violate the schema
    """
    if environ is None:
        load_environment(env_file)
        environ = os.environ

    merged = {**_collect_env(environ), **overrides}
    try:
        config = validate_config_dict(merged)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    logging.getLogger("jukebox.config").debug("✅ Configuration validated", extra={"config": config.to_dict()})
    return config


__all__ = ["JukeboxConfig", "load_config", "load_environment", "ENV_PREFIX"]
