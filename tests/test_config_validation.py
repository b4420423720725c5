"""
Unit tests for configuration validation (Pydantic schema + env loading)

Tests cover:
- Defaults matching the documented tunables
- Range and format errors
- JUKEBOX_* environment parsing, including unparsable numbers
- Secret masking in to_dict()
"""
import pytest

from jukebox.config import load_config
from jukebox.config_schema import JukeboxConfig, validate_config_dict
from jukebox.errors import ConfigError


class TestJukeboxConfig:
    """Tests for the Pydantic config model"""

    def test_defaults(self):
        config = JukeboxConfig()

        assert config.http_timeout_seconds == 30.0
        assert config.http_max_attempts == 3
        assert config.http_backoff_unit_ms == 1000
        assert config.token_safety_margin_seconds == 300
        assert config.device_settle_ms == 1000
        assert config.previous_restart_threshold_ms == 3000
        assert config.settle_poll_enabled is False
        assert config.strict_ordering is False
        assert "user-modify-playback-state" in config.scopes

    def test_trailing_slashes_are_stripped(self):
        config = JukeboxConfig(backend_url="https://backend.test/", spotify_api_base="https://api.test/v1/")

        assert config.backend_url == "https://backend.test"
        assert config.spotify_api_base == "https://api.test/v1"

    def test_scopes_from_string(self):
        config = JukeboxConfig(scopes="streaming, user-read-email  user-top-read")

        assert config.scopes == ["streaming", "user-read-email", "user-top-read"]

    @pytest.mark.parametrize("field,value", [
        ("http_max_attempts", 0),
        ("http_timeout_seconds", 0),
        ("token_safety_margin_seconds", -1),
        ("log_level", "LOUD"),
        ("language", "fr"),
    ])
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ValueError):
            validate_config_dict({field: value})

    def test_settle_window_must_fit_one_poll(self):
        with pytest.raises(ValueError):
            validate_config_dict({
                "settle_poll_enabled": True,
                "settle_poll_interval_ms": 500,
                "settle_max_wait_ms": 100,
            })

    def test_to_dict_masks_secrets(self):
        data = JukeboxConfig(client_secret="s3cret", backend_anon_key="anon").to_dict()

        assert data["client_secret"] == "***"
        assert data["backend_anon_key"] == "***"


class TestLoadConfig:
    """Tests for environment-driven loading"""

    def test_reads_prefixed_environment(self):
        config = load_config(environ={
            "JUKEBOX_BACKEND_URL": "https://backend.test",
            "JUKEBOX_HTTP_MAX_ATTEMPTS": "5",
            "JUKEBOX_HTTP_TIMEOUT_SECONDS": "12.5",
            "JUKEBOX_STRICT_ORDERING": "yes",
            "JUKEBOX_LANGUAGE": "DE",
            "UNRELATED": "ignored",
        })

        assert config.backend_url == "https://backend.test"
        assert config.http_max_attempts == 5
        assert config.http_timeout_seconds == 12.5
        assert config.strict_ordering is True
        assert config.language == "de"

    def test_unparsable_number_falls_back_to_default(self):
        config = load_config(environ={"JUKEBOX_DEVICE_SETTLE_MS": "soon"})

        assert config.device_settle_ms == 1000

    def test_overrides_win(self):
        config = load_config(environ={"JUKEBOX_HTTP_MAX_ATTEMPTS": "5"}, http_max_attempts=2)

        assert config.http_max_attempts == 2

    def test_schema_violation_raises_config_error(self):
        with pytest.raises(ConfigError):
            load_config(environ={"JUKEBOX_HTTP_MAX_ATTEMPTS": "99"})
