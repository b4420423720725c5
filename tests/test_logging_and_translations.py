"""Logger formatting, token masking and guidance translations."""

import json
import logging

from jukebox.utils.logger import ColoredFormatter, JSONFormatter, mask_token
from jukebox.utils.translations import get_translations, t


def _record(message, **extra):
    record = logging.LogRecord("jukebox.http", logging.WARNING, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields():
    payload = json.loads(JSONFormatter().format(_record("http.retry", attempt=1, backoff_ms=1000)))

    assert payload["message"] == "http.retry"
    assert payload["logger"] == "jukebox.http"
    assert payload["attempt"] == 1
    assert payload["backoff_ms"] == 1000
    assert "source" in payload


def test_colored_formatter_appends_context():
    line = ColoredFormatter().format(_record("http.retry", attempt=2))

    assert "http.retry" in line
    assert line.endswith("attempt=2")


def test_mask_token():
    assert mask_token(None) == "<none>"
    assert mask_token("short") == "***"
    masked = mask_token("BQD1234567890xyz")
    assert masked.startswith("BQD1")
    assert masked.endswith("0xyz")
    assert "567" not in masked


def test_translations_fall_back_to_english():
    assert t("no_device", "de").startswith("Kein Wiedergabegerät")
    assert t("no_device", "fr") == t("no_device", "en")
    assert t("unknown_key") == "unknown_key"
    assert "503" in t("request_failed", "en", detail=503)
    assert get_translations("de")["premium_required"]
