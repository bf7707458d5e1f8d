import logging
from pathlib import Path

import pytest

from medicrew.core import config

ENV_VARS = [
    "MODEL_PROVIDER", "GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY", "RETRIES",
    "TRACKING_INTERVAL_SECONDS", "DATA_DIR", "SAVE_LAST_PROMPT", "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "_secret", lambda name: config.os.getenv(name, "").strip())


def test_defaults():
    s = config.load_settings()
    assert s.provider == "stub"
    assert s.tracking_interval_seconds == 15
    assert s.max_upload_bytes == 10 * 1024 * 1024
    assert s.max_license_bytes == 5 * 1024 * 1024
    assert s.save_last_prompt is False


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("MODEL_PROVIDER", "Gemini")
    monkeypatch.setenv("GOOGLE_API_KEY", "k")
    monkeypatch.setenv("RETRIES", "3")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("SAVE_LAST_PROMPT", "1")
    s = config.load_settings()
    assert (s.provider, s.api_key, s.retries) == ("gemini", "k", 3)
    assert s.data_dir == Path(tmp_path)
    assert s.save_last_prompt is True


def test_bad_number_falls_back(monkeypatch, caplog):
    monkeypatch.setenv("RETRIES", "lots")
    monkeypatch.setenv("TRACKING_INTERVAL_SECONDS", "0")
    with caplog.at_level(logging.WARNING):
        s = config.load_settings()
    assert s.retries == config.Settings.retries
    assert s.tracking_interval_seconds == 1
    assert "Invalid RETRIES" in caplog.text
