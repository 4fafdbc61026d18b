from __future__ import annotations

import json
import os

import pytest

from listingwatch.settings import load_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in ("TELEGRAM_BOT_TOKEN", "API_ID", "API_HASH", "SESSION_NAME", "LISTINGWATCH_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    # Keep load_dotenv from picking up a developer's .env file.
    monkeypatch.chdir(tmp_path)


def _write_config(tmp_path, data: dict) -> str:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_missing_token_prevents_start(tmp_path) -> None:
    path = _write_config(tmp_path, {})
    with pytest.raises(RuntimeError, match="TELEGRAM_BOT_TOKEN"):
        load_settings(path)


def test_missing_config_file_is_reported(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    with pytest.raises(FileNotFoundError):
        load_settings(str(tmp_path / "nope.json"))


def test_telethon_requires_app_credentials(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    path = _write_config(tmp_path, {"transport": "telethon"})
    with pytest.raises(RuntimeError, match="API_ID"):
        load_settings(path)


def test_defaults_and_relative_paths(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    path = _write_config(
        tmp_path,
        {
            "storage": {"backend": "json"},
            "notifications": {"send_timeout_seconds": 0, "admin_chat_id": "99"},
        },
    )

    settings = load_settings(path)

    assert settings.transport == "bot_api"
    assert settings.storage_path == os.path.join(str(tmp_path), "subscribers.json")
    config = settings.manager_config()
    assert config.send_timeout_seconds is None
    assert config.admin_client_id == 99
