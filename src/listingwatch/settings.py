"""Runtime configuration for listingwatch.

User-editable settings (transport, storage, notifications, logging) live in
a single JSON file; secrets come from the environment via python-dotenv so
they stay out of the repo.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from dotenv import load_dotenv

from listingwatch.core.config import ManagerConfig

DEFAULT_CONFIG_PATH = "config.json"
CONFIG_ENV = "LISTINGWATCH_CONFIG"

TRANSPORTS = ("bot_api", "telethon")
STORAGE_BACKENDS = ("sqlite", "json")


@dataclass(frozen=True)
class Settings:
    """Everything the entry point needs to wire the manager."""

    bot_token: str
    transport: str = "bot_api"
    storage_backend: str = "sqlite"
    storage_path: str = "listingwatch.db"
    send_timeout_seconds: Optional[float] = 30.0
    admin_chat_id: Optional[int] = None
    api_id: Optional[str] = None
    api_hash: Optional[str] = None
    session_name: str = "listingwatch"
    logging: dict[str, Any] = field(default_factory=dict)

    def manager_config(self) -> ManagerConfig:
        return ManagerConfig(
            send_timeout_seconds=self.send_timeout_seconds,
            admin_client_id=self.admin_chat_id,
        )


def _load_json_config(path: str) -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(base_dir: str, path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(base_dir, path)


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Build Settings from config.json plus environment secrets.

    A missing bot token is fatal: the service must not start half-configured.
    """

    load_dotenv()

    path = os.path.abspath(config_path or os.getenv(CONFIG_ENV) or DEFAULT_CONFIG_PATH)
    config = _load_json_config(path)
    base_dir = os.path.dirname(path)

    bot_token = (os.getenv("TELEGRAM_BOT_TOKEN") or "").strip()
    if not bot_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN was not specified. Please create a bot and set its token.")

    transport = config.get("transport", "bot_api")
    if transport not in TRANSPORTS:
        raise RuntimeError(f"transport must be one of {', '.join(TRANSPORTS)}")

    # Bot API only needs the token; Telethon also needs app credentials.
    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    if transport == "telethon" and (not api_id or not api_hash):
        raise RuntimeError("API_ID and API_HASH are required when transport=telethon")

    storage = config.get("storage", {})
    backend = storage.get("backend", "sqlite")
    if backend not in STORAGE_BACKENDS:
        raise RuntimeError(f"storage.backend must be one of {', '.join(STORAGE_BACKENDS)}")
    default_path = "listingwatch.db" if backend == "sqlite" else "subscribers.json"
    storage_path = _resolve_path(base_dir, storage.get("path", default_path))

    notifications = config.get("notifications", {})
    timeout = notifications.get("send_timeout_seconds", 30)
    admin_chat_id = notifications.get("admin_chat_id")

    logging_config = dict(config.get("logging", {}))
    file_cfg = dict(logging_config.get("file", {}))
    if file_cfg.get("path"):
        file_cfg["path"] = _resolve_path(base_dir, file_cfg["path"])
        logging_config["file"] = file_cfg

    return Settings(
        bot_token=bot_token,
        transport=transport,
        storage_backend=backend,
        storage_path=storage_path,
        send_timeout_seconds=float(timeout) if timeout else None,
        admin_chat_id=int(admin_chat_id) if admin_chat_id is not None else None,
        api_id=api_id,
        api_hash=api_hash,
        session_name=os.getenv("SESSION_NAME", "listingwatch"),
        logging=logging_config,
    )
