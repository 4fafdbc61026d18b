from __future__ import annotations

import logging

from listingwatch.adapters.json_storage import JsonSubscriberStore
from listingwatch.adapters.telegram_bot_transport import TelegramBotTransport
from listingwatch.app import _RedactingFormatter, build_store, build_transport
from listingwatch.settings import Settings


def test_redacting_formatter_masks_token() -> None:
    formatter = _RedactingFormatter(["123:abc"], fmt="%(message)s")
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "GET /bot123:abc/getUpdates", None, None)
    assert formatter.format(record) == "GET /bot***/getUpdates"


def test_builders_follow_settings(tmp_path) -> None:
    settings = Settings(
        bot_token="123:abc",
        storage_backend="json",
        storage_path=str(tmp_path / "subscribers.json"),
    )
    assert isinstance(build_store(settings), JsonSubscriberStore)
    assert isinstance(build_transport(settings), TelegramBotTransport)
