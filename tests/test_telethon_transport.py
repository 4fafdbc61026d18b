from __future__ import annotations

import asyncio

import pytest

from listingwatch.adapters.telethon_transport import TelethonTransport, build_client
from listingwatch.core.errors import DeliveryFailure
from listingwatch.core.models import RenderMode, TextOptions


class DummyClient:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.started_with = None
        self.start_calls = 0
        self.sent: list = []
        self.connected = True

    async def start(self, bot_token=None):
        self.start_calls += 1
        await asyncio.sleep(0)
        self.started_with = bot_token
        return self

    async def send_message(self, entity, message, **kwargs):
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(("message", entity, message, kwargs))
        return object()

    async def send_file(self, entity, file=None, caption=None, **kwargs):
        self.sent.append(("file", entity, file, caption))
        return object()

    def is_connected(self) -> bool:
        return self.connected

    async def disconnect(self) -> None:
        self.connected = False


def test_rich_text_uses_html_and_preview_flag() -> None:
    client = DummyClient()
    transport = TelethonTransport(client, "123:abc")

    assert asyncio.run(transport.send_text(5, "<b>x</b>", TextOptions(False, RenderMode.RICH)))

    [(kind, entity, message, kwargs)] = client.sent
    assert (kind, entity, message) == ("message", 5, "<b>x</b>")
    assert kwargs == {"parse_mode": "html", "link_preview": False}
    assert client.started_with == "123:abc"


def test_picture_is_sent_as_file_with_caption() -> None:
    client = DummyClient()
    transport = TelethonTransport(client, "123:abc")

    asyncio.run(transport.send_picture(5, "Bike", "https://example.com/a.jpg"))

    assert client.sent == [("file", 5, "https://example.com/a.jpg", "Bike")]


def test_connection_errors_become_delivery_failures() -> None:
    transport = TelethonTransport(DummyClient(fail=True), "123:abc")
    with pytest.raises(DeliveryFailure):
        asyncio.run(transport.send_text(5, "hi", TextOptions()))


def test_stop_disconnects() -> None:
    client = DummyClient()
    asyncio.run(TelethonTransport(client, "123:abc").stop())
    assert client.connected is False


def test_build_client_requires_app_credentials() -> None:
    with pytest.raises(RuntimeError):
        build_client("listingwatch", "", "")


def test_parallel_sends_log_in_once() -> None:
    client = DummyClient()
    transport = TelethonTransport(client, "123:abc")

    async def run() -> None:
        await asyncio.gather(*(transport.send_text(n, "hi", TextOptions()) for n in range(5)))

    asyncio.run(run())

    assert client.start_calls == 1
    assert len(client.sent) == 5
