from __future__ import annotations

import asyncio

import pytest
from fakes import FakeTransport

from listingwatch.core.dispatcher import NotificationDispatcher
from listingwatch.core.errors import DeliveryFailure
from listingwatch.core.formatting import LISTING_HEADER, MAX_MESSAGE_LENGTH, MarkupDialect, render_subscription_listing
from listingwatch.core.models import DeliveryStatus, RenderMode, Subscriber, Subscription


def test_send_text_delivers_on_first_attempt() -> None:
    transport = FakeTransport()
    dispatcher = NotificationDispatcher(transport)

    outcome = asyncio.run(dispatcher.send_text(5, "hello", preview_enabled=False))

    assert outcome.status is DeliveryStatus.DELIVERED
    assert outcome.attempts == 1
    assert not outcome.degraded
    [(client_id, text, options)] = transport.texts
    assert (client_id, text) == (5, "hello")
    assert options.preview_enabled is False


def test_rich_failure_retries_once_as_plain_text_with_previews() -> None:
    transport = FakeTransport()
    transport.text_results = [False]
    dispatcher = NotificationDispatcher(transport)

    outcome = asyncio.run(dispatcher.send_text(5, "*hi*", preview_enabled=False, render_mode=RenderMode.RICH))

    assert outcome.ok
    assert outcome.attempts == 2
    assert outcome.degraded
    first, retry = [options for _, _, options in transport.texts]
    assert first.render_mode is RenderMode.RICH
    assert retry.render_mode is RenderMode.PLAIN
    assert retry.preview_enabled is True


def test_second_failure_is_reported_not_raised() -> None:
    transport = FakeTransport()
    transport.text_results = [DeliveryFailure("boom"), DeliveryFailure("boom again")]
    dispatcher = NotificationDispatcher(transport)

    outcome = asyncio.run(dispatcher.send_text(5, "hello"))

    assert outcome.status is DeliveryStatus.FAILED
    assert outcome.error == "boom again"
    assert len(transport.texts) == 2


def test_programming_errors_are_not_retried() -> None:
    transport = FakeTransport()
    transport.text_results = [TypeError("bad payload")]
    dispatcher = NotificationDispatcher(transport)

    with pytest.raises(TypeError):
        asyncio.run(dispatcher.send_text(5, "hello"))
    assert len(transport.texts) == 1


def test_picture_failure_is_not_retried() -> None:
    transport = FakeTransport()
    transport.picture_results = [DeliveryFailure("no image")]
    dispatcher = NotificationDispatcher(transport)

    outcome = asyncio.run(dispatcher.send_picture(5, "caption", "https://example.com/a.jpg"))

    assert outcome.status is DeliveryStatus.FAILED
    assert len(transport.pictures) == 1
    assert transport.texts == []


def test_listing_is_rich_without_previews() -> None:
    transport = FakeTransport()
    dispatcher = NotificationDispatcher(transport)
    subscriber = Subscriber(3, [Subscription("x", "https://example.com/x")])

    asyncio.run(dispatcher.send_listing(subscriber))

    [(client_id, text, options)] = transport.texts
    assert client_id == 3
    assert text.startswith(LISTING_HEADER)
    assert "https://example\\.com/x" in text
    assert options.render_mode is RenderMode.RICH
    assert options.preview_enabled is False


def _long_subscriber() -> Subscriber:
    subscriptions = [
        Subscription(f"search {n}", f"https://example.com/search?q={'x' * 150}&page={n}") for n in range(60)
    ]
    return Subscriber(3, subscriptions)


def test_long_listing_is_sent_in_ordered_chunks() -> None:
    transport = FakeTransport()
    dispatcher = NotificationDispatcher(transport)
    subscriber = _long_subscriber()

    outcome = asyncio.run(dispatcher.send_listing(subscriber))

    texts = transport.texts_to(3)
    assert len(texts) > 1
    assert all(len(text) <= MAX_MESSAGE_LENGTH for text in texts)
    assert "\n\n".join(texts) == render_subscription_listing(subscriber, MarkupDialect.MARKDOWN_V2)
    assert outcome.status is DeliveryStatus.DELIVERED
    assert outcome.attempts == len(texts)


def test_long_listing_stops_at_first_undeliverable_chunk() -> None:
    transport = FakeTransport()
    transport.text_results = [False, False]
    dispatcher = NotificationDispatcher(transport)

    outcome = asyncio.run(dispatcher.send_listing(_long_subscriber()))

    assert outcome.status is DeliveryStatus.FAILED
    assert outcome.attempts == 2
    assert len(transport.texts) == 2
