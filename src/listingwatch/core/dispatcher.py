"""Outbound delivery with a bounded degradation policy.

Every call ends in a terminal DeliveryOutcome. Text gets exactly one retry
as plain text with previews enabled; pictures are never retried here, the
manager falls back to text instead. Only delivery-class failures (a False
return or DeliveryFailure) are retried; anything else is a bug and
propagates.
"""

from __future__ import annotations

import logging
from typing import Generic, Optional

from listingwatch.core.errors import DeliveryFailure
from listingwatch.core.formatting import render_subscription_listing, split_message
from listingwatch.core.models import (
    ClientId,
    DeliveryOutcome,
    DeliveryStatus,
    RenderMode,
    Subscriber,
    TextOptions,
)
from listingwatch.core.ports import Transport

LOGGER = logging.getLogger(__name__)

_FALLBACK_OPTIONS = TextOptions(preview_enabled=True, render_mode=RenderMode.PLAIN)


class NotificationDispatcher(Generic[ClientId]):
    """Formats and delivers outbound messages through one transport."""

    def __init__(self, transport: Transport[ClientId]) -> None:
        self._transport = transport

    async def _attempt_text(self, client_id: ClientId, message: str, options: TextOptions) -> Optional[str]:
        """Return None on success, otherwise the failure description."""

        try:
            delivered = await self._transport.send_text(client_id, message, options)
        except DeliveryFailure as exc:
            return str(exc) or "delivery failed"
        if not delivered:
            return "transport reported failure"
        return None

    async def send_text(
        self,
        client_id: ClientId,
        message: str,
        preview_enabled: bool = True,
        render_mode: RenderMode = RenderMode.PLAIN,
    ) -> DeliveryOutcome[ClientId]:
        options = TextOptions(preview_enabled=preview_enabled, render_mode=render_mode)
        error = await self._attempt_text(client_id, message, options)
        if error is None:
            LOGGER.info("Recipient: %s, Message: %r", client_id, message)
            return DeliveryOutcome(client_id, DeliveryStatus.DELIVERED)

        LOGGER.error("Text delivery to %s failed (%s), retrying as plain text", client_id, error)
        error = await self._attempt_text(client_id, message, _FALLBACK_OPTIONS)
        if error is None:
            LOGGER.info("Recipient: %s, Message: %r (plain text retry)", client_id, message)
            return DeliveryOutcome(client_id, DeliveryStatus.DELIVERED, attempts=2, degraded=True)

        LOGGER.error("Error when sending message to Recipient: %s, Message: %r (%s)", client_id, message, error)
        return DeliveryOutcome(client_id, DeliveryStatus.FAILED, attempts=2, degraded=True, error=error)

    async def send_picture(self, client_id: ClientId, message: str, picture_url: str) -> DeliveryOutcome[ClientId]:
        try:
            delivered = await self._transport.send_picture(client_id, message, picture_url)
            error = None if delivered else "transport reported failure"
        except DeliveryFailure as exc:
            error = str(exc) or "delivery failed"

        if error is None:
            LOGGER.info("Recipient: %s, Picture: %s, Message: %r", client_id, picture_url, message)
            return DeliveryOutcome(client_id, DeliveryStatus.DELIVERED)
        LOGGER.error("Picture delivery to %s failed (%s)", client_id, error)
        return DeliveryOutcome(client_id, DeliveryStatus.FAILED, error=error)

    async def send_listing(self, subscriber: Subscriber[ClientId]) -> DeliveryOutcome[ClientId]:
        """Render every subscription and send it as rich markup without previews.

        Long listings go out as several messages in order; sending stops at
        the first chunk that could not be delivered.
        """

        message = render_subscription_listing(subscriber, self._transport.dialect)
        attempts = 0
        degraded = False
        for chunk in split_message(message):
            outcome = await self.send_text(
                subscriber.client_id,
                chunk,
                preview_enabled=False,
                render_mode=RenderMode.RICH,
            )
            attempts += outcome.attempts
            degraded = degraded or outcome.degraded
            if not outcome.ok:
                return DeliveryOutcome(
                    subscriber.client_id,
                    DeliveryStatus.FAILED,
                    attempts=attempts,
                    degraded=degraded,
                    error=outcome.error,
                )
        return DeliveryOutcome(subscriber.client_id, DeliveryStatus.DELIVERED, attempts=attempts, degraded=degraded)
