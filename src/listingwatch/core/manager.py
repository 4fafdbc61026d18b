"""Subscription manager: the single entry point between a transport and the core.

Inbound messages are processed one at a time per client id while different
clients run in parallel. Outbound notifications are dispatched concurrently
across subscribers from read-only snapshots and never abort the batch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Generic, List, Optional

from listingwatch.core.config import ManagerConfig
from listingwatch.core.dispatcher import NotificationDispatcher
from listingwatch.core.errors import StorageFailure
from listingwatch.core.filters import Selector
from listingwatch.core.keyed_lock import KeyedLock
from listingwatch.core.models import ClientId, DeliveryOutcome, DeliveryStatus, RenderMode, Subscriber
from listingwatch.core.ports import SubscriberStore, Transport
from listingwatch.core.processor import CommandProcessor, Reply, ReplyKind

LOGGER = logging.getLogger(__name__)

GENERIC_ERROR = "Sorry, something went wrong while handling your message. Please try again later."


class SubscriptionManager(Generic[ClientId]):
    """Bridges one transport to the command processor and the dispatcher."""

    def __init__(
        self,
        store: SubscriberStore[ClientId],
        transport: Transport[ClientId],
        config: Optional[ManagerConfig] = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._config = config or ManagerConfig()
        self._processor: CommandProcessor[ClientId] = CommandProcessor(store)
        self._dispatcher: NotificationDispatcher[ClientId] = NotificationDispatcher(transport)
        self._locks: KeyedLock[ClientId] = KeyedLock()
        self._receive_task: Optional[asyncio.Task] = None
        self._stopped = False

    async def on_inbound_message(self, client_id: ClientId, text: Optional[str]) -> None:
        """Handle one inbound chat message. Never raises."""

        if not text or not text.strip():
            return

        try:
            # The lock spans the reply so one client's replies keep command order.
            async with self._locks.hold(client_id):
                reply = self._processor.process(client_id, text)
                await self._deliver_reply(client_id, reply)
        except Exception:
            LOGGER.exception("Error while processing message from %s", client_id)
            await self._send_error_reply(client_id)

    async def _deliver_reply(self, client_id: ClientId, reply: Reply[ClientId]) -> None:
        if reply.kind is ReplyKind.LISTING and reply.subscriber is not None:
            await self._dispatcher.send_listing(reply.subscriber)
            return
        await self._dispatcher.send_text(client_id, reply.text, preview_enabled=False)

    async def _send_error_reply(self, client_id: ClientId) -> None:
        try:
            await self._dispatcher.send_text(client_id, GENERIC_ERROR, preview_enabled=False)
        except Exception:
            LOGGER.exception("Could not send error reply to %s", client_id)

    def _resolve(self, selector: Selector) -> List[Subscriber[ClientId]]:
        selected: List[Subscriber[ClientId]] = []
        for client_id in self._store.client_ids():
            try:
                subscriber = self._store.get(client_id)
            except StorageFailure:
                LOGGER.exception("Skipping subscriber %s: could not be read", client_id)
                continue
            if selector(subscriber):
                selected.append(subscriber)
        return selected

    async def _deliver(
        self,
        subscriber: Subscriber[ClientId],
        message: str,
        picture_url: Optional[str],
    ) -> DeliveryOutcome[ClientId]:
        client_id = subscriber.client_id
        if not picture_url:
            return await self._dispatcher.send_text(client_id, message)

        outcome = await self._dispatcher.send_picture(client_id, message, picture_url)
        if outcome.ok:
            return outcome
        # Prefer delivering the text over losing the notification entirely.
        fallback = await self._dispatcher.send_text(client_id, message, render_mode=RenderMode.PLAIN)
        return DeliveryOutcome(
            client_id,
            fallback.status,
            attempts=outcome.attempts + fallback.attempts,
            degraded=True,
            error=fallback.error,
        )

    async def _deliver_guarded(
        self,
        subscriber: Subscriber[ClientId],
        message: str,
        picture_url: Optional[str],
    ) -> DeliveryOutcome[ClientId]:
        client_id = subscriber.client_id
        timeout = self._config.send_timeout_seconds
        try:
            if timeout:
                return await asyncio.wait_for(self._deliver(subscriber, message, picture_url), timeout)
            return await self._deliver(subscriber, message, picture_url)
        except asyncio.TimeoutError:
            LOGGER.error("Delivery to %s exceeded %ss deadline", client_id, timeout)
            return DeliveryOutcome(client_id, DeliveryStatus.FAILED, error="timeout")
        except Exception as exc:
            LOGGER.exception("Unexpected error while notifying %s", client_id)
            return DeliveryOutcome(client_id, DeliveryStatus.FAILED, error=repr(exc))

    async def notify(
        self,
        selector: Selector,
        message: str,
        picture_url: Optional[str] = None,
    ) -> List[DeliveryOutcome[ClientId]]:
        """Push a notification to every subscriber the selector accepts.

        Returns one outcome per selected subscriber. Raises StorageFailure
        only when the subscriber set itself cannot be read.
        """

        subscribers = self._resolve(selector)
        if not subscribers:
            LOGGER.info("No subscribers selected for notification")
            return []

        outcomes = list(
            await asyncio.gather(
                *(self._deliver_guarded(subscriber, message, picture_url) for subscriber in subscribers)
            )
        )
        failed = [outcome for outcome in outcomes if not outcome.ok]
        LOGGER.info("Notification batch: delivered=%s failed=%s", len(outcomes) - len(failed), len(failed))
        if failed:
            await self._alert_admin(failed, len(outcomes))
        return outcomes

    async def _alert_admin(self, failed: List[DeliveryOutcome[ClientId]], total: int) -> None:
        admin = self._config.admin_client_id
        if admin is None:
            return
        recipients = ", ".join(str(outcome.client_id) for outcome in failed)
        summary = f"Delivery failed for {len(failed)} of {total} subscriber(s): {recipients}"
        try:
            await self._dispatcher.send_text(admin, summary, preview_enabled=False)
        except Exception:
            LOGGER.exception("Could not alert admin %s", admin)

    async def start(self) -> None:
        """Start the transport's receive loop in the background."""

        if self._receive_task is not None:
            return
        self._stopped = False
        self._receive_task = asyncio.create_task(self._transport.receive_loop(self.on_inbound_message))
        LOGGER.info("Listening for incoming messages")

    async def run_until_stopped(self) -> None:
        await self.start()
        task = self._receive_task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not self._stopped:
                raise

    async def stop(self) -> None:
        """Stop receiving and release the transport. Safe to call twice."""

        if self._stopped:
            return
        self._stopped = True
        try:
            await self._transport.stop()
        finally:
            task, self._receive_task = self._receive_task, None
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        LOGGER.info("Subscription manager stopped")

    async def __aenter__(self) -> "SubscriptionManager[ClientId]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
