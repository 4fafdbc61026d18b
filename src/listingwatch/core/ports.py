"""Ports (interfaces) used by the core.

Ports define the minimal contracts for storage and transport adapters so
that the core can be reused with different backends and chat platforms.
"""

from __future__ import annotations

from typing import Awaitable, Callable, List, Protocol

from listingwatch.core.formatting import MarkupDialect
from listingwatch.core.models import ClientId, Subscriber, TextOptions

InboundCallback = Callable[[ClientId, str], Awaitable[None]]


class SubscriberStore(Protocol[ClientId]):
    """Durable keyed storage for subscribers.

    Implementations raise StorageFailure when the backend is unavailable.
    """

    def get(self, client_id: ClientId) -> Subscriber[ClientId]:
        """Return a snapshot, creating an empty subscriber on first access."""
        ...

    def save(self, subscriber: Subscriber[ClientId]) -> None:
        """Persist one subscriber atomically."""
        ...

    def client_ids(self) -> List[ClientId]:
        ...


class Transport(Protocol[ClientId]):
    """Send/receive operations for one chat platform.

    send_* return False (or raise DeliveryFailure) when delivery failed.
    """

    dialect: MarkupDialect

    async def receive_loop(self, callback: InboundCallback) -> None:
        """Invoke callback once per inbound text message until stopped."""
        ...

    async def send_text(self, client_id: ClientId, text: str, options: TextOptions) -> bool:
        ...

    async def send_picture(self, client_id: ClientId, caption: str, image_url: str) -> bool:
        ...

    async def stop(self) -> None:
        ...
