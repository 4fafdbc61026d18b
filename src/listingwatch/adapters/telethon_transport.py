"""Telethon transport adapter.

Logs in as a bot through MTProto with Telethon. Compared to the Bot API
transport this keeps a persistent connection and renders rich text as HTML.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from telethon import TelegramClient, events
from telethon.errors import RPCError

from listingwatch.core.errors import DeliveryFailure
from listingwatch.core.formatting import MarkupDialect
from listingwatch.core.models import RenderMode, TextOptions
from listingwatch.core.ports import InboundCallback

LOGGER = logging.getLogger(__name__)


def build_client(session_name: str, api_id: str, api_hash: str) -> TelegramClient:
    """Create a Telethon client from explicit credentials.

    The session name creates a local .session file holding the bot login.
    """

    # Fail fast on missing credentials to avoid an ambiguous login error.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    LOGGER.info("Initializing Telegram client")
    return TelegramClient(session_name, int(api_id), api_hash)


class TelethonTransport:
    """Transport that receives and sends through a Telethon bot session."""

    dialect = MarkupDialect.HTML

    def __init__(self, client: TelegramClient, bot_token: str) -> None:
        if not bot_token or not bot_token.strip():
            raise RuntimeError("Telegram bot token was not specified")
        self._client = client
        self._bot_token = bot_token.strip()
        self._started = False
        self._start_lock: Optional[asyncio.Lock] = None

    async def _ensure_started(self) -> None:
        if self._started:
            return
        # Parallel sends share one login.
        if self._start_lock is None:
            self._start_lock = asyncio.Lock()
        async with self._start_lock:
            if not self._started:
                await self._client.start(bot_token=self._bot_token)
                self._started = True

    async def receive_loop(self, callback: InboundCallback) -> None:
        """Register a message handler and block until disconnected."""

        async def handler(event) -> None:
            # Only direct chats carry commands; group chatter is ignored.
            if not event.is_private or not event.raw_text:
                return
            await callback(event.chat_id, event.raw_text)

        await self._ensure_started()
        self._client.add_event_handler(handler, events.NewMessage(incoming=True))
        LOGGER.info("Client connected. Listening for incoming messages...")
        await self._client.run_until_disconnected()

    async def send_text(self, client_id: int, text: str, options: TextOptions) -> bool:
        parse_mode = "html" if options.render_mode is RenderMode.RICH else None
        try:
            await self._ensure_started()
            message = await self._client.send_message(
                client_id,
                text,
                parse_mode=parse_mode,
                link_preview=options.preview_enabled,
            )
        except (RPCError, ConnectionError, OSError) as exc:
            raise DeliveryFailure(f"Telegram API error: {exc}") from exc
        return message is not None

    async def send_picture(self, client_id: int, caption: str, image_url: str) -> bool:
        try:
            await self._ensure_started()
            message = await self._client.send_file(client_id, file=image_url, caption=caption, parse_mode=None)
        except (RPCError, ConnectionError, OSError) as exc:
            raise DeliveryFailure(f"Telegram API error: {exc}") from exc
        return message is not None

    async def stop(self) -> None:
        if self._client.is_connected():
            await self._client.disconnect()
        self._started = False
