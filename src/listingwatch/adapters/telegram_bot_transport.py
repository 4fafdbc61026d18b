"""Telegram Bot API transport adapter.

Uses the Bot API over plain HTTPS so the bot needs nothing but its token.
The HTTP calls are blocking, so they run in a worker thread to keep the
event loop free for other clients.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional, Set, Tuple

from listingwatch.core.errors import DeliveryFailure
from listingwatch.core.formatting import MarkupDialect
from listingwatch.core.models import RenderMode, TextOptions
from listingwatch.core.ports import InboundCallback

LOGGER = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"
POLL_TIMEOUT_SECONDS = 25
SEND_TIMEOUT_SECONDS = 10
POLL_ERROR_BACKOFF_SECONDS = 5.0


class TelegramBotTransport:
    """Transport that talks to the Telegram Bot API with long polling."""

    dialect = MarkupDialect.MARKDOWN_V2

    def __init__(self, bot_token: str) -> None:
        if not bot_token or not bot_token.strip():
            raise RuntimeError("Telegram bot token was not specified")
        self._bot_token = bot_token.strip()
        self._offset = 0
        self._running = False
        self._tasks: Set[asyncio.Task] = set()

    def _endpoint(self, method: str) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"{API_BASE}/bot{self._bot_token}/{method}"

    def _call(self, method: str, payload: Dict[str, Any], timeout: float) -> Any:
        """POST a JSON payload and return the `result` field.

        Raises DeliveryFailure for HTTP, network, and API-level errors.
        """

        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        request = urllib.request.Request(self._endpoint(method), data=data, method="POST")
        request.add_header("Content-Type", "application/json; charset=utf-8")
        try:
            with urllib.request.urlopen(request, timeout=timeout) as response:
                body = json.loads(response.read().decode("utf-8", errors="replace"))
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="replace")[:300]
            raise DeliveryFailure(f"Bot API error {e.code} on {method}: {detail}") from e
        except (urllib.error.URLError, OSError, ValueError) as e:
            raise DeliveryFailure(f"Bot API request {method} failed: {e}") from e
        if not body.get("ok"):
            raise DeliveryFailure(f"Bot API rejected {method}: {body.get('description', 'unknown error')}")
        return body.get("result")

    async def _request(self, method: str, payload: Dict[str, Any], timeout: float) -> Any:
        return await asyncio.to_thread(self._call, method, payload, timeout)

    @staticmethod
    def text_payload(chat_id: int, text: str, options: TextOptions) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": not options.preview_enabled,
        }
        if options.render_mode is RenderMode.RICH:
            payload["parse_mode"] = "MarkdownV2"
        return payload

    async def send_text(self, client_id: int, text: str, options: TextOptions) -> bool:
        result = await self._request("sendMessage", self.text_payload(client_id, text, options), SEND_TIMEOUT_SECONDS)
        return bool(result and result.get("message_id") is not None)

    async def send_picture(self, client_id: int, caption: str, image_url: str) -> bool:
        payload = {"chat_id": client_id, "photo": image_url, "caption": caption}
        result = await self._request("sendPhoto", payload, SEND_TIMEOUT_SECONDS)
        return bool(result and result.get("message_id") is not None)

    def parse_updates(self, updates: List[Dict[str, Any]]) -> List[Tuple[int, str]]:
        """Advance the offset and extract (chat_id, text) pairs."""

        messages: List[Tuple[int, str]] = []
        for update in updates:
            update_id = int(update.get("update_id", 0))
            self._offset = max(self._offset, update_id + 1)
            # Edited messages are ignored so a command is never applied twice.
            message = update.get("message")
            if not isinstance(message, dict):
                continue
            text = message.get("text")
            chat_id = (message.get("chat") or {}).get("id")
            if not text or chat_id is None:
                continue
            messages.append((int(chat_id), text))
        return messages

    async def _poll(self) -> List[Tuple[int, str]]:
        payload = {
            "offset": self._offset,
            "timeout": POLL_TIMEOUT_SECONDS,
            "allowed_updates": ["message"],
        }
        updates = await self._request("getUpdates", payload, POLL_TIMEOUT_SECONDS + 10)
        return self.parse_updates(updates or [])

    def _spawn(self, callback: InboundCallback, chat_id: int, text: str) -> None:
        task = asyncio.create_task(callback(chat_id, text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def receive_loop(self, callback: InboundCallback) -> None:
        """Long-poll getUpdates and hand each text message to callback.

        Each message runs in its own task so a slow command does not block
        other chats.
        """

        self._running = True
        LOGGER.info("Polling Telegram Bot API for updates")
        while self._running:
            try:
                messages = await self._poll()
            except DeliveryFailure as exc:
                LOGGER.error("Polling failed: %s", exc)
                await asyncio.sleep(POLL_ERROR_BACKOFF_SECONDS)
                continue
            except Exception:
                LOGGER.exception("Unexpected polling error")
                await asyncio.sleep(POLL_ERROR_BACKOFF_SECONDS)
                continue
            for chat_id, text in messages:
                self._spawn(callback, chat_id, text)

    async def stop(self, timeout: Optional[float] = 10.0) -> None:
        """Stop polling and wait briefly for in-flight message tasks."""

        self._running = False
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)
