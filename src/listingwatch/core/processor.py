"""Core command processing.

This module is integration-agnostic. It only relies on the subscriber store
port, enabling other transports without changes here. The processor never
sends anything itself: it returns a Reply that the manager delivers after
the store write has succeeded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional

from listingwatch.core.commands import UNSUBSCRIBE_ALL, CommandType, ParsedCommand, parse_command
from listingwatch.core.errors import CommandError, InvalidArgument, NotFound, StorageFailure, UnknownCommand
from listingwatch.core.formatting import (
    derive_title,
    format_help,
    format_keywords_updated,
    format_subscribed,
    format_usage,
)
from listingwatch.core.models import ClientId, Subscriber, Subscription, normalize_keywords
from listingwatch.core.ports import SubscriberStore

LOGGER = logging.getLogger(__name__)

RETRY_LATER = "Sorry, your change could not be saved right now. Please try again later."


class ReplyKind(str, Enum):
    TEXT = "text"
    LISTING = "listing"


@dataclass(frozen=True)
class Reply(Generic[ClientId]):
    """What the manager should send back after a command."""

    kind: ReplyKind
    text: str = ""
    subscriber: Optional[Subscriber[ClientId]] = None


class CommandProcessor(Generic[ClientId]):
    """Applies parsed commands to subscriber state.

    Callers must serialize process() per client id; the read-modify-persist
    sequence below is not safe to interleave for one subscriber.
    """

    def __init__(self, store: SubscriberStore[ClientId]) -> None:
        self._store = store

    def process(self, client_id: ClientId, text: str) -> Reply[ClientId]:
        """Run one inbound command and return the reply to deliver."""

        try:
            # Creates the subscriber on first contact, even for input that
            # does not parse.
            subscriber = self._store.get(client_id)
            command = parse_command(text)
            return self._apply(subscriber, command)
        except UnknownCommand:
            LOGGER.info("Unknown command from %s", client_id)
            return Reply(ReplyKind.TEXT, text=format_usage())
        except CommandError as exc:
            LOGGER.info("Rejected command from %s: %s", client_id, exc.reply)
            return Reply(ReplyKind.TEXT, text=exc.reply)
        except StorageFailure:
            LOGGER.exception("Storage failure while processing command from %s", client_id)
            return Reply(ReplyKind.TEXT, text=RETRY_LATER)

    def _apply(self, subscriber: Subscriber[ClientId], command: ParsedCommand) -> Reply[ClientId]:
        if command.type is CommandType.HELP:
            return Reply(ReplyKind.TEXT, text=format_help())
        if command.type is CommandType.LIST:
            return Reply(ReplyKind.LISTING, subscriber=subscriber)

        if command.type is CommandType.SUBSCRIBE:
            reply = self._subscribe(subscriber, command)
        elif command.type is CommandType.UNSUBSCRIBE:
            reply = self._unsubscribe(subscriber, command.target)
        elif command.type in (CommandType.ENABLE, CommandType.DISABLE):
            reply = self._set_enabled(subscriber, command.target, command.type is CommandType.ENABLE)
        else:
            reply = self._edit_keywords(subscriber, command)

        # Persist before replying: an acknowledged change is always stored.
        self._store.save(subscriber)
        LOGGER.info("Applied %s for %s", command.type.value, subscriber.client_id)
        return Reply(ReplyKind.TEXT, text=reply)

    def _require(self, subscriber: Subscriber[ClientId], reference: str) -> Subscription:
        subscription = subscriber.find(reference)
        if subscription is None:
            raise NotFound(f"No subscription matches '{reference}'. Send 'list' to see yours.")
        return subscription

    def _subscribe(self, subscriber: Subscriber[ClientId], command: ParsedCommand) -> str:
        if subscriber.has_url(command.target):
            raise InvalidArgument(f"You are already subscribed to {command.target}")
        subscription = Subscription(
            # 'all' is reserved by 'unsubscribe all'.
            title=derive_title(command.target, subscriber.titles() | {UNSUBSCRIBE_ALL}),
            query_url=command.target,
            include_keywords=command.include_keywords,
            exclude_keywords=command.exclude_keywords,
        )
        subscriber.subscriptions.append(subscription)
        return format_subscribed(subscription)

    def _unsubscribe(self, subscriber: Subscriber[ClientId], reference: str) -> str:
        if reference.lower() == UNSUBSCRIBE_ALL:
            removed = len(subscriber.subscriptions)
            subscriber.subscriptions.clear()
            return f"Removed all {removed} subscription(s)."
        subscription = self._require(subscriber, reference)
        subscriber.subscriptions.remove(subscription)
        return f"Unsubscribed from '{subscription.title}'."

    def _set_enabled(self, subscriber: Subscriber[ClientId], reference: str, enabled: bool) -> str:
        subscription = self._require(subscriber, reference)
        subscription.enabled = enabled
        state = "enabled" if enabled else "disabled"
        return f"Notifications for '{subscription.title}' are {state}."

    def _edit_keywords(self, subscriber: Subscriber[ClientId], command: ParsedCommand) -> str:
        subscription = self._require(subscriber, command.target)
        keywords = normalize_keywords(command.keywords or [])
        if command.type is CommandType.INCLUDE:
            subscription.include_keywords = keywords
        else:
            subscription.exclude_keywords = keywords
        return format_keywords_updated(subscription, command.type.value, keywords)
