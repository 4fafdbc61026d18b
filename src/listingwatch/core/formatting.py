"""Shared reply and listing formatting helpers.

Keeping formatting here prevents drift between transports and keeps messages
consistent regardless of delivery channel. Only the escaping differs per
rich-markup dialect.
"""

from __future__ import annotations

import html
import re
from enum import Enum
from typing import Iterable
from urllib.parse import unquote, urlsplit

from listingwatch.core.models import Subscriber, Subscription

LISTING_HEADER = "Your subscriptions:"
# Telegram rejects longer message texts.
MAX_MESSAGE_LENGTH = 4096

# Telegram MarkdownV2 treats every one of these as a formatting character.
MARKDOWN_V2_RESERVED = "_*[]()~`>#+-=|{}.!"
_MARKDOWN_V2_PATTERN = re.compile("([" + re.escape(MARKDOWN_V2_RESERVED) + "])")


class MarkupDialect(str, Enum):
    MARKDOWN_V2 = "markdown_v2"
    HTML = "html"


def escape_markup(text: str, dialect: MarkupDialect) -> str:
    """Escape text so the dialect renders it literally."""

    if dialect is MarkupDialect.MARKDOWN_V2:
        # Backslashes go first, otherwise they would be read as escapes.
        return _MARKDOWN_V2_PATTERN.sub(r"\\\1", text.replace("\\", "\\\\"))
    if dialect is MarkupDialect.HTML:
        return html.escape(text, quote=False)
    raise ValueError(f"Unsupported markup dialect: {dialect}")


def _bold(label: str, dialect: MarkupDialect) -> str:
    if dialect is MarkupDialect.MARKDOWN_V2:
        return f"*{label}*"
    return f"<b>{label}</b>"


def _join_keywords(keywords: Iterable[str]) -> str:
    return ", ".join(keywords)


def _render_subscription(subscription: Subscription, dialect: MarkupDialect) -> str:
    fields = [
        ("Title", subscription.title),
        ("URL", subscription.query_url),
        ("Included keywords", _join_keywords(subscription.include_keywords)),
        ("Excluded keywords", _join_keywords(subscription.exclude_keywords)),
        ("Enabled", str(subscription.enabled)),
    ]
    return "\n".join(
        f"{_bold(label, dialect)}: {escape_markup(value, dialect)}" for label, value in fields
    )


def render_subscription_listing(subscriber: Subscriber, dialect: MarkupDialect) -> str:
    """Build the multi-paragraph listing of every subscription.

    A subscriber without subscriptions gets the header line only.
    """

    paragraphs = [LISTING_HEADER]
    paragraphs.extend(_render_subscription(sub, dialect) for sub in subscriber.subscriptions)
    return "\n\n".join(paragraphs)


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Pack paragraphs into chunks of at most `limit` characters.

    Paragraphs are never cut, so markup stays balanced. A single paragraph
    over the limit is sent as its own chunk.
    """

    chunks: list[str] = []
    current = ""
    for paragraph in text.split("\n\n"):
        candidate = f"{current}\n\n{paragraph}" if current else paragraph
        if current and len(candidate) > limit:
            chunks.append(current)
            current = paragraph
        else:
            current = candidate
    chunks.append(current)
    return chunks


def derive_title(query_url: str, taken: set[str]) -> str:
    """Derive a readable, per-subscriber unique title from a query URL.

    `taken` holds the lower-cased titles already in use.
    """

    parts = urlsplit(query_url)
    segments = [segment for segment in parts.path.split("/") if segment]
    if segments:
        base = unquote(segments[-1])
        base = re.sub(r"[-_+]+", " ", base).strip() or parts.netloc
    else:
        base = parts.netloc
    title = base
    counter = 2
    while title.lower() in taken:
        title = f"{base} ({counter})"
        counter += 1
    return title


def format_usage() -> str:
    """Short usage hint sent for unknown input."""

    return "Unknown command. Send 'help' to see what I understand."


def format_help() -> str:
    """Generate help text for chat commands."""

    return """Commands:

list - show your subscriptions
subscribe <url> [include:k1,k2] [exclude:k1,k2] - watch a search URL
unsubscribe <url-or-title> - stop watching (use 'all' to remove everything)
enable <url-or-title> - resume notifications
disable <url-or-title> - pause notifications
include <url-or-title> k1,k2 - replace included keywords ('-' clears)
exclude <url-or-title> k1,k2 - replace excluded keywords ('-' clears)
help - show this help"""


def format_subscribed(subscription: Subscription) -> str:
    lines = [f"Subscribed to '{subscription.title}'", subscription.query_url]
    if subscription.include_keywords:
        lines.append(f"Included keywords: {_join_keywords(subscription.include_keywords)}")
    if subscription.exclude_keywords:
        lines.append(f"Excluded keywords: {_join_keywords(subscription.exclude_keywords)}")
    return "\n".join(lines)


def format_keywords_updated(subscription: Subscription, direction: str, keywords: list[str]) -> str:
    joined = _join_keywords(keywords) or "(none)"
    return f"{direction.capitalize()}d keywords for '{subscription.title}': {joined}"
