"""Chat command parser.

Parses inbound text into a command and its arguments:
- list
- subscribe <url> [include:k1,k2] [exclude:k1,k2]
- unsubscribe <url-or-title> | unsubscribe all
- enable / disable <url-or-title>
- include / exclude <url-or-title> k1,k2
- help

Commands are case-insensitive and may be written Telegram style
("/list", "/list@SomeBot").
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
from urllib.parse import urlsplit

from listingwatch.core.errors import InvalidArgument, UnknownCommand


class CommandType(str, Enum):
    LIST = "list"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    ENABLE = "enable"
    DISABLE = "disable"
    INCLUDE = "include"
    EXCLUDE = "exclude"
    HELP = "help"


_ALIASES = {
    "list": CommandType.LIST,
    "ls": CommandType.LIST,
    "subscribe": CommandType.SUBSCRIBE,
    "sub": CommandType.SUBSCRIBE,
    "unsubscribe": CommandType.UNSUBSCRIBE,
    "unsub": CommandType.UNSUBSCRIBE,
    "rm": CommandType.UNSUBSCRIBE,
    "enable": CommandType.ENABLE,
    "on": CommandType.ENABLE,
    "disable": CommandType.DISABLE,
    "off": CommandType.DISABLE,
    "include": CommandType.INCLUDE,
    "exclude": CommandType.EXCLUDE,
    "help": CommandType.HELP,
    "h": CommandType.HELP,
    "start": CommandType.HELP,
}

_COMMAND_RE = re.compile(r"^/?(\w+)(?:@\S+)?(?:\s+(.*))?$", re.IGNORECASE | re.DOTALL)

UNSUBSCRIBE_ALL = "all"
CLEAR_MARKER = "-"


@dataclass
class ParsedCommand:
    """Result of parsing one inbound message."""

    type: CommandType
    # url-or-title reference, or the URL for subscribe
    target: str = ""
    include_keywords: List[str] = field(default_factory=list)
    exclude_keywords: List[str] = field(default_factory=list)
    # keyword list for include/exclude edits
    keywords: Optional[List[str]] = None


def split_keywords(raw: str) -> List[str]:
    raw = raw.strip()
    if raw == CLEAR_MARKER:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def validate_url(url: str) -> str:
    parts = urlsplit(url)
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        raise InvalidArgument(f"'{url}' is not a valid http(s) URL.")
    return url


def _parse_subscribe(args: List[str]) -> ParsedCommand:
    if not args:
        raise InvalidArgument("Usage: subscribe <url> [include:k1,k2] [exclude:k1,k2]")
    url = validate_url(args[0])
    command = ParsedCommand(type=CommandType.SUBSCRIBE, target=url)
    for option in args[1:]:
        name, sep, value = option.partition(":")
        name = name.lower()
        if not sep or name not in ("include", "exclude"):
            raise InvalidArgument(f"Unexpected option '{option}'. Use include:k1,k2 or exclude:k1,k2.")
        if name == "include":
            command.include_keywords.extend(split_keywords(value))
        else:
            command.exclude_keywords.extend(split_keywords(value))
    return command


def _parse_keyword_edit(command_type: CommandType, rest: str) -> ParsedCommand:
    # The reference may be a title with spaces, so the keyword list is the
    # last whitespace-separated token.
    target, _, raw_keywords = rest.rpartition(" ")
    target = target.strip()
    if not target or not raw_keywords:
        raise InvalidArgument(f"Usage: {command_type.value} <url-or-title> k1,k2 ('-' clears)")
    return ParsedCommand(type=command_type, target=target, keywords=split_keywords(raw_keywords))


def parse_command(text: str) -> ParsedCommand:
    """Parse inbound text into a command.

    Raises UnknownCommand for anything that is not a command and
    InvalidArgument for a known command with malformed arguments.
    """

    text = (text or "").strip()
    match = _COMMAND_RE.match(text)
    command_type = _ALIASES.get(match.group(1).lower()) if match else None
    if command_type is None:
        raise UnknownCommand(text)

    rest = (match.group(2) or "").strip()
    args = rest.split()

    if command_type in (CommandType.LIST, CommandType.HELP):
        return ParsedCommand(type=command_type)
    if command_type is CommandType.SUBSCRIBE:
        return _parse_subscribe(args)
    if command_type in (CommandType.INCLUDE, CommandType.EXCLUDE):
        return _parse_keyword_edit(command_type, rest)

    if not rest:
        raise InvalidArgument(f"Usage: {command_type.value} <url-or-title>")
    return ParsedCommand(type=command_type, target=rest)
