"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Iterable, List, Optional, TypeVar

ClientId = TypeVar("ClientId")


def normalize_keywords(keywords: Iterable[str]) -> List[str]:
    """Lower-case, strip, and de-duplicate keywords while keeping order."""

    normalized: List[str] = []
    for keyword in keywords:
        value = keyword.strip().lower()
        if value and value not in normalized:
            normalized.append(value)
    return normalized


@dataclass
class Subscription:
    """A named watch on a query URL with keyword filters."""

    title: str
    query_url: str
    include_keywords: List[str] = field(default_factory=list)
    exclude_keywords: List[str] = field(default_factory=list)
    enabled: bool = True

    def __post_init__(self) -> None:
        if not self.title or not self.query_url:
            raise ValueError("Subscription requires a title and a query URL")
        self.include_keywords = normalize_keywords(self.include_keywords)
        self.exclude_keywords = normalize_keywords(self.exclude_keywords)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "query_url": self.query_url,
            "include_keywords": list(self.include_keywords),
            "exclude_keywords": list(self.exclude_keywords),
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Subscription":
        return cls(
            title=str(data["title"]),
            query_url=str(data["query_url"]),
            include_keywords=list(data.get("include_keywords") or []),
            exclude_keywords=list(data.get("exclude_keywords") or []),
            enabled=bool(data.get("enabled", True)),
        )


@dataclass
class Subscriber(Generic[ClientId]):
    """A chat client and the subscriptions it owns."""

    client_id: ClientId
    subscriptions: List[Subscription] = field(default_factory=list)

    def find(self, reference: str) -> Optional[Subscription]:
        """Resolve a url-or-title reference.

        An exact URL match wins over a title match; titles are compared
        case-insensitively.
        """

        reference = reference.strip()
        for subscription in self.subscriptions:
            if subscription.query_url == reference:
                return subscription
        lowered = reference.lower()
        for subscription in self.subscriptions:
            if subscription.title.lower() == lowered:
                return subscription
        return None

    def has_url(self, query_url: str) -> bool:
        return any(sub.query_url == query_url for sub in self.subscriptions)

    def titles(self) -> set[str]:
        return {sub.title.lower() for sub in self.subscriptions}

    def copy(self) -> "Subscriber[ClientId]":
        """Return a deep snapshot that can be mutated without side effects."""

        return copy.deepcopy(self)


class RenderMode(str, Enum):
    PLAIN = "plain"
    RICH = "rich"


@dataclass(frozen=True)
class TextOptions:
    """Per-call delivery options handed to the transport."""

    preview_enabled: bool = True
    render_mode: RenderMode = RenderMode.PLAIN


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryOutcome(Generic[ClientId]):
    """Terminal result of one dispatcher call for one subscriber."""

    client_id: ClientId
    status: DeliveryStatus
    attempts: int = 1
    degraded: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED
