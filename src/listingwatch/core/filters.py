"""Keyword filters and subscriber selectors used with SubscriptionManager.notify."""

from __future__ import annotations

from typing import Callable

from listingwatch.core.models import Subscriber, Subscription

Selector = Callable[[Subscriber], bool]


def passes_keyword_filter(subscription: Subscription, text: str) -> bool:
    """Return True when text should be delivered for this subscription.

    Matching logic:
    - If any exclude keyword is present, the text is rejected.
    - An empty include set accepts everything else.
    - Otherwise at least one include keyword must be present.
    Keywords are compared case-insensitively as substrings.
    """

    lowered = text.lower()
    if any(keyword in lowered for keyword in subscription.exclude_keywords):
        return False
    if not subscription.include_keywords:
        return True
    return any(keyword in lowered for keyword in subscription.include_keywords)


def every_subscriber(subscriber: Subscriber) -> bool:
    return True


def enabled_for_url(query_url: str) -> Selector:
    """Select subscribers with an enabled subscription on query_url."""

    def select(subscriber: Subscriber) -> bool:
        return any(sub.enabled and sub.query_url == query_url for sub in subscriber.subscriptions)

    return select


def matching_listing(query_url: str, listing_text: str) -> Selector:
    """Select subscribers whose enabled subscription on query_url accepts the listing."""

    def select(subscriber: Subscriber) -> bool:
        return any(
            sub.enabled and sub.query_url == query_url and passes_keyword_filter(sub, listing_text)
            for sub in subscriber.subscriptions
        )

    return select
