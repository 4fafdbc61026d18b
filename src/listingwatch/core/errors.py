"""Error taxonomy for the core.

User-facing command errors carry the text that is replied to the client;
delivery and storage errors are operational and only ever logged.
"""

from __future__ import annotations


class ListingWatchError(Exception):
    """Base class for all listingwatch errors."""


class CommandError(ListingWatchError):
    """A user input problem that is answered with a reply, not logged as an error."""

    def __init__(self, reply: str) -> None:
        super().__init__(reply)
        self.reply = reply


class InvalidArgument(CommandError):
    pass


class NotFound(CommandError):
    pass


class UnknownCommand(CommandError):
    pass


class DeliveryFailure(ListingWatchError):
    """The transport could not deliver a message."""


class StorageFailure(ListingWatchError):
    """The subscriber store could not be read or written."""
