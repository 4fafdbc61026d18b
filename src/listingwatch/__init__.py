"""listingwatch: subscription and notification bot for crawler listings."""

__version__ = "0.1.0"
