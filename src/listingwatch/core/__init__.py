"""Core domain package for listingwatch.

Core contains command parsing, subscriber state handling, and notification
delivery policy without any Telegram or storage-specific code, keeping the
business logic portable across transports.
"""
