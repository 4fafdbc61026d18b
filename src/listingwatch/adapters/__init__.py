"""Storage and transport adapters implementing the core ports."""
