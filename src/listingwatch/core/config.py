"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ManagerConfig:
    """Delivery settings consumed by the subscription manager."""

    # None disables the per-delivery deadline.
    send_timeout_seconds: Optional[float] = 30.0
    # Chat that receives a summary when a notify batch has failures.
    admin_client_id: Optional[Any] = None
