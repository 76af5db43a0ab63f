"""Short-lived in-memory cache for alert dedupe flags and daily open values.

Entries expire after a per-entry TTL. Expired entries read as missing and
are purged lazily on access.
"""

import time
from collections.abc import Callable
from decimal import Decimal

from riskbot.logging import get_logger

logger = get_logger(__name__)


class AlertCache:
    """Key/value cache with per-entry expiry.

    Args:
        clock: Returns the current Unix time in seconds. Injected for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[object, float]] = {}

    def get(self, key: str) -> object | None:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, key: str, value: object, ttl_seconds: float) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    def was_sent(self, key: str) -> bool:
        """Whether an alert with this dedupe key was already delivered."""
        return self.get(key) is True

    def mark_sent(self, key: str, ttl_seconds: float) -> None:
        self.set(key, True, ttl_seconds)
        logger.debug("alert_marked_sent", key=key, ttl_seconds=ttl_seconds)

    def get_decimal(self, key: str) -> Decimal | None:
        value = self.get(key)
        return value if isinstance(value, Decimal) else None

    def purge_expired(self) -> int:
        """Drop all expired entries and return how many were removed."""
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)
