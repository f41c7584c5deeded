"""Expiration handling.

Backends follow the memcached convention: 0 never expires, values up to
thirty days are relative seconds, anything larger is an absolute Unix
timestamp.
"""

from __future__ import annotations

import time

THIRTY_DAYS = 30 * 24 * 60 * 60


class ExpirationPolicy:
    """Normalizes caller-supplied expirations against a fixed "now"."""

    def __init__(self, now: int | None = None, threshold: int = THIRTY_DAYS) -> None:
        self.now = int(time.time()) if now is None else int(now)
        self.threshold = threshold

    def normalize(self, expiration: int | float | None) -> int:
        """Turn a long relative expiration into an absolute timestamp.

        A value above the threshold but not past "now" cannot be a sensible
        absolute timestamp (it lies in the past), so it is read as an offset.
        """
        expiration = int(expiration or 0)
        if self.threshold < expiration <= self.now:
            expiration += self.now
        return expiration


def ttl_seconds(
    expiration: int | float | None,
    now: int | None = None,
    threshold: int = THIRTY_DAYS,
) -> int | None:
    """Convert a memcached-style expiration into seconds to live.

    Returns None for "never expires". A result of zero or less means the
    entry is already expired.
    """
    expiration = int(expiration or 0)
    if expiration == 0:
        return None
    if expiration <= threshold:
        return expiration
    current = int(time.time()) if now is None else now
    return expiration - current
