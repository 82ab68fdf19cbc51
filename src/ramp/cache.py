"""Short-lived cache of each user's active topics.

Never the system of record: misses, expiry and backend failures all fall
through to the store. The service invalidates a user's entry after every
committed mutation.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from ramp.models import TopicIntent


@dataclass
class _Entry:
    topics: list[TopicIntent]
    limit: int
    expires_at: float


class TopicCache:
    """Per-user TTL cache.

    An entry remembers the limit it was loaded with, so a read asking for
    more rows than were cached is treated as a miss.

    Each invalidation bumps the user's generation. A loader captures the
    generation before reading the store and passes it to set(); if a write
    was invalidated in between, the stale result is not stored.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._generations: dict[str, int] = {}
        self._epoch = 0

    def generation(self, user_id: str) -> tuple[int, int]:
        return self._epoch, self._generations.get(user_id, 0)

    def get(self, user_id: str, limit: int) -> list[TopicIntent] | None:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            self._entries.pop(user_id, None)
            return None
        if limit > entry.limit and len(entry.topics) >= entry.limit:
            return None
        return entry.topics[:limit]

    def set(
        self,
        user_id: str,
        topics: list[TopicIntent],
        limit: int,
        generation: tuple[int, int] | None = None,
    ) -> bool:
        """Store a user's topics. Returns False if skipped."""
        if self.ttl_seconds <= 0:
            return False
        if generation is not None and generation != self.generation(user_id):
            return False
        self._entries[user_id] = _Entry(list(topics), limit, self._clock() + self.ttl_seconds)
        return True

    def invalidate(self, user_id: str) -> None:
        self._entries.pop(user_id, None)
        self._generations[user_id] = self._generations.get(user_id, 0) + 1

    def clear(self) -> None:
        self._entries.clear()
        self._generations.clear()
        self._epoch += 1

    def __len__(self) -> int:
        return len(self._entries)
