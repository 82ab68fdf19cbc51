"""Per-user mutual exclusion.

Two layers:

- In process, one asyncio.Lock per raw user id. Keys are the ids
  themselves, so distinct users never share a lock.
- In the database transaction, a dialect lock for deployments with several
  processes. PostgreSQL gets pg_advisory_xact_lock(k1, k2) where k1/k2 are
  the signed 32-bit halves of a 64-bit BLAKE2b digest of the user id; it is
  released on commit or rollback. SQLite has no keyed lock and relies on
  its single-writer file lock plus the in-process layer.
"""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import text

from ramp.logging import get_logger

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

log = get_logger("locks")


def advisory_lock_keys(user_id: str) -> tuple[int, int]:
    """Derive two signed int4 lock keys from a user id."""
    digest = hashlib.blake2b(user_id.encode("utf-8"), digest_size=8).digest()
    high = int.from_bytes(digest[:4], "big", signed=True)
    low = int.from_bytes(digest[4:], "big", signed=True)
    return high, low


def acquire_transaction_lock(conn: Connection, user_id: str) -> None:
    """Take the database-level user lock for the current transaction."""
    if conn.dialect.name == "postgresql":
        high, low = advisory_lock_keys(user_id)
        conn.execute(
            text("SELECT pg_advisory_xact_lock(:high, :low)"),
            {"high": high, "low": low},
        )


class UserLocks:
    """Registry of per-user asyncio locks.

    Entries are dropped once no task holds or waits on them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._waiters[user_id] = self._waiters.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[user_id] -= 1
            if self._waiters[user_id] == 0:
                del self._waiters[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)
