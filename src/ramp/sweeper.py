"""Staleness sweep: abandon topics that went quiet.

sweep_user() runs at the start of every mutating transaction, so
abandonment piggybacks on normal traffic. sweep_stale_topics() covers users
who never come back and is meant for a periodic job (`ramp topics sweep`).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from ramp import store
from ramp.database import begin_write
from ramp.logging import get_logger
from ramp.models import utcnow

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine

log = get_logger("sweeper")

DEFAULT_ABANDON_HOURS = 72


def stale_cutoff(abandon_hours: float = DEFAULT_ABANDON_HOURS, now: datetime | None = None) -> datetime:
    return (now or utcnow()) - timedelta(hours=abandon_hours)


def sweep_user(
    conn: Connection,
    user_id: str,
    abandon_hours: float = DEFAULT_ABANDON_HOURS,
) -> int:
    """Abandon one user's stale topics in the current transaction."""
    count = store.abandon_stale(conn, stale_cutoff(abandon_hours), user_id=user_id)
    if count:
        log.info("stale_topics_abandoned", user_id=user_id, count=count, abandon_hours=abandon_hours)
    return count


def sweep_stale_topics(engine: Engine, abandon_hours: float = DEFAULT_ABANDON_HOURS) -> int:
    """Abandon stale topics for every user. Returns the number abandoned."""
    with begin_write(engine) as conn:
        count = store.abandon_stale(conn, stale_cutoff(abandon_hours))

    if count:
        log.info("stale_topics_abandoned", scope="global", count=count, abandon_hours=abandon_hours)
    return count
