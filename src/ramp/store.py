"""Topic store queries.

Every function takes an open Connection so callers control the
transaction boundary. Active means phase is not completed/abandoned.
Listings are ordered by confidence desc, then last_signal_at desc.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import and_, select, update

from ramp.database import TERMINAL_PHASES, generate_id, topic_intents
from ramp.models import (
    SignalWindow,
    TopicCategory,
    TopicIntent,
    TopicPhase,
    row_to_model,
    utcnow,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

_active = topic_intents.c.phase.not_in(TERMINAL_PHASES)
_warmest_first = (topic_intents.c.confidence.desc(), topic_intents.c.last_signal_at.desc())


def get_topic(conn: Connection, user_id: str, topic_id: str) -> TopicIntent | None:
    """Fetch one topic owned by user_id."""
    row = conn.execute(
        select(topic_intents).where(
            and_(topic_intents.c.id == topic_id, topic_intents.c.user_id == user_id)
        )
    ).first()
    return row_to_model(row, TopicIntent) if row else None


def list_active(conn: Connection, user_id: str, limit: int | None = None) -> list[TopicIntent]:
    """Non-terminal topics for a user, warmest first."""
    query = (
        select(topic_intents)
        .where(and_(topic_intents.c.user_id == user_id, _active))
        .order_by(*_warmest_first)
    )
    if limit is not None:
        query = query.limit(limit)
    return [row_to_model(row, TopicIntent) for row in conn.execute(query)]


def find_warmest(conn: Connection, user_id: str) -> TopicIntent | None:
    active = list_active(conn, user_id, limit=1)
    return active[0] if active else None


def insert_topic(
    conn: Connection,
    user_id: str,
    topic: str,
    category: TopicCategory,
    session_id: str | None = None,
    now: datetime | None = None,
) -> TopicIntent:
    """Create a topic at confidence 0, phase noticed."""
    now = now or utcnow()
    record = TopicIntent(
        id=generate_id(),
        user_id=user_id,
        session_id=session_id,
        topic=topic,
        category=category,
        confidence=0,
        phase=TopicPhase.NOTICED,
        signals=[],
        strategy=None,
        last_signal_at=now,
        created_at=now,
        updated_at=now,
    )
    conn.execute(
        topic_intents.insert().values(
            id=record.id,
            user_id=user_id,
            session_id=session_id,
            topic=topic,
            category=category.value,
            confidence=0,
            phase=TopicPhase.NOTICED.value,
            signals=[],
            strategy=None,
            last_signal_at=now,
            created_at=now,
            updated_at=now,
        )
    )
    return record


def save_state(
    conn: Connection,
    topic_id: str,
    *,
    confidence: int,
    phase: TopicPhase,
    signals: SignalWindow,
    strategy: str | None,
    category: TopicCategory | None = None,
    now: datetime | None = None,
) -> datetime:
    """Persist the result of applying a signal. Returns the write time."""
    now = now or utcnow()
    values = {
        "confidence": confidence,
        "phase": phase.value,
        "signals": signals.to_json(),
        "strategy": strategy,
        "last_signal_at": now,
        "updated_at": now,
    }
    if category is not None:
        values["category"] = category.value
    conn.execute(update(topic_intents).where(topic_intents.c.id == topic_id).values(**values))
    return now


def touch(conn: Connection, topic_id: str, now: datetime | None = None) -> datetime:
    """Mark a topic as mentioned without changing its confidence."""
    now = now or utcnow()
    conn.execute(
        update(topic_intents)
        .where(topic_intents.c.id == topic_id)
        .values(last_signal_at=now, updated_at=now)
    )
    return now


def set_terminal(conn: Connection, user_id: str, topic_id: str, phase: TopicPhase) -> bool:
    """Move an active topic into a terminal phase. Returns True if it changed."""
    if not phase.is_terminal:
        raise ValueError(f"{phase.value} is not a terminal phase")

    result = conn.execute(
        update(topic_intents)
        .where(
            and_(
                topic_intents.c.id == topic_id,
                topic_intents.c.user_id == user_id,
                _active,
            )
        )
        .values(phase=phase.value, strategy=None, updated_at=utcnow())
    )
    return result.rowcount > 0


def update_strategy_if_unchanged(
    conn: Connection,
    topic_id: str,
    strategy: str,
    expected_updated_at: datetime,
) -> bool:
    """Compare-and-set the strategy text on ``updated_at``.

    Returns False when another write landed first.
    """
    result = conn.execute(
        update(topic_intents)
        .where(
            and_(
                topic_intents.c.id == topic_id,
                topic_intents.c.updated_at == expected_updated_at,
                _active,
            )
        )
        .values(strategy=strategy)
    )
    return result.rowcount > 0


def abandon_stale(
    conn: Connection,
    cutoff: datetime,
    user_id: str | None = None,
) -> int:
    """Abandon active topics with last_signal_at before cutoff.

    Scoped to one user when user_id is given. Returns rows changed.
    """
    conditions = [_active, topic_intents.c.last_signal_at < cutoff]
    if user_id is not None:
        conditions.append(topic_intents.c.user_id == user_id)

    result = conn.execute(
        update(topic_intents)
        .where(and_(*conditions))
        .values(phase=TopicPhase.ABANDONED.value, strategy=None, updated_at=utcnow())
    )
    return result.rowcount
