"""Social context: friends in the user's squads who want the same thing.

The tracker only reads from the social graph, and every read is optional.
fetch_social_context() never raises: failures and timeouts return None and
the strategy is rendered without enrichment.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import BaseModel, Field
from sqlalchemy import and_, select

from ramp.database import begin_write, generate_id, squad_intents, squad_members, squads
from ramp.logging import get_logger
from ramp.models import ensure_utc, utcnow

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = get_logger("social")

MAX_INTENT_TEXT = 300


class Squad(BaseModel):
    """A peer group the user belongs to."""

    id: str
    name: str


class MemberIntent(BaseModel):
    """One member's most recent intent in a category."""

    user_id: str
    display_name: str | None = None
    intent_text: str
    detected_at: datetime


class CorrelatedIntent(BaseModel):
    """A category at least two distinct squad members are interested in."""

    category: str
    member_intents: list[MemberIntent] = Field(default_factory=list)

    @property
    def strength(self) -> int:
        return len(self.member_intents)


class SocialContext(BaseModel):
    """Enrichment handed to the strategy renderer."""

    category: str
    friend_names: list[str]


@runtime_checkable
class SocialContextProvider(Protocol):
    """Read-only view of the social graph."""

    async def get_squads_for_user(self, user_id: str) -> list[Squad]: ...

    async def detect_correlated_intents(
        self, squad_id: str, window_minutes: int = 120
    ) -> list[CorrelatedIntent]: ...


class SquadSocialProvider:
    """SocialContextProvider backed by the squads tables.

    Queries run in the default executor so a slow database never blocks the
    event loop and callers can bound them with asyncio.wait_for.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def get_squads_for_user(self, user_id: str) -> list[Squad]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._squads_for_user, user_id)

    async def detect_correlated_intents(
        self, squad_id: str, window_minutes: int = 120
    ) -> list[CorrelatedIntent]:
        """Categories where two or more distinct members posted an intent.

        Sorted by number of members, strongest first.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._correlated_intents, squad_id, window_minutes)

    async def record_intent_for_user_squads(
        self, user_id: str, intent_text: str, category: str
    ) -> int:
        """Record an intent in every squad the user has joined.

        Returns the number of squads written to.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._record_intent, user_id, intent_text, category)

    def _squads_for_user(self, user_id: str) -> list[Squad]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(squads.c.id, squads.c.name)
                .select_from(squads.join(squad_members, squad_members.c.squad_id == squads.c.id))
                .where(
                    and_(
                        squad_members.c.user_id == user_id,
                        squad_members.c.status == "accepted",
                    )
                )
                .order_by(squads.c.updated_at.desc())
            ).fetchall()
        return [Squad(id=row.id, name=row.name) for row in rows]

    def _correlated_intents(self, squad_id: str, window_minutes: int) -> list[CorrelatedIntent]:
        since = utcnow() - timedelta(minutes=window_minutes)
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(
                    squad_intents.c.user_id,
                    squad_intents.c.intent_text,
                    squad_intents.c.category,
                    squad_intents.c.detected_at,
                    squad_members.c.display_name,
                )
                .select_from(
                    squad_intents.outerjoin(
                        squad_members,
                        and_(
                            squad_members.c.squad_id == squad_intents.c.squad_id,
                            squad_members.c.user_id == squad_intents.c.user_id,
                        ),
                    )
                )
                .where(
                    and_(
                        squad_intents.c.squad_id == squad_id,
                        squad_intents.c.detected_at > since,
                    )
                )
                .order_by(squad_intents.c.category, squad_intents.c.detected_at.desc())
            ).fetchall()

        by_category: dict[str, list[MemberIntent]] = {}
        for row in rows:
            members = by_category.setdefault(row.category, [])
            if any(m.user_id == row.user_id for m in members):
                continue
            members.append(
                MemberIntent(
                    user_id=row.user_id,
                    display_name=row.display_name,
                    intent_text=row.intent_text,
                    detected_at=ensure_utc(row.detected_at),
                )
            )

        correlated = [
            CorrelatedIntent(category=category, member_intents=members)
            for category, members in by_category.items()
            if len(members) >= 2
        ]
        return sorted(correlated, key=lambda c: c.strength, reverse=True)

    def _record_intent(self, user_id: str, intent_text: str, category: str) -> int:
        now = utcnow()
        with begin_write(self.engine) as conn:
            squad_ids = conn.execute(
                select(squad_members.c.squad_id).where(
                    and_(
                        squad_members.c.user_id == user_id,
                        squad_members.c.status == "accepted",
                    )
                )
            ).scalars().all()
            for squad_id in squad_ids:
                conn.execute(
                    squad_intents.insert().values(
                        id=generate_id(),
                        squad_id=squad_id,
                        user_id=user_id,
                        intent_text=intent_text[:MAX_INTENT_TEXT],
                        category=category,
                        detected_at=now,
                    )
                )
        return len(squad_ids)


async def _lookup(
    provider: SocialContextProvider,
    user_id: str,
    category: str,
    window_minutes: int,
) -> SocialContext | None:
    for squad in await provider.get_squads_for_user(user_id):
        correlated = await provider.detect_correlated_intents(squad.id, window_minutes)
        match = next((c for c in correlated if c.category == category), None)
        if match is None or match.strength < 2:
            continue
        friend_names = [
            m.display_name or "a friend" for m in match.member_intents if m.user_id != user_id
        ]
        if friend_names:
            return SocialContext(category=category, friend_names=friend_names)
    return None


async def fetch_social_context(
    provider: SocialContextProvider | None,
    user_id: str,
    category: str,
    window_minutes: int = 120,
    timeout_seconds: float = 2.0,
) -> SocialContext | None:
    """Best-effort lookup of friends sharing the topic's category."""
    if provider is None:
        return None
    try:
        return await asyncio.wait_for(
            _lookup(provider, user_id, category, window_minutes),
            timeout=timeout_seconds,
        )
    except Exception as e:
        log.warning(
            "social_context_failed",
            user_id=user_id,
            category=category,
            error=str(e) or type(e).__name__,
        )
        return None
