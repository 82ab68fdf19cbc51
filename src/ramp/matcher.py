"""Topic matching: decide which topic a message is about.

A detected label matches an active topic when either label contains the
other, case-insensitively (Unicode casefolding, no wildcards). Among
several matches the warmest wins (highest confidence, then most recent
signal). Without a label the signal goes to the user's warmest active
topic.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ramp import store
from ramp.categories import infer_category
from ramp.models import TopicCategory, TopicIntent

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection


class MatchAction(str, Enum):
    """What the caller should do with the message."""

    MATCHED = "matched"  # label re-mentions an existing topic
    CREATE = "create"  # label is new for this user
    WARMEST = "warmest"  # no label, signal goes to the warmest topic
    NONE = "none"  # no label and no active topics


@dataclass
class TopicMatch:
    action: MatchAction
    topic: TopicIntent | None = None
    label: str | None = None
    category: TopicCategory | None = None


def labels_match(a: str, b: str) -> bool:
    """Bidirectional case-insensitive containment."""
    left, right = a.strip().casefold(), b.strip().casefold()
    if not left or not right:
        return False
    return left in right or right in left


def pick_warmest(candidates: list[TopicIntent]) -> TopicIntent | None:
    """Highest confidence, tie-broken by most recent signal."""
    if not candidates:
        return None
    return max(candidates, key=lambda t: (t.confidence, t.last_signal_at))


def find_matching(conn: Connection, user_id: str, label: str) -> list[TopicIntent]:
    """Active topics whose label contains, or is contained by, ``label``.

    Warmest first.
    """
    return [t for t in store.list_active(conn, user_id) if labels_match(t.topic, label)]


def resolve(conn: Connection, user_id: str, detected_topic: str | None) -> TopicMatch:
    """Resolve the target topic for a message inside the caller's transaction."""
    if detected_topic:
        target = pick_warmest(find_matching(conn, user_id, detected_topic))
        if target is not None:
            return TopicMatch(MatchAction.MATCHED, topic=target, label=detected_topic)
        return TopicMatch(
            MatchAction.CREATE,
            label=detected_topic,
            category=infer_category(detected_topic),
        )

    warmest = store.find_warmest(conn, user_id)
    if warmest is None:
        return TopicMatch(MatchAction.NONE)
    return TopicMatch(MatchAction.WARMEST, topic=warmest)
