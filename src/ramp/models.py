"""Pydantic models for Ramp entities.

These models bridge between the database (SQLAlchemy Core) and application code,
providing validation and serialization.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class TopicPhase(str, Enum):
    """Lifecycle phase of a tracked topic."""

    NOTICED = "noticed"
    PROBING = "probing"
    SHIFTING = "shifting"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        """Completed and abandoned topics are never recomputed."""
        return self in (TopicPhase.COMPLETED, TopicPhase.ABANDONED)


class TopicCategory(str, Enum):
    """Coarse topic classification."""

    FOOD = "food"
    TRAVEL = "travel"
    NIGHTLIFE = "nightlife"
    ACTIVITY = "activity"
    OTHER = "other"


class SignalKind(str, Enum):
    """Interest signal categories emitted by the upstream classifier."""

    POSITIVE = "positive"
    COMMITTED = "committed"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


# =============================================================================
# Helper Functions
# =============================================================================


def utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes.

    SQLite stores datetimes as naive.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


# =============================================================================
# Signals
# =============================================================================


class IntentSignal(BaseModel):
    """One applied stimulus. Immutable once appended."""

    model_config = ConfigDict(frozen=True)

    signal: str
    delta: int
    message: str = ""
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class SignalWindow:
    """Fixed-capacity log of the most recent signals, oldest first.

    Appending beyond capacity drops the oldest entry.
    """

    def __init__(self, signals: Iterable[IntentSignal] = (), capacity: int = 10) -> None:
        self.capacity = capacity
        self._items: deque[IntentSignal] = deque(signals, maxlen=capacity)

    def append(self, signal: IntentSignal) -> None:
        self._items.append(signal)

    def to_list(self) -> list[IntentSignal]:
        return list(self._items)

    def to_json(self) -> list[dict[str, Any]]:
        return [s.model_dump(mode="json") for s in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[IntentSignal]:
        return iter(self._items)


# =============================================================================
# Topic Intent
# =============================================================================


class TopicIntent(BaseModel):
    """One tracked subject for one user."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    session_id: str | None = None
    topic: str
    category: TopicCategory | None = None
    confidence: int = Field(0, ge=0, le=100)
    phase: TopicPhase = TopicPhase.NOTICED
    signals: list[IntentSignal] = Field(default_factory=list)
    strategy: str | None = None
    last_signal_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("signals", mode="before")
    @classmethod
    def validate_signals(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("last_signal_at", "created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def is_active(self) -> bool:
        return not self.phase.is_terminal


class ClassifierResult(BaseModel):
    """Output of the upstream message classifier."""

    detected_topic: str | None = None
    interest_signal: str | None = None

    @field_validator("detected_topic", "interest_signal", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v


class TopicIntentUpdate(BaseModel):
    """Result of a mutation on a user's topics."""

    detected: bool
    topic_id: str | None = None
    topic: str | None = None
    confidence: int | None = None
    phase: TopicPhase | None = None
    strategy: str | None = None


# =============================================================================
# Conversion Helpers
# =============================================================================


T = TypeVar("T", bound=BaseModel)


def row_to_model(row, model_class: type[T]) -> T:
    """Convert SQLAlchemy row to Pydantic model.

    Args:
        row: SQLAlchemy row result.
        model_class: Target Pydantic model class.

    Returns:
        Instance of the model class.
    """
    return model_class.model_validate(row._mapping)
