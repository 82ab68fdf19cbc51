"""Topic intent service: per-topic conversational confidence ramp.

Each topic detected in conversation gets its own confidence score (0-100)
and phase, which decide the strategy directive handed to the prompt
composer. One user can have several live topics at once.

Every mutation for a user runs as one transaction under that user's lock:

    lock -> sweep stale topics -> match/create target -> apply signal
         -> render strategy -> commit -> invalidate cache

Social enrichment happens after the commit, outside the lock, and is
written back with a compare-and-set so a slow social lookup never holds up
the next message for the same user.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar

from ramp import confidence, matcher, store
from ramp.cache import TopicCache
from ramp.categories import infer_category
from ramp.database import begin_write
from ramp.locks import UserLocks, acquire_transaction_lock
from ramp.logging import get_logger
from ramp.models import (
    ClassifierResult,
    IntentSignal,
    SignalKind,
    SignalWindow,
    TopicCategory,
    TopicIntent,
    TopicIntentUpdate,
    TopicPhase,
    utcnow,
)
from ramp.social import SocialContextProvider, fetch_social_context
from ramp.strategy import SOCIAL_PHASES, StrategyRenderer
from ramp.sweeper import sweep_stale_topics, sweep_user

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine

    from ramp.config import Config

log = get_logger("topic_intent")

T = TypeVar("T")

STRATEGY_PREVIEW_CHARS = 120


@dataclass
class _Outcome:
    """State of a topic after a committed mutation."""

    topic: TopicIntent
    old_phase: TopicPhase
    created: bool = False
    signal: IntentSignal | None = None


class TopicIntentService:
    """Tracks per-topic intent for every user.

    Args:
        engine: SQLAlchemy engine for the topic store.
        config: Application configuration.
        cache: Read cache; a fresh TopicCache is built when omitted.
        social: Optional social context provider.
        renderer: Strategy renderer; defaults to the bundled templates.
        locks: Per-user lock registry; share one across services in a process.
    """

    def __init__(
        self,
        engine: Engine,
        config: Config,
        cache: TopicCache | None = None,
        social: SocialContextProvider | None = None,
        renderer: StrategyRenderer | None = None,
        locks: UserLocks | None = None,
    ) -> None:
        self.engine = engine
        self.config = config
        self.settings = config.topic_intent
        self.cache = cache if cache is not None else TopicCache(self.settings.cache_ttl_seconds)
        self.social = social
        self.renderer = renderer or StrategyRenderer()
        self.locks = locks or UserLocks()

    # =========================================================================
    # Mutations
    # =========================================================================

    async def process_message(
        self,
        user_id: str,
        session_id: str | None,
        message: str,
        classifier_result: ClassifierResult | Mapping[str, Any],
    ) -> TopicIntentUpdate:
        """Detect or update the topic a message is about.

        Args:
            user_id: Message author.
            session_id: Conversation session, stored on newly created topics.
            message: Raw message text; a snippet is kept with the signal.
            classifier_result: Detected topic label and interest signal.

        Returns:
            The topic's new state, or ``detected=False`` when nothing applies.
        """
        if not isinstance(classifier_result, ClassifierResult):
            classifier_result = ClassifierResult.model_validate(classifier_result)

        if not classifier_result.detected_topic and not classifier_result.interest_signal:
            return TopicIntentUpdate(detected=False)

        outcome = await self._locked_transaction(
            user_id,
            lambda conn: self._process_in_transaction(
                conn, user_id, session_id, message or "", classifier_result
            ),
        )
        if outcome is None:
            return TopicIntentUpdate(detected=False)
        return await self._finish(user_id, outcome)

    async def record_signal(
        self,
        user_id: str,
        topic_id: str,
        signal: SignalKind | str,
        message: str = "",
    ) -> TopicIntentUpdate:
        """Apply a signal directly to a known topic, skipping detection.

        Terminal topics keep their phase and have no strategy; their
        confidence and signal log still update.
        """
        outcome = await self._locked_transaction(
            user_id,
            lambda conn: self._record_in_transaction(conn, user_id, topic_id, signal, message),
        )
        if outcome is None:
            return TopicIntentUpdate(detected=False)
        return await self._finish(user_id, outcome)

    async def abandon_topic(self, user_id: str, topic_id: str) -> bool:
        """Mark a topic as no longer relevant. Returns True if it was active."""
        return await self._end_topic(user_id, topic_id, TopicPhase.ABANDONED)

    async def complete_topic(self, user_id: str, topic_id: str) -> bool:
        """Mark a topic as done (action taken). Returns True if it was active."""
        return await self._end_topic(user_id, topic_id, TopicPhase.COMPLETED)

    async def sweep_stale(self) -> int:
        """Abandon stale topics for all users. Returns the number abandoned."""
        loop = asyncio.get_running_loop()
        count = await loop.run_in_executor(
            None, sweep_stale_topics, self.engine, self.settings.abandon_hours
        )
        if count:
            self._clear_cache()
        return count

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_active_topics(self, user_id: str, limit: int | None = None) -> list[TopicIntent]:
        """Active topics, warmest first (confidence desc, recency desc)."""
        if limit is None:
            limit = self.settings.default_limit
        if limit <= 0:
            return []

        cached = self._cache_get(user_id, limit)
        if cached is not None:
            return cached

        generation = self._cache_generation(user_id)
        loop = asyncio.get_running_loop()
        topics = await loop.run_in_executor(None, self._load_active, user_id, limit)
        self._cache_set(user_id, topics, limit, generation)
        return topics

    async def get_strategy(self, user_id: str) -> str | None:
        """Strategy directive of the user's warmest active topic."""
        topics = await self.get_active_topics(user_id, 1)
        if not topics:
            return None
        return topics[0].strategy

    # =========================================================================
    # Transaction bodies (run in the executor, inside the user's lock)
    # =========================================================================

    async def _locked_transaction(self, user_id: str, body: Callable[[Connection], T]) -> T:
        """Run body in one transaction under the user's lock.

        The stale sweep runs first. The cache is invalidated only after a
        successful commit; any error rolls everything back and propagates.

        If the caller is cancelled while the body is running, the lock stays
        held until the executor finishes, and a commit still invalidates.
        """
        loop = asyncio.get_running_loop()
        async with self.locks.hold(user_id):
            future = loop.run_in_executor(None, self._run_transaction, user_id, body)
            try:
                return await asyncio.shield(future)
            finally:
                if not future.done():
                    await asyncio.wait([future])
                if not future.cancelled() and future.exception() is None:
                    self._invalidate(user_id)

    def _run_transaction(self, user_id: str, body: Callable[[Connection], T]) -> T:
        with begin_write(self.engine) as conn:
            acquire_transaction_lock(conn, user_id)
            sweep_user(conn, user_id, self.settings.abandon_hours)
            return body(conn)

    def _process_in_transaction(
        self,
        conn: Connection,
        user_id: str,
        session_id: str | None,
        message: str,
        result: ClassifierResult,
    ) -> _Outcome | None:
        match = matcher.resolve(conn, user_id, result.detected_topic)
        if match.action == matcher.MatchAction.NONE:
            return None

        now = utcnow()
        if match.action == matcher.MatchAction.CREATE:
            topic = store.insert_topic(
                conn, user_id, match.label, match.category, session_id=session_id, now=now
            )
            created = True
        else:
            topic = match.topic
            created = False

        if result.interest_signal is not None:
            return self._apply_signal(conn, topic, result.interest_signal, message, now, created)

        if created:
            # New topic without a signal: noticed directive, empty log
            strategy = self.renderer.render(topic)
            store.save_state(
                conn,
                topic.id,
                confidence=topic.confidence,
                phase=topic.phase,
                signals=SignalWindow(capacity=self.settings.signal_window),
                strategy=strategy,
                now=now,
            )
            topic = topic.model_copy(update={"strategy": strategy})
            return _Outcome(topic, old_phase=topic.phase, created=True)

        store.touch(conn, topic.id, now)
        topic = topic.model_copy(update={"last_signal_at": now, "updated_at": now})
        return _Outcome(topic, old_phase=topic.phase)

    def _record_in_transaction(
        self,
        conn: Connection,
        user_id: str,
        topic_id: str,
        signal: SignalKind | str,
        message: str,
    ) -> _Outcome | None:
        topic = store.get_topic(conn, user_id, topic_id)
        if topic is None:
            return None
        return self._apply_signal(conn, topic, signal, message, utcnow(), created=False)

    def _apply_signal(
        self,
        conn: Connection,
        topic: TopicIntent,
        signal: SignalKind | str,
        message: str,
        now: datetime,
        created: bool,
    ) -> _Outcome:
        kind = signal.value if isinstance(signal, SignalKind) else str(signal)
        step = confidence.apply(topic.confidence, kind, topic.phase)

        entry = IntentSignal(
            signal=kind,
            delta=step.delta,
            message=message[: self.settings.snippet_chars],
            timestamp=now,
        )
        window = SignalWindow(topic.signals, capacity=self.settings.signal_window)
        window.append(entry)

        backfill: TopicCategory | None = None
        if topic.category is None:
            backfill = infer_category(topic.topic)

        updated = topic.model_copy(
            update={
                "confidence": step.confidence,
                "phase": step.phase,
                "signals": window.to_list(),
                "category": backfill or topic.category,
                "last_signal_at": now,
                "updated_at": now,
            }
        )
        strategy = self.renderer.render(updated)
        updated = updated.model_copy(update={"strategy": strategy})

        store.save_state(
            conn,
            topic.id,
            confidence=step.confidence,
            phase=step.phase,
            signals=window,
            strategy=strategy,
            category=backfill,
            now=now,
        )
        return _Outcome(updated, old_phase=topic.phase, created=created, signal=entry)

    async def _end_topic(self, user_id: str, topic_id: str, phase: TopicPhase) -> bool:
        changed = await self._locked_transaction(
            user_id, lambda conn: store.set_terminal(conn, user_id, topic_id, phase)
        )
        if changed:
            log.info(f"topic_{phase.value}", user_id=user_id, topic_id=topic_id)
        return changed

    # =========================================================================
    # Post-commit
    # =========================================================================

    async def _finish(self, user_id: str, outcome: _Outcome) -> TopicIntentUpdate:
        self._log_outcome(user_id, outcome)

        topic = outcome.topic
        strategy = topic.strategy
        if outcome.signal is not None and topic.phase in SOCIAL_PHASES and self.settings.social_enabled:
            strategy = await self._enrich_strategy(user_id, topic)

        return TopicIntentUpdate(
            detected=True,
            topic_id=topic.id,
            topic=topic.topic,
            confidence=topic.confidence,
            phase=topic.phase,
            strategy=strategy,
        )

    async def _enrich_strategy(self, user_id: str, topic: TopicIntent) -> str | None:
        """Re-render with social context and store it if the topic hasn't moved."""
        category = (topic.category or TopicCategory.OTHER).value
        context = await fetch_social_context(
            self.social,
            user_id,
            category,
            window_minutes=self.settings.social_window_minutes,
            timeout_seconds=self.settings.social_timeout_seconds,
        )
        if context is None:
            return topic.strategy

        enriched = self.renderer.render(topic, context)
        if enriched is None or enriched == topic.strategy:
            return topic.strategy

        stored = await self._locked_transaction(
            user_id,
            lambda conn: store.update_strategy_if_unchanged(
                conn, topic.id, enriched, topic.updated_at
            ),
        )
        if not stored:
            log.debug("strategy_enrichment_superseded", user_id=user_id, topic_id=topic.id)
            return topic.strategy

        log.debug(
            "strategy_enriched",
            user_id=user_id,
            topic_id=topic.id,
            friends=len(context.friend_names),
        )
        return enriched

    def _log_outcome(self, user_id: str, outcome: _Outcome) -> None:
        topic = outcome.topic

        if outcome.created:
            log.info(
                "topic_created",
                user_id=user_id,
                topic_id=topic.id,
                topic=topic.topic,
                category=topic.category.value if topic.category else None,
            )

        if outcome.signal is None:
            return

        log.info(
            "signal_recorded",
            user_id=user_id,
            topic_id=topic.id,
            topic=topic.topic,
            signal=outcome.signal.signal,
            delta=outcome.signal.delta,
            new_confidence=topic.confidence,
        )

        if outcome.old_phase != topic.phase:
            log.info(
                "phase_transition",
                user_id=user_id,
                topic_id=topic.id,
                topic=topic.topic,
                from_phase=outcome.old_phase.value,
                to_phase=topic.phase.value,
                confidence=topic.confidence,
            )

        if topic.strategy:
            log.debug(
                "strategy_generated",
                user_id=user_id,
                topic=topic.topic,
                phase=topic.phase.value,
                confidence=topic.confidence,
                strategy_preview=topic.strategy[:STRATEGY_PREVIEW_CHARS],
            )

    # =========================================================================
    # Store and cache helpers
    # =========================================================================

    def _load_active(self, user_id: str, limit: int) -> list[TopicIntent]:
        with self.engine.connect() as conn:
            return store.list_active(conn, user_id, limit)

    def _cache_get(self, user_id: str, limit: int) -> list[TopicIntent] | None:
        try:
            return self.cache.get(user_id, limit)
        except Exception as e:
            log.warning("topic_cache_error", op="get", user_id=user_id, error=str(e))
            return None

    def _cache_generation(self, user_id: str) -> Any:
        try:
            return self.cache.generation(user_id)
        except Exception as e:
            log.warning("topic_cache_error", op="generation", user_id=user_id, error=str(e))
            return None

    def _cache_set(self, user_id: str, topics: list[TopicIntent], limit: int, generation: Any) -> None:
        if generation is None:
            return
        try:
            self.cache.set(user_id, topics, limit, generation)
        except Exception as e:
            log.warning("topic_cache_error", op="set", user_id=user_id, error=str(e))

    def _invalidate(self, user_id: str) -> None:
        try:
            self.cache.invalidate(user_id)
        except Exception as e:
            log.warning("topic_cache_error", op="invalidate", user_id=user_id, error=str(e))

    def _clear_cache(self) -> None:
        try:
            self.cache.clear()
        except Exception as e:
            log.warning("topic_cache_error", op="clear", error=str(e))
