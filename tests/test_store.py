"""Tests for topic store queries."""

from datetime import timedelta

import pytest
from sqlalchemy import update

from ramp import store
from ramp.database import topic_intents
from ramp.models import (
    IntentSignal,
    SignalWindow,
    TopicCategory,
    TopicPhase,
    utcnow,
)


def _set(engine, topic_id: str, **values) -> None:
    with engine.begin() as conn:
        conn.execute(update(topic_intents).where(topic_intents.c.id == topic_id).values(**values))


class TestInsertAndGet:
    """Tests for creating and fetching topics."""

    def test_insert_defaults(self, engine) -> None:
        with engine.begin() as conn:
            topic = store.insert_topic(conn, "u1", "weekend trip", TopicCategory.TRAVEL, session_id="s1")

        with engine.connect() as conn:
            loaded = store.get_topic(conn, "u1", topic.id)

        assert loaded is not None
        assert loaded.topic == "weekend trip"
        assert loaded.category == TopicCategory.TRAVEL
        assert loaded.confidence == 0
        assert loaded.phase == TopicPhase.NOTICED
        assert loaded.signals == []
        assert loaded.strategy is None
        assert loaded.session_id == "s1"
        assert loaded.last_signal_at.tzinfo is not None

    def test_get_topic_scoped_to_user(self, engine) -> None:
        with engine.begin() as conn:
            topic = store.insert_topic(conn, "u1", "weekend trip", TopicCategory.TRAVEL)

        with engine.connect() as conn:
            assert store.get_topic(conn, "u2", topic.id) is None
            assert store.get_topic(conn, "u1", "missing") is None


class TestListActive:
    """Tests for active listings and ordering."""

    def test_orders_by_confidence_then_recency(self, engine) -> None:
        now = utcnow()
        with engine.begin() as conn:
            a = store.insert_topic(conn, "u1", "a", TopicCategory.OTHER)
            b = store.insert_topic(conn, "u1", "b", TopicCategory.OTHER)
            c = store.insert_topic(conn, "u1", "c", TopicCategory.OTHER)
        _set(engine, a.id, confidence=40, last_signal_at=now - timedelta(hours=2))
        _set(engine, b.id, confidence=40, last_signal_at=now - timedelta(hours=1))
        _set(engine, c.id, confidence=70, last_signal_at=now - timedelta(hours=5))

        with engine.connect() as conn:
            ids = [t.id for t in store.list_active(conn, "u1")]

        assert ids == [c.id, b.id, a.id]

    def test_excludes_terminal_topics(self, engine) -> None:
        with engine.begin() as conn:
            a = store.insert_topic(conn, "u1", "a", TopicCategory.OTHER)
            b = store.insert_topic(conn, "u1", "b", TopicCategory.OTHER)
            store.set_terminal(conn, "u1", a.id, TopicPhase.COMPLETED)

        with engine.connect() as conn:
            active = store.list_active(conn, "u1")

        assert [t.id for t in active] == [b.id]

    def test_limit(self, engine) -> None:
        with engine.begin() as conn:
            for i in range(4):
                store.insert_topic(conn, "u1", f"t{i}", TopicCategory.OTHER)

        with engine.connect() as conn:
            assert len(store.list_active(conn, "u1", limit=2)) == 2
            assert store.find_warmest(conn, "u2") is None


class TestMutations:
    """Tests for state writes."""

    def test_save_state(self, engine) -> None:
        with engine.begin() as conn:
            topic = store.insert_topic(conn, "u1", "weekend trip", TopicCategory.TRAVEL)

        window = SignalWindow(capacity=10)
        window.append(IntentSignal(signal="positive", delta=20, message="hmm"))
        with engine.begin() as conn:
            store.save_state(
                conn,
                topic.id,
                confidence=20,
                phase=TopicPhase.NOTICED,
                signals=window,
                strategy="observe",
            )

        with engine.connect() as conn:
            loaded = store.get_topic(conn, "u1", topic.id)
        assert loaded.confidence == 20
        assert loaded.strategy == "observe"
        assert len(loaded.signals) == 1
        assert loaded.signals[0].delta == 20

    def test_set_terminal_only_once(self, engine) -> None:
        with engine.begin() as conn:
            topic = store.insert_topic(conn, "u1", "weekend trip", TopicCategory.TRAVEL)
            assert store.set_terminal(conn, "u1", topic.id, TopicPhase.ABANDONED) is True
            assert store.set_terminal(conn, "u1", topic.id, TopicPhase.COMPLETED) is False

        with engine.connect() as conn:
            assert store.get_topic(conn, "u1", topic.id).phase == TopicPhase.ABANDONED

    def test_set_terminal_rejects_active_phase(self, engine) -> None:
        with engine.begin() as conn:
            topic = store.insert_topic(conn, "u1", "weekend trip", TopicCategory.TRAVEL)
            with pytest.raises(ValueError):
                store.set_terminal(conn, "u1", topic.id, TopicPhase.PROBING)

    def test_update_strategy_compare_and_set(self, engine) -> None:
        with engine.begin() as conn:
            topic = store.insert_topic(conn, "u1", "weekend trip", TopicCategory.TRAVEL)

        with engine.begin() as conn:
            assert store.update_strategy_if_unchanged(conn, topic.id, "first", topic.updated_at)

        with engine.begin() as conn:
            store.touch(conn, topic.id, topic.updated_at + timedelta(seconds=1))

        with engine.begin() as conn:
            assert not store.update_strategy_if_unchanged(conn, topic.id, "second", topic.updated_at)

        with engine.connect() as conn:
            assert store.get_topic(conn, "u1", topic.id).strategy == "first"

    def test_abandon_stale_scoped_to_user(self, engine) -> None:
        old = utcnow() - timedelta(hours=80)
        with engine.begin() as conn:
            mine = store.insert_topic(conn, "u1", "a", TopicCategory.OTHER)
            theirs = store.insert_topic(conn, "u2", "b", TopicCategory.OTHER)
        _set(engine, mine.id, last_signal_at=old)
        _set(engine, theirs.id, last_signal_at=old)

        cutoff = utcnow() - timedelta(hours=72)
        with engine.begin() as conn:
            assert store.abandon_stale(conn, cutoff, user_id="u1") == 1
        with engine.begin() as conn:
            assert store.abandon_stale(conn, cutoff) == 1
