"""Tests for the Pydantic models.

Covers validation, from_attributes mode and the signal window.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from ramp.models import (
    ClassifierResult,
    IntentSignal,
    SignalWindow,
    TopicIntent,
    TopicPhase,
    ensure_utc,
)


def _signal(i: int) -> IntentSignal:
    return IntentSignal(signal="neutral", delta=8, message=f"m{i}")


def test_ensure_utc() -> None:
    naive = datetime(2026, 1, 1, 12, 0)
    assert ensure_utc(naive).tzinfo == timezone.utc
    assert ensure_utc(None) is None


def test_phase_terminal() -> None:
    assert TopicPhase.COMPLETED.is_terminal
    assert TopicPhase.ABANDONED.is_terminal
    assert not TopicPhase.EXECUTING.is_terminal


class TestIntentSignal:
    def test_frozen(self) -> None:
        signal = _signal(0)
        with pytest.raises(ValidationError):
            signal.delta = 5

    def test_naive_timestamp_becomes_utc(self) -> None:
        signal = IntentSignal(signal="positive", delta=20, timestamp=datetime(2026, 1, 1))
        assert signal.timestamp.tzinfo == timezone.utc


class TestSignalWindow:
    """Tests for the bounded signal log."""

    def test_drops_oldest(self) -> None:
        window = SignalWindow(capacity=3)
        for i in range(5):
            window.append(_signal(i))
        assert len(window) == 3
        assert [s.message for s in window] == ["m2", "m3", "m4"]

    def test_to_json_is_plain_and_ordered(self) -> None:
        window = SignalWindow([_signal(i) for i in range(3)])
        raw = window.to_json()
        assert [item["message"] for item in raw] == ["m0", "m1", "m2"]
        assert isinstance(raw[0]["timestamp"], str)


class TestTopicIntent:
    """Tests for the topic model."""

    def test_confidence_bounds(self) -> None:
        with pytest.raises(ValidationError):
            TopicIntent(id="t", user_id="u", topic="x", confidence=101)
        with pytest.raises(ValidationError):
            TopicIntent(id="t", user_id="u", topic="x", confidence=-1)

    def test_null_signals(self) -> None:
        topic = TopicIntent(id="t", user_id="u", topic="x", signals=None)
        assert topic.signals == []

    def test_is_active(self) -> None:
        assert TopicIntent(id="t", user_id="u", topic="x").is_active
        assert not TopicIntent(id="t", user_id="u", topic="x", phase="completed").is_active


class TestClassifierResult:
    def test_blank_values_are_none(self) -> None:
        result = ClassifierResult(detected_topic="  ", interest_signal="")
        assert result.detected_topic is None
        assert result.interest_signal is None

    def test_values_stripped(self) -> None:
        result = ClassifierResult(detected_topic=" weekend trip ", interest_signal="positive")
        assert result.detected_topic == "weekend trip"
