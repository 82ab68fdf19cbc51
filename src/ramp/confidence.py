"""Confidence engine: signal deltas and phase derivation.

Pure functions only. Directive wording lives in ramp.strategy.

    noticed (0-24) -> probing (25-59) -> shifting (60-84) -> executing (85-100)

Phase follows confidence in both directions. Completed and abandoned are
sinks set only by explicit calls or the staleness sweep.
"""

from __future__ import annotations

from dataclasses import dataclass

from ramp.models import SignalKind, TopicPhase

MIN_CONFIDENCE = 0
MAX_CONFIDENCE = 100

SIGNAL_DELTAS: dict[SignalKind, int] = {
    SignalKind.POSITIVE: 20,
    SignalKind.COMMITTED: 22,
    SignalKind.NEUTRAL: 8,
    SignalKind.NEGATIVE: -30,
}

# Lower bound (inclusive) for each non-terminal phase, highest first.
PHASE_THRESHOLDS: tuple[tuple[int, TopicPhase], ...] = (
    (85, TopicPhase.EXECUTING),
    (60, TopicPhase.SHIFTING),
    (25, TopicPhase.PROBING),
    (0, TopicPhase.NOTICED),
)


@dataclass
class ConfidenceStep:
    """Outcome of applying one signal."""

    confidence: int
    phase: TopicPhase
    delta: int


def signal_delta(signal: str | SignalKind | None) -> int:
    """Look up the confidence delta for a signal kind. Unknown kinds are 0."""
    if signal is None:
        return 0
    try:
        kind = SignalKind(signal)
    except ValueError:
        return 0
    return SIGNAL_DELTAS[kind]


def clamp(value: int, low: int = MIN_CONFIDENCE, high: int = MAX_CONFIDENCE) -> int:
    return max(low, min(high, value))


def phase_for(confidence: int) -> TopicPhase:
    """Derive the non-terminal phase for a confidence value."""
    for threshold, phase in PHASE_THRESHOLDS:
        if confidence >= threshold:
            return phase
    return TopicPhase.NOTICED


def apply(
    confidence: int,
    signal: str | SignalKind | None,
    current_phase: TopicPhase | None = None,
) -> ConfidenceStep:
    """Apply a signal to a confidence value.

    Args:
        confidence: Current confidence.
        signal: Signal kind; unrecognized kinds apply a zero delta.
        current_phase: When terminal, the phase is kept as is.

    Returns:
        New clamped confidence, resulting phase, and the delta used.
    """
    delta = signal_delta(signal)
    new_confidence = clamp(confidence + delta)

    if current_phase is not None and current_phase.is_terminal:
        return ConfidenceStep(new_confidence, current_phase, delta)

    return ConfidenceStep(new_confidence, phase_for(new_confidence), delta)
