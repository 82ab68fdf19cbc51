"""Tests for strategy directive rendering."""

from pathlib import Path

import pytest

from ramp.models import IntentSignal, TopicCategory, TopicIntent, TopicPhase
from ramp.social import SocialContext
from ramp.strategy import StrategyRenderer, TemplateNotFoundError, summarize_signals


@pytest.fixture
def renderer() -> StrategyRenderer:
    return StrategyRenderer()


def _topic(phase: TopicPhase, confidence: int, label: str = "rooftop restaurant", **kwargs) -> TopicIntent:
    return TopicIntent(
        id="01TEST",
        user_id="u1",
        topic=label,
        category=kwargs.pop("category", TopicCategory.FOOD),
        confidence=confidence,
        phase=phase,
        **kwargs,
    )


class TestSummarizeSignals:
    """Tests for the signal summary line."""

    def test_empty(self) -> None:
        assert summarize_signals([]) == ""

    def test_last_three_with_signs(self) -> None:
        signals = [
            IntentSignal(signal="positive", delta=20, message="one"),
            IntentSignal(signal="positive", delta=20, message="two"),
            IntentSignal(signal="committed", delta=22, message="three"),
            IntentSignal(signal="negative", delta=-30, message="four"),
        ]
        summary = summarize_signals(signals)
        assert "one" not in summary
        assert summary == '"two" (+20), "three" (+22), "four" (-30)'

    def test_snippet_truncated(self) -> None:
        signals = [IntentSignal(signal="neutral", delta=8, message="x" * 80)]
        assert summarize_signals(signals) == f'"{"x" * 40}" (+8)'


class TestRender:
    """Tests for per-phase directives."""

    def test_noticed_forbids_offers(self, renderer: StrategyRenderer) -> None:
        text = renderer.render(_topic(TopicPhase.NOTICED, 20))
        assert 'Topic: "rooftop restaurant"' in text
        assert "Phase: NOTICED" in text
        assert "Do NOT offer" in text

    def test_probing_asks_one_question(self, renderer: StrategyRenderer) -> None:
        text = renderer.render(_topic(TopicPhase.PROBING, 42))
        assert "exactly ONE pointed question" in text
        assert "42%" in text

    def test_shifting_makes_one_offer(self, renderer: StrategyRenderer) -> None:
        text = renderer.render(_topic(TopicPhase.SHIFTING, 62))
        assert "exactly ONE concrete offer" in text
        assert "FYI" not in text

    def test_executing_names_tool(self, renderer: StrategyRenderer) -> None:
        text = renderer.render(_topic(TopicPhase.EXECUTING, 90))
        assert "Take action now" in text
        assert "`search_dineout`" in text
        assert 'query: "rooftop restaurant"' in text

    def test_executing_without_tool(self, renderer: StrategyRenderer) -> None:
        text = renderer.render(
            _topic(TopicPhase.EXECUTING, 90, label="new laptop", category=TopicCategory.OTHER)
        )
        assert "Take action now" in text
        assert "tool (query" not in text

    def test_signal_summary_included(self, renderer: StrategyRenderer) -> None:
        topic = _topic(
            TopicPhase.PROBING,
            42,
            signals=[IntentSignal(signal="committed", delta=22, message="let's do it")],
        )
        assert "Signals so far: \"let's do it\" (+22)" in renderer.render(topic)

    @pytest.mark.parametrize("phase", [TopicPhase.COMPLETED, TopicPhase.ABANDONED])
    def test_terminal_has_no_strategy(self, renderer: StrategyRenderer, phase: TopicPhase) -> None:
        assert renderer.render(_topic(phase, 90)) is None

    def test_output_is_stripped(self, renderer: StrategyRenderer) -> None:
        text = renderer.render(_topic(TopicPhase.NOTICED, 0))
        assert text == text.strip()


class TestSocialEnrichment:
    """Tests for friend suggestions in directives."""

    def test_shifting_mentions_two_friends(self, renderer: StrategyRenderer) -> None:
        context = SocialContext(category="food", friend_names=["Asha", "Ravi", "Meera"])
        text = renderer.render(_topic(TopicPhase.SHIFTING, 62), context)
        assert "FYI: Asha and Ravi mentioned something similar" in text
        assert "Meera" not in text

    def test_executing_offers_loop_in(self, renderer: StrategyRenderer) -> None:
        context = SocialContext(category="food", friend_names=["Asha"])
        text = renderer.render(_topic(TopicPhase.EXECUTING, 90), context)
        assert "Asha showed the same interest" in text

    def test_ignored_before_shifting(self, renderer: StrategyRenderer) -> None:
        context = SocialContext(category="food", friend_names=["Asha"])
        text = renderer.render(_topic(TopicPhase.PROBING, 42), context)
        assert "Asha" not in text


class TestTemplateErrors:
    def test_missing_template(self, tmp_path: Path) -> None:
        renderer = StrategyRenderer(templates_dir=tmp_path)
        with pytest.raises(TemplateNotFoundError):
            renderer.render(_topic(TopicPhase.NOTICED, 0))
