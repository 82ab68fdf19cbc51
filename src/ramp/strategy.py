"""Strategy directives: what the assistant may do about a topic.

One Jinja2 template per non-terminal phase lives in prompts/strategy/.
Terminal topics get no directive.

    noticed    observe and react only, never offer to act
    probing    one pointed question about timing or specifics
    shifting   one concrete offer, optionally suggest friends
    executing  act now through the tool layer
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from ramp.categories import resolve_tool
from ramp.logging import get_logger
from ramp.models import IntentSignal, TopicIntent, TopicPhase
from ramp.social import SocialContext

log = get_logger("strategy")

DEFAULT_TEMPLATES_DIR = Path(__file__).parent / "prompts"

SUMMARY_SIGNALS = 3
SUMMARY_SNIPPET_CHARS = 40
MAX_FRIEND_NAMES = 2

# Phases whose directive can use social enrichment
SOCIAL_PHASES = frozenset({TopicPhase.SHIFTING, TopicPhase.EXECUTING})


def summarize_signals(signals: list[IntentSignal], limit: int = SUMMARY_SIGNALS) -> str:
    """Render the most recent signals as '"snippet" (+20), ...'."""
    recent = signals[-limit:] if limit > 0 else []
    parts = []
    for s in recent:
        sign = "+" if s.delta > 0 else ""
        parts.append(f'"{s.message[:SUMMARY_SNIPPET_CHARS]}" ({sign}{s.delta})')
    return ", ".join(parts)


class StrategyRenderer:
    """Renders phase directives from Jinja2 templates.

    Attributes:
        templates_dir: Directory holding strategy/<phase>.jinja2.
    """

    def __init__(self, templates_dir: Path = DEFAULT_TEMPLATES_DIR) -> None:
        self.templates_dir = templates_dir
        self.env = Environment(
            loader=FileSystemLoader(templates_dir),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(
        self,
        topic: TopicIntent,
        social_context: SocialContext | None = None,
    ) -> str | None:
        """Build the directive for a topic's current phase.

        Args:
            topic: Topic with confidence, phase and signals already updated.
            social_context: Friends sharing the topic's category, if known.

        Returns:
            Directive text, or None for completed/abandoned topics.

        Raises:
            TemplateNotFoundError: If the phase template is missing.
        """
        if topic.phase.is_terminal:
            return None

        friend_names: list[str] = []
        if social_context and topic.phase in SOCIAL_PHASES:
            friend_names = social_context.friend_names[:MAX_FRIEND_NAMES]

        context: dict[str, Any] = {
            "topic": topic,
            "signal_summary": summarize_signals(topic.signals),
            "friend_names": friend_names,
            "tool": resolve_tool(topic) if topic.phase == TopicPhase.EXECUTING else None,
        }

        template_path = f"strategy/{topic.phase.value}.jinja2"
        try:
            template = self.env.get_template(template_path)
        except TemplateNotFound as e:
            log.error("template_not_found", path=template_path)
            raise TemplateNotFoundError(
                f"Template not found: {template_path}. Searched in: {self.templates_dir}"
            ) from e

        return template.render(**context).strip()


class TemplateNotFoundError(Exception):
    """Raised when a strategy template cannot be found."""

    pass
