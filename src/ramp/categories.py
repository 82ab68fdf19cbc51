"""Keyword maps for topic labels.

infer_category() classifies a free-text label into a TopicCategory.
resolve_tool() maps an executing topic to the downstream tool that can act
on it. Both are regex lookups: no LLM call, no I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ramp.models import TopicCategory, TopicIntent

CATEGORY_PATTERNS: list[tuple[re.Pattern[str], TopicCategory]] = [
    (
        re.compile(
            r"\b(food|eat|restaurant|cafe|biryani|pizza|burger|brunch|dinner|lunch|"
            r"swiggy|zomato|dine|cuisine|dish|meal|cook|recipe|bakery|dessert|"
            r"ice\s*cream|coffee|tea|chai)\b",
            re.IGNORECASE,
        ),
        TopicCategory.FOOD,
    ),
    (
        re.compile(
            r"\b(travel|trip|flight|hotel|stay|resort|airport|destination|vacation|"
            r"holiday|explore|trek|hike|beach|mountain|goa|manali|ooty|coorg)\b",
            re.IGNORECASE,
        ),
        TopicCategory.TRAVEL,
    ),
    (
        re.compile(
            r"\b(bar|pub|brewery|cocktail|nightclub|lounge|drinks?|beer|wine|"
            r"whiskey|party|clubbing|nightlife)\b",
            re.IGNORECASE,
        ),
        TopicCategory.NIGHTLIFE,
    ),
    (
        re.compile(
            r"\b(activity|movie|concert|event|show|game|sport|gym|yoga|fitness|park|"
            r"museum|adventure|cycling|running|swimming)\b",
            re.IGNORECASE,
        ),
        TopicCategory.ACTIVITY,
    ),
]

# Most specific first
KEYWORD_TOOLS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(grocery|grocer|blinkit|instamart|zepto|bigbasket)\b", re.IGNORECASE), "compare_grocery_prices"),
    (re.compile(r"\b(swiggy|zomato|delivery|order\s*food)\b", re.IGNORECASE), "compare_food_prices"),
    (re.compile(r"\b(flight|fly|airport|airline)\b", re.IGNORECASE), "search_flights"),
    (re.compile(r"\b(hotel|stay|resort|accommodation|hostel)\b", re.IGNORECASE), "search_hotels"),
    (re.compile(r"\b(ride|cab|uber|ola|rapido|auto)\b", re.IGNORECASE), "compare_rides"),
    (
        re.compile(r"\b(restaurant|cafe|dine|dining|eat\s*out|brunch|dinner|lunch|rooftop)\b", re.IGNORECASE),
        "search_dineout",
    ),
    (re.compile(r"\b(bar|pub|brewery|cocktail|nightclub|lounge)\b", re.IGNORECASE), "search_dineout"),
]

CATEGORY_TOOLS: dict[TopicCategory, str] = {
    TopicCategory.FOOD: "search_dineout",
    TopicCategory.TRAVEL: "search_flights",
    TopicCategory.NIGHTLIFE: "search_dineout",
    TopicCategory.ACTIVITY: "search_places",
}


@dataclass
class ToolMapping:
    """Downstream tool resolved for a topic."""

    tool_name: str
    params: dict[str, str]


def infer_category(label: str) -> TopicCategory:
    """Classify a topic label. Returns OTHER when nothing matches."""
    for pattern, category in CATEGORY_PATTERNS:
        if pattern.search(label):
            return category
    return TopicCategory.OTHER


def resolve_tool(topic: TopicIntent) -> ToolMapping | None:
    """Map a topic to a tool.

    Keyword overrides are tried first, then the category fallback.
    Returns None when no tool applies.
    """
    for pattern, tool_name in KEYWORD_TOOLS:
        if pattern.search(topic.topic):
            return ToolMapping(tool_name, {"query": topic.topic})

    category = topic.category or infer_category(topic.topic)
    tool_name = CATEGORY_TOOLS.get(category)
    if tool_name:
        return ToolMapping(tool_name, {"query": topic.topic})

    return None
