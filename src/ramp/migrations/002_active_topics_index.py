"""Partial index for warmest-first lookups over active topics.

Databases created at version 1 lack ix_topic_intents_active. This
migration is idempotent.
"""

from sqlalchemy import inspect

from ramp.database import active_topics_index

VERSION = 2
DESCRIPTION = "Add partial index on active topic_intents"


def upgrade(engine):
    """Create the partial index if missing."""
    active_topics_index.create(engine, checkfirst=True)


def check(engine) -> bool:
    """True when the index already exists."""
    indexes = {ix["name"] for ix in inspect(engine).get_indexes("topic_intents")}
    return active_topics_index.name in indexes
