"""Initial schema: topic_intents plus the squad tables used for social context."""

from sqlalchemy import inspect

from ramp.database import create_tables

VERSION = 1
DESCRIPTION = "Initial schema with topic_intents and squad tables"

REQUIRED_TABLES = {"topic_intents", "squads", "squad_members", "squad_intents"}


def upgrade(engine):
    """Create all tables defined in the schema."""
    create_tables(engine)


def check(engine) -> bool:
    """True when the core tables already exist."""
    return REQUIRED_TABLES.issubset(set(inspect(engine).get_table_names()))
