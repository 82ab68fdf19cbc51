"""Store timestamps as TIMESTAMP WITH TIME ZONE.

Version 1 created naive DateTime columns. On PostgreSQL their values then
depend on the session TimeZone, which skews the updated_at compare-and-set
and the stale cutoff. Existing values were written as UTC.

SQLite has no timezone-aware column type, so there is nothing to change.
"""

from sqlalchemy import inspect, text

VERSION = 3
DESCRIPTION = "Convert timestamp columns to timezone-aware"

COLUMNS = {
    "topic_intents": ("last_signal_at", "created_at", "updated_at"),
    "squads": ("created_at", "updated_at"),
    "squad_members": ("joined_at",),
    "squad_intents": ("detected_at",),
    "_schema_version": ("applied_at",),
}


def upgrade(engine):
    """Convert every naive timestamp column, reading old values as UTC."""
    if engine.dialect.name != "postgresql":
        return

    with engine.begin() as conn:
        for table, columns in COLUMNS.items():
            for column in columns:
                conn.execute(
                    text(
                        f'ALTER TABLE "{table}" ALTER COLUMN "{column}" '
                        f"TYPE TIMESTAMP WITH TIME ZONE "
                        f"USING \"{column}\" AT TIME ZONE 'UTC'"
                    )
                )


def check(engine) -> bool:
    """True when every listed column is already timezone-aware."""
    if engine.dialect.name != "postgresql":
        return True

    inspector = inspect(engine)
    existing = set(inspector.get_table_names())
    for table, columns in COLUMNS.items():
        if table not in existing:
            continue
        types = {c["name"]: c["type"] for c in inspector.get_columns(table)}
        for column in columns:
            if not getattr(types.get(column), "timezone", False):
                return False
    return True
