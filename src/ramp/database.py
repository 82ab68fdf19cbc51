"""Database schema and connection management for Ramp.

Uses SQLAlchemy Core (not ORM) for explicit SQL control.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Connection, Engine
from ulid import ULID

from ramp.config import Config
from ramp.models import utcnow

# Shared metadata for all tables
metadata = MetaData()

TERMINAL_PHASES = ("completed", "abandoned")


# =============================================================================
# Topic Intents
# =============================================================================

topic_intents = Table(
    "topic_intents",
    metadata,
    Column("id", String, primary_key=True),  # ULID
    Column("user_id", String, nullable=False),
    Column("session_id", String, nullable=True),
    Column("topic", Text, nullable=False),  # "rooftop restaurant near X", "weekend trip"
    Column("category", String, nullable=True),  # food, travel, nightlife, activity, other
    Column("confidence", Integer, nullable=False, default=0),
    Column("phase", String, nullable=False, default="noticed"),
    Column("signals", JSON, nullable=False, default=list),  # [{signal, delta, message, timestamp}]
    Column("strategy", Text, nullable=True),  # current directive for the prompt composer
    Column("last_signal_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow),
    CheckConstraint("confidence BETWEEN 0 AND 100", name="ck_topic_intents_confidence"),
    CheckConstraint(
        "phase IN ('noticed', 'probing', 'shifting', 'executing', 'completed', 'abandoned')",
        name="ck_topic_intents_phase",
    ),
    Index("ix_topic_intents_user_phase", "user_id", "phase"),
    Index("ix_topic_intents_user_last_signal", "user_id", "last_signal_at"),
)

# Warmest-first lookups over active topics only
active_topics_index = Index(
    "ix_topic_intents_active",
    topic_intents.c.user_id,
    topic_intents.c.confidence,
    topic_intents.c.last_signal_at,
    sqlite_where=topic_intents.c.phase.not_in(TERMINAL_PHASES),
    postgresql_where=topic_intents.c.phase.not_in(TERMINAL_PHASES),
)


# =============================================================================
# Social graph (squads)
# =============================================================================

squads = Table(
    "squads",
    metadata,
    Column("id", String, primary_key=True),  # ULID
    Column("name", String, nullable=False),
    Column("creator_id", String, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow),
)

squad_members = Table(
    "squad_members",
    metadata,
    Column("id", String, primary_key=True),  # ULID
    Column("squad_id", String, ForeignKey("squads.id"), nullable=False),
    Column("user_id", String, nullable=False),
    Column("display_name", String, nullable=True),
    Column("status", String, nullable=False, default="accepted"),  # pending, accepted
    Column("joined_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Index("ix_squad_members_squad_user", "squad_id", "user_id", unique=True),
    Index("ix_squad_members_user", "user_id"),
)

squad_intents = Table(
    "squad_intents",
    metadata,
    Column("id", String, primary_key=True),  # ULID
    Column("squad_id", String, ForeignKey("squads.id"), nullable=False),
    Column("user_id", String, nullable=False),
    Column("intent_text", Text, nullable=False),
    Column("category", String, nullable=False),
    Column("detected_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Index("ix_squad_intents_squad_detected", "squad_id", "detected_at"),
)


# =============================================================================
# Schema Version (for migrations)
# =============================================================================

schema_version = Table(
    "_schema_version",
    metadata,
    Column("version", Integer, primary_key=True),
    Column("applied_at", DateTime(timezone=True), nullable=False),
    Column("description", String, nullable=True),
)


# =============================================================================
# Helper Functions
# =============================================================================


def generate_id() -> str:
    """Generate a new ULID for entities."""
    return str(ULID())


def get_engine(config: Config) -> Engine:
    """Create SQLAlchemy engine from config.

    Args:
        config: Application configuration.

    Returns:
        SQLAlchemy Engine instance.
    """
    if config.database.url:
        return create_engine(
            config.database.url,
            echo=config.log_level == "DEBUG",
            pool_pre_ping=True,
        )

    db_path = config.database_path

    # Ensure data directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=config.log_level == "DEBUG",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_conn, _record) -> None:
        # Hand transaction control to SQLAlchemy so _sqlite_begin owns BEGIN
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        # WAL mode for better concurrency
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn) -> None:
        # Writers take the lock at BEGIN; deferred lock upgrades fail with SQLITE_BUSY
        if conn.get_execution_options().get("write_lock"):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return engine


@contextmanager
def begin_write(engine: Engine) -> Iterator[Connection]:
    """Open a write transaction.

    On SQLite the write lock is taken at BEGIN (BEGIN IMMEDIATE). Plain
    engine.connect() reads keep a deferred BEGIN and never block on writers.
    Commits on clean exit, rolls back on error.
    """
    with engine.connect() as conn:
        conn.execution_options(write_lock=True)
        with conn.begin():
            yield conn


def create_tables(engine: Engine) -> None:
    """Create all tables in the database.

    Args:
        engine: SQLAlchemy Engine instance.
    """
    metadata.create_all(engine)
