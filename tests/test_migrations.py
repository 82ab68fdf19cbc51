"""Tests for the migration system."""

import importlib
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from sqlalchemy import inspect, select

from ramp.config import Config
from ramp.database import active_topics_index, get_engine, schema_version
from ramp.migrations import get_current_version, get_migrations, get_pending_migrations, migrate


@pytest.fixture
def fresh_engine(tmp_path: Path):
    """Create a test database engine (no tables yet)."""
    return get_engine(Config(data_dir=tmp_path))


class TestMigrationDiscovery:
    """Tests for migration file discovery and loading."""

    def test_versions_are_sequential(self) -> None:
        versions = [v for v, _ in get_migrations()]
        assert versions == list(range(1, len(versions) + 1))

    def test_migrations_have_contract(self) -> None:
        for _, module in get_migrations():
            assert isinstance(module.DESCRIPTION, str)
            assert callable(module.upgrade)
            assert callable(module.check)


class TestMigrate:
    """Tests for applying migrations."""

    def test_fresh_database_is_version_zero(self, fresh_engine) -> None:
        assert get_current_version(fresh_engine) == 0
        assert len(get_pending_migrations(fresh_engine)) == len(get_migrations())

    def test_migrate_creates_schema(self, fresh_engine) -> None:
        version = migrate(fresh_engine)

        assert version == len(get_migrations())
        tables = set(inspect(fresh_engine).get_table_names())
        assert {"topic_intents", "squads", "squad_members", "squad_intents", "_schema_version"} <= tables

        indexes = {ix["name"] for ix in inspect(fresh_engine).get_indexes("topic_intents")}
        assert active_topics_index.name in indexes

    def test_migrate_is_idempotent(self, fresh_engine) -> None:
        first = migrate(fresh_engine)
        second = migrate(fresh_engine)
        assert first == second
        assert get_pending_migrations(fresh_engine) == []

    def test_migrate_to_target(self, fresh_engine) -> None:
        assert migrate(fresh_engine, target_version=1) == 1
        assert [v for v, _ in get_pending_migrations(fresh_engine)] == [2, 3]

    def test_versions_recorded(self, fresh_engine) -> None:
        migrate(fresh_engine)
        with fresh_engine.connect() as conn:
            rows = conn.execute(select(schema_version.c.version, schema_version.c.description)).fetchall()
        assert [r.version for r in rows] == [1, 2, 3]
        assert all(r.description for r in rows)

    def test_index_migration_repairs_missing_index(self, fresh_engine) -> None:
        migrate(fresh_engine, target_version=1)
        active_topics_index.drop(fresh_engine)

        migrate(fresh_engine)
        indexes = {ix["name"] for ix in inspect(fresh_engine).get_indexes("topic_intents")}
        assert active_topics_index.name in indexes


class TestTimezoneMigration:
    """Tests for the timestamp conversion migration."""

    @pytest.fixture
    def migration(self):
        return importlib.import_module("ramp.migrations.003_timezone_aware_timestamps")

    def test_noop_on_sqlite(self, fresh_engine, migration) -> None:
        migrate(fresh_engine, target_version=2)
        assert migration.check(fresh_engine) is True
        migration.upgrade(fresh_engine)
        assert migrate(fresh_engine) == 3

    def test_postgres_converts_as_utc(self, migration) -> None:
        engine = MagicMock()
        engine.dialect.name = "postgresql"
        conn = engine.begin.return_value.__enter__.return_value

        migration.upgrade(engine)

        statements = [str(call.args[0]) for call in conn.execute.call_args_list]
        assert len(statements) == sum(len(cols) for cols in migration.COLUMNS.values())
        assert (
            'ALTER TABLE "topic_intents" ALTER COLUMN "updated_at" TYPE TIMESTAMP WITH TIME ZONE '
            "USING \"updated_at\" AT TIME ZONE 'UTC'"
        ) in statements
