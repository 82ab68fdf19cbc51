"""Migration runner: discover, track and apply schema versions."""

from __future__ import annotations

import importlib
from pathlib import Path
from types import ModuleType

from sqlalchemy import func, inspect, select
from sqlalchemy.engine import Engine

from ramp.database import begin_write, schema_version
from ramp.logging import get_logger
from ramp.models import utcnow

log = get_logger("migrations")


def get_migrations() -> list[tuple[int, ModuleType]]:
    """Discover migration modules, sorted by version."""
    migrations_dir = Path(__file__).parent
    migrations: list[tuple[int, ModuleType]] = []

    for path in sorted(migrations_dir.glob("[0-9][0-9][0-9]_*.py")):
        module = importlib.import_module(f"ramp.migrations.{path.stem}")

        if not hasattr(module, "VERSION"):
            log.warning("migration_missing_version", file=path.stem)
            continue

        migrations.append((module.VERSION, module))

    return sorted(migrations, key=lambda item: item[0])


def get_current_version(engine: Engine) -> int:
    """Highest applied version, or 0 for a fresh database."""
    if schema_version.name not in inspect(engine).get_table_names():
        return 0

    with engine.connect() as conn:
        return conn.execute(select(func.max(schema_version.c.version))).scalar() or 0


def get_pending_migrations(engine: Engine) -> list[tuple[int, ModuleType]]:
    current = get_current_version(engine)
    return [(v, m) for v, m in get_migrations() if v > current]


def migrate(engine: Engine, target_version: int | None = None) -> int:
    """Apply pending migrations up to target_version (all when None).

    Returns:
        The schema version after migrating.
    """
    applied = 0

    for version, module in get_pending_migrations(engine):
        if target_version is not None and version > target_version:
            break

        description = getattr(module, "DESCRIPTION", "No description")
        log.info("applying_migration", version=version, description=description)

        try:
            if not module.check(engine):
                module.upgrade(engine)

            schema_version.create(engine, checkfirst=True)
            with begin_write(engine) as conn:
                conn.execute(
                    schema_version.insert().values(
                        version=version,
                        applied_at=utcnow(),
                        description=description,
                    )
                )
        except Exception as e:
            log.error("migration_failed", version=version, error=str(e))
            raise

        applied += 1
        log.info("migration_applied", version=version)

    if applied:
        log.info("migrations_complete", count=applied)
    else:
        log.info("no_pending_migrations")

    return get_current_version(engine)
