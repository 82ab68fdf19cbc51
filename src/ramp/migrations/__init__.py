"""Database migrations for Ramp.

Forward-only Python scripts named NNN_description.py, each defining:

    VERSION = N  # Must match file prefix
    DESCRIPTION = "What this migration does"

    def upgrade(engine): ...
    def check(engine) -> bool: ...
"""

from ramp.migrations.runner import get_current_version, get_migrations, get_pending_migrations, migrate

__all__ = ["get_current_version", "get_migrations", "get_pending_migrations", "migrate"]
