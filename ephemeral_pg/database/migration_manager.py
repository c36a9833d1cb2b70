"""
Migration Manager for ephemeral test databases.

Applies a directory of versioned SQL scripts to an open connection, in
version order, recording each one in a tracking table. Any failure stops
the run with a MigrationError.
"""

import asyncio
import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Tuple, Union

import asyncpg

from ephemeral_pg.errors import MigrationError

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = "schema_migrations"

# Companion scripts that undo a migration; never applied going forward
IGNORED_SUFFIXES = ("_rollback.sql", ".down.sql")


class MigrationManager:
    """Applies versioned SQL migrations to a single connection."""

    def __init__(self, migrations_dir: Union[str, Path], command_timeout: float = 60.0):
        self.migrations_dir = Path(migrations_dir)
        self.command_timeout = command_timeout

    async def initialize_migrations_table(self, conn: asyncpg.Connection) -> None:
        """Create the migrations table if it doesn't exist."""
        try:
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
                    version BIGINT PRIMARY KEY,
                    name VARCHAR(255) NOT NULL,
                    applied_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    checksum VARCHAR(64) NOT NULL
                )
            """, timeout=self.command_timeout)
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise MigrationError(f"Failed to create migrations table: {e}")
        except asyncio.TimeoutError:
            raise MigrationError(f"Timed out creating migrations table after {self.command_timeout}s")

    async def get_applied_migrations(self, conn: asyncpg.Connection) -> Dict[int, str]:
        """Get already applied migration versions mapped to their checksums."""
        try:
            rows = await conn.fetch(
                f"SELECT version, checksum FROM {MIGRATIONS_TABLE} ORDER BY version",
                timeout=self.command_timeout
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise MigrationError(f"Failed to read applied migrations: {e}")
        except asyncio.TimeoutError:
            raise MigrationError(f"Timed out reading applied migrations after {self.command_timeout}s")
        return {row['version']: row['checksum'] for row in rows}

    def get_available_migrations(self) -> List[Tuple[int, str, Path]]:
        """
        Get available migration files sorted by version.

        Raises:
            MigrationError: If the directory is missing or two files share a version
        """
        if not self.migrations_dir.is_dir():
            raise MigrationError(f"Migration directory not found: {self.migrations_dir}")

        migrations = []
        seen: Dict[int, Path] = {}

        for file_path in self.migrations_dir.glob("*.sql"):
            if file_path.name.startswith((".", "__")) or file_path.name.endswith(IGNORED_SUFFIXES):
                continue

            # e.g. 001_initial_schema.sql or 20240101120000_add_todos.up.sql
            stem = file_path.name[:-len(".up.sql")] if file_path.name.endswith(".up.sql") else file_path.stem
            version_str, _, name = stem.partition('_')
            try:
                version = int(version_str)
            except ValueError:
                logger.warning(f"Invalid migration filename format: {file_path.name}")
                continue

            if version in seen:
                raise MigrationError(
                    f"Duplicate migration version {version}: {seen[version].name} and {file_path.name}",
                    version=version
                )
            seen[version] = file_path
            migrations.append((version, name or stem, file_path))

        return sorted(migrations, key=lambda x: x[0])

    @staticmethod
    def checksum(sql_content: str) -> str:
        return hashlib.sha256(sql_content.encode('utf-8')).hexdigest()

    @staticmethod
    def read_migration(version: int, name: str, file_path: Path) -> str:
        """
        Read a migration file as UTF-8 text.

        Raises:
            MigrationError: If the file cannot be read or is not valid UTF-8
        """
        try:
            return file_path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise MigrationError(
                f"Cannot read migration {version} ({name}) from {file_path.name}: {e}",
                version=version, name=name
            )

    async def apply_migration(self, conn: asyncpg.Connection, version: int, name: str, file_path: Path) -> None:
        """Apply a single migration and record it in the same transaction."""
        sql_content = self.read_migration(version, name, file_path)
        checksum = self.checksum(sql_content)

        try:
            async with conn.transaction():
                if sql_content.strip():
                    await conn.execute(sql_content, timeout=self.command_timeout)
                else:
                    logger.warning(f"Migration {version} ({name}) is empty, recording without executing")

                await conn.execute(
                    f"""
                    INSERT INTO {MIGRATIONS_TABLE} (version, name, applied_at, checksum)
                    VALUES ($1, $2, $3, $4)
                    """,
                    version, name, datetime.now(timezone.utc), checksum,
                    timeout=self.command_timeout
                )
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise MigrationError(f"Failed to apply migration {version} ({name}): {e}", version=version, name=name)
        except asyncio.TimeoutError:
            raise MigrationError(
                f"Migration {version} ({name}) timed out after {self.command_timeout}s",
                version=version, name=name
            )

        logger.debug(f"Applied migration {version}: {name}")

    async def run(self, conn: asyncpg.Connection) -> int:
        """
        Run all pending migrations against an open connection.

        Args:
            conn: Connection to the database being migrated

        Returns:
            Number of migrations applied

        Raises:
            MigrationError: If any migration cannot be applied
        """
        available_migrations = self.get_available_migrations()
        await self.initialize_migrations_table(conn)
        applied = await self.get_applied_migrations(conn)

        logger.debug(f"Found {len(applied)} applied and {len(available_migrations)} available migrations")

        applied_count = 0
        for version, name, file_path in available_migrations:
            if version in applied:
                current = self.checksum(self.read_migration(version, name, file_path))
                if applied[version] != current:
                    raise MigrationError(
                        f"Migration {version} ({name}) was modified after it was applied",
                        version=version, name=name
                    )
                continue

            await self.apply_migration(conn, version, name, file_path)
            applied_count += 1

        logger.info(f"Applied {applied_count} migration(s) from {self.migrations_dir}")
        return applied_count

    async def get_migration_status(self, conn: asyncpg.Connection) -> Dict:
        """Get current migration status for an open connection."""
        await self.initialize_migrations_table(conn)
        applied = await self.get_applied_migrations(conn)
        available_migrations = self.get_available_migrations()

        pending = [m for m in available_migrations if m[0] not in applied]

        return {
            'applied_count': len(applied),
            'available_count': len(available_migrations),
            'pending_count': len(pending),
            'applied_versions': sorted(applied),
            'pending_migrations': [(v, n) for v, n, _ in pending]
        }
