"""
Server Connection Manager for ephemeral test databases.

Builds administrative and database-scoped connection strings, opens
asyncpg connections and pools with bounded timeouts, and issues the
server-level DDL used to create and reclaim ephemeral databases.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

import asyncpg

from ephemeral_pg.errors import (
    DatabaseConnectionError,
    DatabaseCreationError,
    DatabaseNotFoundError,
)

logger = logging.getLogger(__name__)

URL_SCHEME = "postgres"

# Written into the database comment so orphans can be told apart from real databases
PROVENANCE_MARKER = "ephemeral-pg"

TERMINATE_SESSIONS_SQL = (
    "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
    "WHERE pid <> pg_backend_pid() AND datname = $1"
)


def quote_identifier(name: str) -> str:
    """Quote a PostgreSQL identifier, doubling embedded double quotes."""
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Quote a PostgreSQL string literal for utility statements that take no parameters."""
    return "'" + value.replace("'", "''") + "'"


def build_server_url(user: str, password: str, host: str, port: int) -> str:
    """
    Build the administrative connection string (no database selected).

    The password segment and its colon are omitted when the password is empty.
    """
    credentials = quote(user, safe='')
    if password:
        credentials = f"{credentials}:{quote(password, safe='')}"
    return f"{URL_SCHEME}://{credentials}@{host}:{port}"


def build_database_url(server_url: str, database_name: str) -> str:
    """Build the connection string scoped to a single database."""
    return f"{server_url}/{quote(database_name, safe='')}"


class ServerConnectionManager:
    """
    Opens connections to a PostgreSQL server and runs database-level DDL.

    Features:
    - Administrative connections (no database selected) for CREATE/DROP
    - Scoped connections and bounded pools for a named database
    - Timeouts on every round trip
    - asyncpg errors translated to the provisioning error hierarchy
    """

    def __init__(
        self,
        user: str,
        password: str,
        host: str,
        port: int,
        connect_timeout: float = 10.0,
        command_timeout: float = 60.0
    ):
        """
        Initialize ServerConnectionManager.

        Args:
            user: Database user
            password: Database password, empty for none
            host: Server host
            port: Server port
            connect_timeout: Seconds allowed for opening a connection
            command_timeout: Seconds allowed for a single statement
        """
        self.user = user
        self.password = password
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout

    @property
    def server_url(self) -> str:
        return build_server_url(self.user, self.password, self.host, self.port)

    def database_url(self, database_name: str) -> str:
        return build_database_url(self.server_url, database_name)

    async def connect(self, database_name: Optional[str] = None) -> asyncpg.Connection:
        """
        Open a single connection.

        Args:
            database_name: Database to connect to; None for an administrative connection

        Returns:
            Database connection

        Raises:
            DatabaseNotFoundError: If the database does not exist
            DatabaseConnectionError: If the connection fails for any other reason
        """
        url = self.database_url(database_name) if database_name else self.server_url
        target = database_name or f"{self.host}:{self.port}"

        try:
            conn = await asyncpg.connect(url, timeout=self.connect_timeout)
            logger.debug(f"Connection established to {target}")
            return conn

        except asyncpg.InvalidCatalogNameError as e:
            raise DatabaseNotFoundError(f"Database does not exist: {e}")
        except asyncpg.InvalidPasswordError as e:
            raise DatabaseConnectionError(f"Invalid password: {e}")
        except asyncpg.PostgresError as e:
            raise DatabaseConnectionError(f"PostgreSQL connection error: {e}")
        except asyncpg.InterfaceError as e:
            raise DatabaseConnectionError(f"Client connection error: {e}")
        except asyncio.TimeoutError as e:
            raise DatabaseConnectionError(f"Connection timeout after {self.connect_timeout}s: {e}")
        except OSError as e:
            raise DatabaseConnectionError(f"Cannot connect to host {self.host}:{self.port}: {e}")

    async def create_pool(self, database_name: str, max_size: int) -> asyncpg.pool.Pool:
        """
        Open a connection pool bound to a database.

        Args:
            database_name: Database the pool connects to
            max_size: Upper bound on concurrent connections

        Returns:
            An initialized asyncpg pool; the caller is responsible for closing it

        Raises:
            DatabaseConnectionError: If the pool cannot open its first connection
        """
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")

        try:
            pool = await asyncpg.create_pool(
                self.database_url(database_name),
                min_size=1,
                max_size=max_size,
                timeout=self.connect_timeout,
                command_timeout=self.command_timeout
            )
        except asyncpg.InvalidCatalogNameError as e:
            raise DatabaseNotFoundError(f"Database does not exist: {e}")
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise DatabaseConnectionError(f"Failed to open pool for {database_name}: {e}")
        except asyncio.TimeoutError as e:
            raise DatabaseConnectionError(f"Pool connection timeout after {self.connect_timeout}s: {e}")
        except OSError as e:
            raise DatabaseConnectionError(f"Cannot connect to host {self.host}:{self.port}: {e}")

        logger.debug(f"Opened pool for {database_name} (max_size={max_size})")
        return pool

    async def create_database(self, conn: asyncpg.Connection, database_name: str) -> None:
        """
        Create an empty database.

        Raises:
            DatabaseCreationError: If the database cannot be created
        """
        try:
            await conn.execute(
                f"CREATE DATABASE {quote_identifier(database_name)}",
                timeout=self.command_timeout
            )
        except asyncpg.DuplicateDatabaseError as e:
            raise DatabaseCreationError(f"Database {database_name} already exists: {e}")
        except asyncpg.InsufficientPrivilegeError as e:
            raise DatabaseCreationError(f"Not allowed to create database {database_name}: {e}")
        except asyncpg.PostgresError as e:
            raise DatabaseCreationError(f"Failed to create database {database_name}: {e}")
        except asyncio.TimeoutError:
            raise DatabaseCreationError(f"Timed out creating database {database_name}")

        logger.info(f"Created database {database_name}")

    async def record_provenance(self, conn: asyncpg.Connection, database_name: str) -> None:
        """
        Stamp a freshly created database with the comment the orphan reaper looks for.

        Raises:
            DatabaseCreationError: If the comment cannot be written
        """
        created_at = datetime.now(timezone.utc).isoformat()
        comment = f"{PROVENANCE_MARKER} created_at={created_at}"

        try:
            await conn.execute(
                f"COMMENT ON DATABASE {quote_identifier(database_name)} IS {quote_literal(comment)}",
                timeout=self.command_timeout
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise DatabaseCreationError(f"Failed to record provenance for {database_name}: {e}")
        except asyncio.TimeoutError:
            raise DatabaseCreationError(f"Timed out recording provenance for {database_name}")

    async def terminate_sessions(self, conn: asyncpg.Connection, database_name: str) -> int:
        """
        Terminate every session attached to a database except our own.

        Returns:
            Number of sessions terminated
        """
        rows = await conn.fetch(TERMINATE_SESSIONS_SQL, database_name, timeout=self.command_timeout)
        terminated = sum(1 for row in rows if row[0])
        if terminated:
            logger.debug(f"Terminated {terminated} session(s) on {database_name}")
        return terminated

    async def drop_database(self, conn: asyncpg.Connection, database_name: str) -> None:
        """Drop a database; callers terminate its sessions first."""
        await conn.execute(
            f"DROP DATABASE {quote_identifier(database_name)}",
            timeout=self.command_timeout
        )
        logger.info(f"Dropped database {database_name}")

    async def reclaim_database(self, database_name: str) -> None:
        """
        Terminate other sessions on a database, then drop it.

        Runs on its own administrative connection. Errors propagate to the
        caller, which decides whether they are fatal.
        """
        conn = await self.connect()
        try:
            await self.terminate_sessions(conn, database_name)
            try:
                await self.drop_database(conn, database_name)
            except asyncpg.ObjectInUseError:
                # A session attached between terminate and drop; one more pass
                logger.debug(f"Database {database_name} still in use, terminating sessions again")
                await self.terminate_sessions(conn, database_name)
                await self.drop_database(conn, database_name)
        finally:
            await conn.close()
