"""
Database package for ephemeral test databases.

Provides server connections, database-level DDL and the migration engine.
"""

from .connection_manager import (
    ServerConnectionManager,
    build_database_url,
    build_server_url,
    quote_identifier,
)
from .migration_manager import MigrationManager

__all__ = [
    'ServerConnectionManager',
    'MigrationManager',
    'build_database_url',
    'build_server_url',
    'quote_identifier'
]
