"""
ephemeral-pg

Disposable, migrated PostgreSQL databases for test suites, with
guaranteed teardown.
"""

from .config import ConfigManager, ConfigValidationError
from .errors import (
    DatabaseConnectionError,
    DatabaseCreationError,
    DatabaseNotFoundError,
    EphemeralDatabaseError,
    MigrationError,
    ProvisioningError,
)
from .testing import EphemeralDatabase, reap_orphaned_databases

__version__ = "0.1.0"

__all__ = [
    'EphemeralDatabase',
    'ConfigManager',
    'ConfigValidationError',
    'EphemeralDatabaseError',
    'ProvisioningError',
    'DatabaseConnectionError',
    'DatabaseNotFoundError',
    'DatabaseCreationError',
    'MigrationError',
    'reap_orphaned_databases'
]
