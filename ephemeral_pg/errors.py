"""
Exception hierarchy for ephemeral database provisioning.

Provisioning failures are raised to the caller so a test suite can decide
whether to retry with a fresh database or abort. Teardown failures are
never raised; they are logged by the reclaimer instead.
"""

from typing import Optional


class EphemeralDatabaseError(Exception):
    """Base class for all ephemeral database errors."""
    pass


class ProvisioningError(EphemeralDatabaseError):
    """Raised when an ephemeral database could not be made ready."""
    pass


class DatabaseConnectionError(ProvisioningError):
    """Raised when a connection to the server or database cannot be opened."""
    pass


class DatabaseNotFoundError(DatabaseConnectionError):
    """Raised when the target database does not exist on the server."""
    pass


class DatabaseCreationError(ProvisioningError):
    """Raised when CREATE DATABASE fails (name conflict, missing privilege)."""
    pass


class MigrationError(ProvisioningError):
    """Raised when the migration source cannot be applied."""

    def __init__(self, message: str, version: Optional[int] = None, name: Optional[str] = None):
        super().__init__(message)
        self.version = version
        self.name = name
