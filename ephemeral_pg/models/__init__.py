"""Data models for ephemeral database tooling."""

from .orphaned_database import OrphanedDatabase

__all__ = ['OrphanedDatabase']
