"""
Ephemeral database testing utilities.

Provides the disposable database handle used by test suites and the
reaper that cleans up databases whose teardown never completed.
"""

from .ephemeral_database import EphemeralDatabase
from .reaper import find_orphaned_databases, reap_orphaned_databases, reap_orphaned_databases_async

__all__ = [
    'EphemeralDatabase',
    'find_orphaned_databases',
    'reap_orphaned_databases',
    'reap_orphaned_databases_async'
]
