"""
Orphaned database model for the ephemeral database reaper.
Describes one candidate found on the server and what the sweep did with it.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any

from ephemeral_pg.database.connection_manager import PROVENANCE_MARKER


class OrphanedDatabase:
    """
    An ephemeral database found on the server by the reaper.

    Attributes:
        name: Database name
        created_at: Creation timestamp taken from the provenance comment
        active_sessions: Number of sessions attached when the sweep looked
        dropped: Whether the sweep dropped it
        error: Error message if dropping failed
    """

    def __init__(
        self,
        name: str,
        created_at: datetime,
        active_sessions: int = 0,
        dropped: bool = False,
        error: Optional[str] = None
    ):
        if not name:
            raise ValueError("Database name is required")

        self.name = name
        self.created_at = created_at
        self.active_sessions = active_sessions
        self.dropped = dropped
        self.error = error

    @classmethod
    def from_comment(cls, name: str, comment: Optional[str], active_sessions: int = 0) -> Optional["OrphanedDatabase"]:
        """
        Build an instance from a database comment.

        Returns None when the comment does not carry the provenance marker,
        which means the database was not created by an ephemeral handle.
        """
        if not comment or not comment.startswith(PROVENANCE_MARKER):
            return None

        for token in comment.split():
            key, _, value = token.partition('=')
            if key == 'created_at':
                try:
                    created_at = datetime.fromisoformat(value)
                except ValueError:
                    return None
                if created_at.tzinfo is None:
                    created_at = created_at.replace(tzinfo=timezone.utc)
                return cls(name, created_at, active_sessions)

        return None

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.created_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'created_at': self.created_at.isoformat(),
            'active_sessions': self.active_sessions,
            'dropped': self.dropped,
            'error': self.error
        }

    def __repr__(self) -> str:
        return f"OrphanedDatabase(name={self.name!r}, created_at={self.created_at.isoformat()!r}, dropped={self.dropped})"
