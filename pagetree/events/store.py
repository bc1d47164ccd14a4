"""Append-only activity log of committed changes, backed by SQLite."""

import json

from pagetree.db.connection import Database, Transaction
from pagetree.models import EventEnvelope


class EventStore:
    """Append-only change log.

    Appends are issued on the mutation's own transaction, so an event is
    recorded exactly when the change it describes commits.
    """

    def __init__(self, conn: Database | Transaction) -> None:
        self._conn = conn

    async def append(self, envelope: EventEnvelope) -> int:
        """Append an event and return the assigned sequence_num.

        Raises IntegrityError if event_id is not unique.
        """
        cursor = await self._conn.execute(
            """
            INSERT INTO events
                (event_id, workspace_id, timestamp, actor, event_type, payload)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                envelope.event_id,
                envelope.workspace_id,
                envelope.timestamp.isoformat(),
                envelope.actor,
                envelope.event_type,
                json.dumps(envelope.payload),
            ),
        )
        assert cursor.lastrowid is not None
        envelope.sequence_num = cursor.lastrowid
        return cursor.lastrowid

    async def get_events(self, workspace_id: str, limit: int | None = None) -> list[EventEnvelope]:
        """Events for a workspace, newest first."""
        sql = "SELECT * FROM events WHERE workspace_id = ? ORDER BY sequence_num DESC"
        params: tuple = (workspace_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (workspace_id, limit)
        rows = await self._conn.fetchall(sql, params)
        return [self._row_to_envelope(row) for row in rows]

    @staticmethod
    def _row_to_envelope(row) -> EventEnvelope:
        """Convert a database row to an EventEnvelope."""
        return EventEnvelope(
            event_id=row["event_id"],
            workspace_id=row["workspace_id"],
            timestamp=row["timestamp"],
            actor=row["actor"],
            event_type=row["event_type"],
            payload=json.loads(row["payload"]),
            sequence_num=row["sequence_num"],
        )
