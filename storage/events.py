"""Persistence helpers for session lifecycle events."""
from __future__ import annotations

import datetime as dt
import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .sqlite import get_conn


class SessionEventPayload(BaseModel):
    session_id: str
    kind: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat())


def insert_session_event(*, db_path: Optional[str] = None, **data: Any) -> int:
    """Insert a session event row and return its primary key."""

    payload = SessionEventPayload(**data)
    with get_conn(db_path) as conn:
        cur = conn.cursor()
        cur.execute(
            """INSERT INTO session_events
               (timestamp, session_id, kind, from_status, to_status, metadata)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                payload.timestamp,
                payload.session_id,
                payload.kind,
                payload.from_status,
                payload.to_status,
                json.dumps(payload.metadata, default=str),
            ),
        )
        return int(cur.lastrowid)


def list_session_events(
    session_id: Optional[str] = None,
    *,
    limit: int = 50,
    db_path: Optional[str] = None,
) -> List[SessionEventPayload]:
    """Return the latest events, newest first."""

    query = "SELECT timestamp, session_id, kind, from_status, to_status, metadata FROM session_events"
    params: List[Any] = []
    if session_id:
        query += " WHERE session_id = ?"
        params.append(session_id)
    query += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    with get_conn(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
    return [
        SessionEventPayload(
            timestamp=row["timestamp"],
            session_id=row["session_id"],
            kind=row["kind"],
            from_status=row["from_status"],
            to_status=row["to_status"],
            metadata=json.loads(row["metadata"] or "{}"),
        )
        for row in rows
    ]
