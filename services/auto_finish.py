"""Server-side auto-finish for sessions whose deadline has passed."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from delivery.deadline import is_expired, session_deadline
from delivery.errors import ConflictError
from delivery.state import OPEN_STATUSES, Session, as_utc, utcnow
from ecd.registry import TaskCatalog
from observability import log_event

logger = logging.getLogger(__name__)


def due_for_auto_finish(session: Session, catalog: TaskCatalog, now: Optional[datetime] = None) -> bool:
    if session.auto_finished or session.status not in OPEN_STATUSES:
        return False
    deadline = session_deadline(session, catalog.many(session.task_ids) if not session.end_time else ())
    return is_expired(deadline, now)


def mark_auto_finished(session: Session, now: Optional[datetime] = None) -> Session:
    """Return a copy closed by the deadline: submitted, flagged, responses locked."""

    stamp = (as_utc(now) if now else utcnow()).isoformat()
    responses = [resp.model_copy(update={"locked": True}) for resp in session.responses]
    return session.model_copy(
        update={
            "status": "submitted",
            "auto_finished": True,
            "finished_at": stamp,
            "updated_at": stamp,
            "next_task_id": None,
            "responses": responses,
        }
    )


def maybe_auto_finish(store, session: Session, catalog: TaskCatalog, now: Optional[datetime] = None) -> Session:
    """Persist the auto-finish when due and return the store's copy."""

    if not due_for_auto_finish(session, catalog, now):
        return session
    closed = mark_auto_finished(session, now)
    try:
        store.sessions.update(closed, expected_version=session.version)
    except ConflictError:
        logger.info("Session %s changed while auto-finishing; re-reading", session.id)
        fresh = store.sessions.get(session.id)
        return maybe_auto_finish(store, fresh, catalog, now) if fresh is not None else session
    store.record_event(session.id, "auto_finished", from_status=session.status, to_status="submitted")
    log_event("auto_finished", session.id, from_status=session.status, status="submitted")
    return store.sessions.get(session.id) or closed


def auto_finish_due_sessions(store, catalog: Optional[TaskCatalog] = None, now: Optional[datetime] = None) -> List[str]:
    """Sweep every session and return the ids that were auto-finished."""

    catalog = catalog or TaskCatalog(store)
    changed: List[str] = []
    for session in store.sessions.list():
        updated = maybe_auto_finish(store, session, catalog, now)
        if updated.auto_finished and not session.auto_finished:
            changed.append(session.id)
    if changed:
        logger.info("Auto-finished sessions: %s", ", ".join(changed))
    return changed


__all__ = ["auto_finish_due_sessions", "due_for_auto_finish", "mark_auto_finished", "maybe_auto_finish"]
