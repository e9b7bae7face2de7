"""Session deadlines and the polling monitor that re-syncs on expiry."""
from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from config.settings import settings
from ecd.models import Task
from observability import log_event

from .state import Session, as_utc, utcnow

logger = logging.getLogger(__name__)


def session_deadline(session: Session, tasks: Iterable[Task] = ()) -> Optional[datetime]:
    """``session.end_time``, else the latest task ``end_time``, else ``None``."""

    own = _parse(session.end_time, session.id)
    if own is not None:
        return own
    task_deadlines = [due for due in (_parse(task.end_time, session.id) for task in tasks) if due is not None]
    return max(task_deadlines) if task_deadlines else None


def is_expired(deadline: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if deadline is None:
        return False
    current = as_utc(now) if now else utcnow()
    return current >= deadline


def _parse(value: Optional[str], session_id: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return as_utc(value)
    except ValueError:
        logger.warning("Ignoring unparseable end time %r on session %s", value, session_id)
        return None


class DeadlineMonitor:
    """Polls until a session's deadline passes, then re-fetches it once.

    The monitor never decides ``autoFinished`` itself; it hands whatever the
    store returns to ``on_refresh``. ``fetch`` may be sync or async.
    """

    def __init__(
        self,
        fetch: Callable[[], Any],
        *,
        on_refresh: Optional[Callable[[Session], None]] = None,
        poll_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._fetch = fetch
        self._on_refresh = on_refresh
        self.poll_seconds = poll_seconds or settings.DEADLINE_POLL_SECONDS
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self.deadline: Optional[datetime] = None
        self.session_id: Optional[str] = None
        self.fired = False
        self.fetch_count = 0

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self, session: Session, tasks: Iterable[Task] = ()) -> bool:
        """Compute the deadline; returns whether polling is needed."""

        self.session_id = session.id
        self.fired = False
        self.deadline = None
        if session.is_terminal or session.auto_finished:
            return False
        self.deadline = session_deadline(session, tasks)
        return self.deadline is not None

    async def check(self) -> Optional[Session]:
        """One poll tick; returns the refreshed session once the deadline passes."""

        if self.fired or not is_expired(self.deadline, self._clock()):
            return None
        self.fired = True
        result = self._fetch()
        if inspect.isawaitable(result):
            result = await result
        self.fetch_count += 1
        log_event("deadline_expired", self.session_id, reason="deadline", status=getattr(result, "status", None))
        if result is not None and self._on_refresh is not None:
            self._on_refresh(result)
        return result

    async def _run(self) -> None:
        while not self.fired:
            await self.check()
            if self.fired:
                break
            await asyncio.sleep(self.poll_seconds)

    def start(self) -> Optional[asyncio.Task]:
        """Schedule polling on the running loop; no deadline means no task."""

        self.cancel()
        if self.deadline is None or self.fired:
            return None
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


__all__ = ["DeadlineMonitor", "is_expired", "session_deadline"]
