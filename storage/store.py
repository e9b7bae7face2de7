from __future__ import annotations  # Repository bundle shared by the API and the controller

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from config.settings import settings
from delivery.state import Session
from ecd.configs import policy_adapter
from ecd.models import Competency, EvidenceModel, Question, Task, TaskModel

from .events import SessionEventPayload, insert_session_event, list_session_events
from .migrate import migrate
from .repository import InMemoryRepository, Repository, SqliteRepository

logger = logging.getLogger(__name__)

_FACTORIES: Dict[str, Callable[[Dict], Any]] = {
    "competency": Competency.model_validate,
    "evidence_model": EvidenceModel.model_validate,
    "task_model": TaskModel.model_validate,
    "task": Task.model_validate,
    "question": Question.model_validate,
    "policy": policy_adapter.validate_python,
    "session": Session.model_validate,
}


@dataclass
class Store:  # One repository per entity; callers never see the backend
    competencies: Repository
    evidence_models: Repository
    task_models: Repository
    tasks: Repository
    questions: Repository
    policies: Repository
    sessions: Repository
    backend: str = "memory"
    db_path: Optional[str] = None
    _events: Deque[SessionEventPayload] = field(default_factory=lambda: deque(maxlen=settings.MEMORY_EVENT_LIMIT))

    def record_event(self, session_id: str, kind: str, **data: Any) -> None:  # Append to the session audit trail
        if self.backend == "sqlite":
            insert_session_event(db_path=self.db_path, session_id=session_id, kind=kind, **data)
            return
        self._events.append(SessionEventPayload(session_id=session_id, kind=kind, **data))

    def events(self, session_id: Optional[str] = None, limit: int = 50) -> List[SessionEventPayload]:  # Newest first
        if self.backend == "sqlite":
            return list_session_events(session_id, limit=limit, db_path=self.db_path)
        selected = [evt for evt in self._events if session_id is None or evt.session_id == session_id]
        return list(reversed(selected))[:limit]


def memory_store() -> Store:  # Fresh in-memory store
    repos = {kind: InMemoryRepository(kind, factory) for kind, factory in _FACTORIES.items()}
    return _assemble(repos, backend="memory")


def sqlite_store(db_path: Optional[str] = None) -> Store:  # SQLite-backed store with migrations applied
    path = db_path or settings.DB_PATH
    migrate(path)
    repos = {kind: SqliteRepository(kind, factory, db_path=path) for kind, factory in _FACTORIES.items()}
    return _assemble(repos, backend="sqlite", db_path=path)


def build_store(backend: Optional[str] = None, db_path: Optional[str] = None) -> Store:  # Store selected by settings
    chosen = backend or settings.STORE_BACKEND
    logger.info("Building %s store", chosen)
    if chosen == "memory":
        return memory_store()
    if chosen == "sqlite":
        return sqlite_store(db_path)
    raise ValueError(f"Unknown store backend: {chosen}")


def _assemble(repos: Dict[str, Repository], *, backend: str, db_path: Optional[str] = None) -> Store:
    return Store(
        competencies=repos["competency"],
        evidence_models=repos["evidence_model"],
        task_models=repos["task_model"],
        tasks=repos["task"],
        questions=repos["question"],
        policies=repos["policy"],
        sessions=repos["session"],
        backend=backend,
        db_path=db_path,
    )


__all__ = ["Store", "build_store", "memory_store", "sqlite_store"]
