"""Entity repositories with swappable in-memory and SQLite backends.

Every repository stores JSON documents and hands out fresh model copies,
so callers never share mutable state with the store. Updates are guarded
by an optimistic version number.
"""
from __future__ import annotations

import datetime as dt
import json
import logging
from typing import Callable, Dict, Generic, List, Optional, Protocol, Tuple, TypeVar

from pydantic import BaseModel

from delivery.errors import ConflictError, NotFoundError

from .sqlite import get_conn

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class Repository(Protocol[M]):  # Store-agnostic entity access
    kind: str

    def get(self, entity_id: str) -> Optional[M]: ...

    def list(self) -> List[M]: ...

    def create(self, entity: M) -> M: ...

    def update(self, entity: M, expected_version: Optional[int] = None) -> M: ...

    def delete(self, entity_id: str) -> bool: ...


def _now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def _dump(entity: BaseModel) -> Dict:
    return entity.model_dump(mode="json", by_alias=True)


def _with_version(entity: M, version: int) -> M:
    if "version" in type(entity).model_fields:
        return entity.model_copy(update={"version": version})
    return entity


class InMemoryRepository(Generic[M]):  # Process-local store used by tests and demos
    def __init__(self, kind: str, factory: Callable[[Dict], M]) -> None:
        self.kind = kind
        self._factory = factory
        self._docs: Dict[str, Tuple[int, Dict]] = {}

    def _load(self, version: int, body: Dict) -> M:
        return _with_version(self._factory(dict(body)), version)

    def get(self, entity_id: str) -> Optional[M]:
        entry = self._docs.get(entity_id)
        if entry is None:
            return None
        version, body = entry
        return self._load(version, json.loads(json.dumps(body)))

    def list(self) -> List[M]:
        return [self._load(version, json.loads(json.dumps(body))) for version, body in self._docs.values()]

    def create(self, entity: M) -> M:
        entity_id = getattr(entity, "id")
        if entity_id in self._docs:
            raise ConflictError(f"{self.kind} already exists: {entity_id}")
        stored = _with_version(entity, 1)
        self._docs[entity_id] = (1, _dump(stored))
        return self.get(entity_id)  # type: ignore[return-value]

    def update(self, entity: M, expected_version: Optional[int] = None) -> M:
        entity_id = getattr(entity, "id")
        entry = self._docs.get(entity_id)
        if entry is None:
            raise NotFoundError(self.kind, entity_id)
        current, _ = entry
        if expected_version is not None and expected_version != current:
            raise ConflictError(
                f"{self.kind} {entity_id} changed concurrently (expected v{expected_version}, found v{current})",
                session_id=entity_id if self.kind == "session" else None,
            )
        stored = _with_version(entity, current + 1)
        self._docs[entity_id] = (current + 1, _dump(stored))
        return self.get(entity_id)  # type: ignore[return-value]

    def delete(self, entity_id: str) -> bool:
        return self._docs.pop(entity_id, None) is not None


class SqliteRepository(Generic[M]):  # Documents table keyed by (collection, id)
    def __init__(self, kind: str, factory: Callable[[Dict], M], *, db_path: Optional[str] = None) -> None:
        self.kind = kind
        self._factory = factory
        self._db_path = db_path

    def _load(self, row) -> M:
        return _with_version(self._factory(json.loads(row["body"])), int(row["version"]))

    def get(self, entity_id: str) -> Optional[M]:
        with get_conn(self._db_path) as conn:
            row = conn.execute(
                "SELECT version, body FROM documents WHERE collection = ? AND id = ?",
                (self.kind, entity_id),
            ).fetchone()
        return self._load(row) if row else None

    def list(self) -> List[M]:
        with get_conn(self._db_path) as conn:
            rows = conn.execute(
                "SELECT version, body FROM documents WHERE collection = ? ORDER BY created_at, id",
                (self.kind,),
            ).fetchall()
        return [self._load(row) for row in rows]

    def create(self, entity: M) -> M:
        entity_id = getattr(entity, "id")
        now = _now()
        body = json.dumps(_dump(_with_version(entity, 1)), ensure_ascii=False)
        with get_conn(self._db_path) as conn:
            cur = conn.execute(
                """INSERT OR IGNORE INTO documents (collection, id, version, body, created_at, updated_at)
                   VALUES (?, ?, 1, ?, ?, ?)""",
                (self.kind, entity_id, body, now, now),
            )
            if cur.rowcount == 0:
                raise ConflictError(f"{self.kind} already exists: {entity_id}")
        return self.get(entity_id)  # type: ignore[return-value]

    def update(self, entity: M, expected_version: Optional[int] = None) -> M:
        entity_id = getattr(entity, "id")
        now = _now()
        with get_conn(self._db_path) as conn:
            row = conn.execute(
                "SELECT version FROM documents WHERE collection = ? AND id = ?",
                (self.kind, entity_id),
            ).fetchone()
            if row is None:
                raise NotFoundError(self.kind, entity_id)
            current = int(row["version"])
            guard = current if expected_version is None else expected_version
            body = json.dumps(_dump(_with_version(entity, guard + 1)), ensure_ascii=False)
            cur = conn.execute(
                """UPDATE documents SET body = ?, version = version + 1, updated_at = ?
                   WHERE collection = ? AND id = ? AND version = ?""",
                (body, now, self.kind, entity_id, guard),
            )
            if cur.rowcount == 0:
                raise ConflictError(
                    f"{self.kind} {entity_id} changed concurrently (expected v{guard}, found v{current})",
                    session_id=entity_id if self.kind == "session" else None,
                )
        return self.get(entity_id)  # type: ignore[return-value]

    def delete(self, entity_id: str) -> bool:
        with get_conn(self._db_path) as conn:
            cur = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (self.kind, entity_id),
            )
            return cur.rowcount > 0


__all__ = ["Repository", "InMemoryRepository", "SqliteRepository"]
