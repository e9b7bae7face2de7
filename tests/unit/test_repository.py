"""Repository contract shared by the in-memory and SQLite backends."""
from __future__ import annotations

import sqlite3

import pytest

from config.settings import settings
from delivery.errors import ConflictError, NotFoundError
from delivery.state import Session
from ecd.configs import IrtPolicy
from ecd.models import Competency
from storage.migrate import migrate
from storage.store import build_store


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_db):
    return build_store(request.param, tmp_db)


def _session(session_id="s1"):
    return Session(id=session_id, student_id="stu", task_ids=["t1"])


def test_create_get_list_delete(backend):
    created = backend.sessions.create(_session())
    assert created.version == 1
    assert backend.sessions.get("s1") == created
    assert [s.id for s in backend.sessions.list()] == ["s1"]
    assert backend.sessions.delete("s1") is True
    assert backend.sessions.get("s1") is None
    assert backend.sessions.delete("s1") is False


def test_duplicate_create_conflicts(backend):
    backend.sessions.create(_session())
    with pytest.raises(ConflictError):
        backend.sessions.create(_session())


def test_update_checks_expected_version(backend):
    created = backend.sessions.create(_session())
    paused = backend.sessions.update(created.model_copy(update={"status": "paused"}), expected_version=1)
    assert paused.version == 2
    assert paused.status == "paused"
    with pytest.raises(ConflictError):
        backend.sessions.update(created.model_copy(update={"status": "archived"}), expected_version=1)
    assert backend.sessions.get("s1").status == "paused"


def test_update_missing_entity(backend):
    with pytest.raises(NotFoundError):
        backend.sessions.update(_session("ghost"), expected_version=1)


def test_stored_copies_are_independent(backend):
    backend.competencies.create(Competency(id="comp1", name="Number Sense"))
    first = backend.competencies.get("comp1")
    first.name = "changed"
    assert backend.competencies.get("comp1").name == "Number Sense"


def test_tagged_policy_round_trips(backend):
    backend.policies.create(IrtPolicy(id="p", name="IRT", type="IRT"))
    assert isinstance(backend.policies.get("p"), IrtPolicy)


def test_events_newest_first(backend):
    backend.record_event("s1", "created", to_status="in-progress")
    backend.record_event("s1", "status_paused", from_status="in-progress", to_status="paused")
    backend.record_event("s2", "created")
    kinds = [evt.kind for evt in backend.events("s1")]
    assert kinds == ["status_paused", "created"]
    assert len(backend.events()) == 3


def test_memory_event_log_keeps_only_the_newest(monkeypatch):
    monkeypatch.setattr(settings, "MEMORY_EVENT_LIMIT", 3)
    store = build_store("memory")
    for i in range(5):
        store.record_event(f"s{i}", "created")
    assert [evt.session_id for evt in store.events()] == ["s4", "s3", "s2"]
    assert store.events("s0") == []


def test_migrate_is_idempotent(tmp_db):
    migrate(tmp_db)
    migrate(tmp_db)
    with sqlite3.connect(tmp_db) as conn:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"documents", "session_events"} <= tables
