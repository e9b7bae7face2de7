import json
from datetime import datetime, timedelta, timezone

from delivery.state import Session
from observability.admin_cli import main
from storage.seed import seed_from_file, seed_store
from storage.store import memory_store, sqlite_store


def test_seed_counts_and_upserts(reference):
    store = memory_store()
    counts = seed_store(store, reference)
    assert counts["tasks"] == 6
    assert counts["policies"] == 2
    reference["competencies"][0]["name"] = "Renamed"
    seed_store(store, reference)
    assert store.competencies.get("comp1").name == "Renamed"
    assert len(store.competencies.list()) == 2


def test_seed_from_file(tmp_path, reference):
    path = tmp_path / "reference.json"
    path.write_text(json.dumps(reference), encoding="utf-8")
    store = memory_store()
    seed_from_file(store, path)
    assert store.questions.get("q3").type == "rubric"


def test_cli_seeds_sweeps_and_tails(tmp_path, tmp_db, reference, capsys):
    path = tmp_path / "reference.json"
    path.write_text(json.dumps(reference), encoding="utf-8")
    past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
    sqlite_store(tmp_db).sessions.create(Session(id="late", student_id="stu", task_ids=["t1"], end_time=past))

    main(["--db", tmp_db, "--seed", str(path), "--sweep", "--sessions", "--tail-events", "5"])

    out = capsys.readouterr().out
    assert "seeded" in out
    assert "auto-finished 1 session(s)" in out
    assert "late stu submitted auto-finished" in out
    assert "auto_finished" in out
    assert sqlite_store(tmp_db).tasks.get("t1") is not None
