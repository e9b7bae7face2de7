"""Lightweight CLI for seeding reference data and inspecting sessions."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional

from config.settings import settings
from services.auto_finish import auto_finish_due_sessions
from storage.seed import seed_from_file
from storage.store import Store, build_store


def tail_events(store: Store, limit: int = 20, session_id: Optional[str] = None) -> None:
    for evt in store.events(session_id, limit=limit):
        change = f" {evt.from_status or '-'}->{evt.to_status}" if evt.to_status else ""
        print(f"[{evt.timestamp}] {evt.session_id} {evt.kind}{change} meta={evt.metadata}")


def list_sessions(store: Store, *, active_only: bool = False) -> None:
    for session in store.sessions.list():
        if active_only and not session.is_active:
            continue
        flag = " auto-finished" if session.auto_finished else ""
        answered = len(session.responses)
        print(f"{session.id} {session.student_id} {session.status}{flag} {answered}/{len(session.task_ids)} v{session.version}")


def sweep(store: Store) -> None:
    finished = auto_finish_due_sessions(store)
    print(f"auto-finished {len(finished)} session(s)")
    for session_id in finished:
        print(f"  {session_id}")


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--db", default=None, help=f"SQLite path (default {settings.DB_PATH})")
    parser.add_argument("--seed", type=Path, help="Load reference data from a JSON file")
    parser.add_argument("--sweep", action="store_true", help="Auto-finish sessions past their deadline")
    parser.add_argument("--sessions", action="store_true", help="List active sessions")
    parser.add_argument("--tail-events", type=int, help="Show the latest session events")
    parser.add_argument("--session", help="Restrict --tail-events to one session")
    args = parser.parse_args(argv)

    store = build_store("sqlite", args.db)
    if args.seed:
        counts = seed_from_file(store, args.seed)
        print("seeded " + ", ".join(f"{key}={count}" for key, count in counts.items()))
    if args.sweep:
        sweep(store)
    if args.sessions:
        list_sessions(store, active_only=True)
    if args.tail_events:
        tail_events(store, args.tail_events, args.session)


if __name__ == "__main__":
    main()
