"""Session controller: the delivery state machine.

Every mutating operation writes with the version it read and then returns a
fresh copy read back from the store, so callers always hold the
authoritative session.
"""
from __future__ import annotations

import logging
import math
import uuid
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as SchemaError

from config.settings import settings
from ecd.configs import POLICY_TYPES
from ecd.models import Task
from ecd.registry import Registry, TaskCatalog
from observability import log_event
from services.auto_finish import maybe_auto_finish

from .errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from .policy import PolicyEngine, fixed_next
from .scorer import ResponseScorer
from .state import NextTaskPolicy, Session, Submission, as_utc, can_transition, iso_now

logger = logging.getLogger(__name__)


class SessionController:
    def __init__(
        self,
        store,
        *,
        registry: Optional[Registry] = None,
        catalog: Optional[TaskCatalog] = None,
        scorer: Optional[ResponseScorer] = None,
        engine: Optional[PolicyEngine] = None,
        auto_finish_on_read: Optional[bool] = None,
    ) -> None:
        self.store = store
        self.registry = registry or Registry(store)
        self.catalog = catalog or TaskCatalog(store)
        self.scorer = scorer or ResponseScorer(self.registry)
        self.engine = engine or PolicyEngine(self.registry, self.catalog)
        self._auto_finish_on_read = settings.AUTO_FINISH_ON_READ if auto_finish_on_read is None else auto_finish_on_read

    # -- reads ---------------------------------------------------------------

    def get(self, session_id: str) -> Session:
        """Load a session; expired sessions come back auto-finished."""

        session = self.store.sessions.get(session_id)
        if session is None:
            raise NotFoundError("session", session_id, session_id=session_id)
        if self._auto_finish_on_read:
            session = maybe_auto_finish(self.store, session, self.catalog)
        return session

    def list_sessions(self, *, active_only: bool = False, student_id: Optional[str] = None) -> List[Session]:
        sessions = self.store.sessions.list()
        if self._auto_finish_on_read:
            sessions = [maybe_auto_finish(self.store, s, self.catalog) for s in sessions]
        if active_only:
            sessions = [s for s in sessions if s.is_active]
        if student_id:
            sessions = [s for s in sessions if s.student_id == student_id]
        return sessions

    def next_task(self, session_id: str) -> Optional[str]:
        """Current task to deliver; repeated calls return the same id."""

        session = self.get(session_id)
        if session.is_terminal or session.auto_finished or session.status not in ("in-progress", "paused"):
            return None
        if session.next_task_id and session.next_task_id in session.task_ids and not session.has_response(session.next_task_id):
            return session.next_task_id
        selection = self.engine.select(session, self.catalog)
        if selection.task_id != session.next_task_id:
            updated = session.model_copy(
                update={
                    "next_task_id": selection.task_id,
                    "student_model": {**session.student_model, **selection.student_model},
                }
            )
            self._write(session, updated, "next_task", task_id=selection.task_id, source=selection.source)
        return selection.task_id

    # -- lifecycle -----------------------------------------------------------

    def create(
        self,
        student_id: Optional[str],
        task_ids: Optional[Iterable[str]],
        selection_strategy: str = "fixed",
        policy_id: Optional[str] = None,
        *,
        end_time: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Session:
        ids = list(task_ids or [])
        if not student_id:
            raise ValidationError("studentId is required")
        if not ids:
            raise ValidationError("taskIds must contain at least one task")
        if len(set(ids)) != len(ids):
            raise ValidationError("taskIds must not repeat a task")
        if selection_strategy != "fixed":
            self._check_policy(selection_strategy, policy_id)
        missing = self.catalog.missing(ids)
        if missing:
            raise ValidationError(f"Unknown task ids: {', '.join(missing)}")
        if end_time is not None:
            try:
                end_time = as_utc(end_time).isoformat() if end_time else None
            except ValueError as exc:
                raise ValidationError(f"endTime is not an ISO timestamp: {end_time}") from exc

        try:
            session = Session(
                id=session_id or str(uuid.uuid4()),
                student_id=student_id,
                task_ids=ids,
                selection_strategy=selection_strategy,
                next_task_policy=NextTaskPolicy(policy_id=policy_id) if policy_id else None,
                end_time=end_time,
            )
        except SchemaError as exc:
            raise ValidationError(f"Invalid session: {exc.errors()[0]['msg']}") from exc

        selection = self.engine.select(session, self.catalog)
        session = session.model_copy(
            update={"next_task_id": selection.task_id, "student_model": selection.student_model, "updated_at": iso_now()}
        )
        created = self.store.sessions.create(session)
        self.store.record_event(created.id, "created", to_status=created.status, metadata={"strategy": selection_strategy})
        log_event("session_created", created.id, status=created.status, strategy=selection_strategy, task_id=selection.task_id)
        return self.get(created.id)

    def submit(self, session_id: str, submission: Submission | Dict[str, Any]) -> Session:
        if not isinstance(submission, Submission):
            try:
                submission = Submission.model_validate(submission)
            except SchemaError as exc:
                raise ValidationError(f"Invalid submission: {exc.errors()[0]['msg']}", session_id=session_id) from exc

        session = self.get(session_id)
        self._require_student_writable(session, "submit to")
        if submission.task_id not in session.task_ids:
            raise ValidationError(f"Task {submission.task_id} is not part of session {session.id}", session_id=session.id)
        if session.has_response(submission.task_id):
            raise InvalidStateError(f"Task {submission.task_id} already has a response", session_id=session.id)

        task = self.catalog.get(submission.task_id)
        if task is None:
            logger.warning("Task %s is missing from the catalog; recording the raw answer", submission.task_id)
            task = Task(id=submission.task_id)
        response = self.scorer.build_response(task, submission)

        answered = session.model_copy(update={"responses": [*session.responses, response]})
        selection = self.engine.select(answered, self.catalog)
        updated = answered.model_copy(
            update={
                "next_task_id": selection.task_id,
                "student_model": {**session.student_model, **selection.student_model},
                "updated_at": iso_now(),
            }
        )
        log_event(
            "response_submitted",
            session.id,
            task_id=task.id,
            scored_value=response.scored_value,
            reason=selection.source,
        )
        return self._write(session, updated, "submitted_response", task_id=task.id, next_task_id=selection.task_id)

    def pause(self, session_id: str) -> Session:
        session = self.get(session_id)
        self._require_student_writable(session, "pause")
        return self._transition(session, "paused")

    def resume(self, session_id: str) -> Session:
        session = self.get(session_id)
        if session.status != "paused" or session.auto_finished:
            raise InvalidStateError(f"Only paused sessions can be resumed (status={session.status})", session_id=session.id)
        return self._transition(session, "in-progress")

    def finish(self, session_id: str, *, early: bool = False) -> Session:
        session = self.get(session_id)
        self._require_student_writable(session, "finish")
        remaining = self._pending_task(session)
        if remaining is not None and not early:
            raise InvalidStateError(
                f"Task {remaining} is still pending; finish early to end the session now",
                session_id=session.id,
            )
        target = "submitted" if any(resp.needs_grading for resp in session.responses) else "completed"
        return self._transition(
            session,
            target,
            finished_at=iso_now(),
            next_task_id=None,
            responses=[resp.model_copy(update={"locked": True}) for resp in session.responses],
        )

    def finalize_review(self, session_id: str, *, role: str = "teacher") -> Session:
        self._require_reviewer(role)
        session = self.get(session_id)
        if session.status != "submitted":
            raise InvalidStateError(f"Only submitted sessions can be reviewed (status={session.status})", session_id=session.id)
        return self._transition(session, "reviewed")

    def grade(self, session_id: str, task_id: str, scored_value: float, *, role: str = "teacher") -> Session:
        """Record a manual score for a response left for grading."""

        self._require_reviewer(role)
        if scored_value is None or not math.isfinite(scored_value) or scored_value < 0:
            raise ValidationError("scoredValue must be a finite, non-negative number", session_id=session_id)
        session = self.get(session_id)
        if session.status != "submitted":
            raise InvalidStateError(f"Responses can only be graded on submitted sessions (status={session.status})", session_id=session.id)
        if session.response_for(task_id) is None:
            raise NotFoundError("response", task_id, session_id=session.id)
        responses = [
            resp.model_copy(update={"scored_value": float(scored_value), "graded_by": role}) if resp.task_id == task_id else resp
            for resp in session.responses
        ]
        updated = session.model_copy(update={"responses": responses, "updated_at": iso_now()})
        return self._write(session, updated, "graded", task_id=task_id, scored_value=scored_value)

    def archive(self, session_id: str) -> Session:
        session = self.get(session_id)
        if session.is_terminal:
            raise InvalidStateError("Session is already archived", session_id=session.id)
        return self._transition(session, "archived", next_task_id=None)

    def force_finish(self, session_id: str, *, role: str = "teacher") -> Session:
        """Teacher override: close an open session without the deadline flag."""

        self._require_reviewer(role)
        session = self.get(session_id)
        if session.status == "submitted":
            return session
        if session.status not in ("in-progress", "paused"):
            raise InvalidStateError(f"Cannot force-finish a session that is {session.status}", session_id=session.id)
        updated = session.model_copy(
            update={
                "status": "submitted",
                "auto_finished": False,
                "finished_at": iso_now(),
                "updated_at": iso_now(),
                "next_task_id": None,
                "responses": [resp.model_copy(update={"locked": True}) for resp in session.responses],
            }
        )
        return self._write(session, updated, "force_finished")

    # -- helpers -------------------------------------------------------------

    def _check_policy(self, strategy: str, policy_id: Optional[str]) -> None:
        if strategy not in POLICY_TYPES:
            raise ValidationError(f"Unknown selection strategy: {strategy}")
        if not policy_id:
            raise ValidationError(f"{strategy} selection requires a policyId")
        policy = self.registry.policy(policy_id)
        if policy is None:
            raise ValidationError(f"Unknown policy: {policy_id}")
        if policy.type != strategy:
            raise ValidationError(f"Policy {policy_id} is a {policy.type} policy, not {strategy}")

    def _pending_task(self, session: Session) -> Optional[str]:
        if session.next_task_id and not session.has_response(session.next_task_id):
            return session.next_task_id
        if session.is_adaptive:
            # an adaptive provider may stop before every task is used
            return None
        return fixed_next(session)

    def _require_student_writable(self, session: Session, action: str) -> None:
        if session.is_terminal:
            raise InvalidStateError(f"Cannot {action} an archived session", session_id=session.id)
        if session.auto_finished:
            raise InvalidStateError(f"Cannot {action} a session closed by its deadline", session_id=session.id)
        if session.status != "in-progress":
            raise InvalidStateError(f"Cannot {action} a session that is {session.status}", session_id=session.id)

    def _require_reviewer(self, role: Optional[str]) -> None:
        if role not in settings.REVIEWER_ROLES:
            raise ForbiddenError(f"Role {role or '(none)'} may not review sessions")

    def _transition(self, session: Session, target: str, **updates: Any) -> Session:
        if not can_transition(session.status, target):
            raise InvalidStateError(f"Cannot move session from {session.status} to {target}", session_id=session.id)
        updated = session.model_copy(update={"status": target, "updated_at": iso_now(), **updates})
        return self._write(session, updated, f"status_{target}")

    def _write(self, before: Session, after: Session, kind: str, **meta: Any) -> Session:
        self.store.sessions.update(after, expected_version=before.version)
        from_status = before.status if before.status != after.status else None
        to_status = after.status if before.status != after.status else None
        self.store.record_event(before.id, kind, from_status=from_status, to_status=to_status, metadata=meta)
        log_event(kind, before.id, from_status=from_status, status=after.status, version=before.version + 1)
        return self.get(before.id)


__all__ = ["SessionController"]
