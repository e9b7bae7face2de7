"""HTTP client that drives one session over the delivery API.

The client never edits its session copy: after every call it replaces it with
whatever the server returned. Store-boundary failures become notifications
and leave the local copy as it was.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Literal, Optional

import httpx
from pydantic import BaseModel, Field

from config.settings import settings
from delivery.deadline import DeadlineMonitor
from delivery.errors import InvalidStateError, ValidationError
from delivery.state import Session, iso_now
from ecd.configs import CamelModel
from ecd.models import Question, Task, TaskModel
from observability import log_event

logger = logging.getLogger(__name__)


class Notification(BaseModel):  # Non-fatal message surfaced to the user
    level: Literal["info", "warning", "error"] = "warning"
    message: str
    status_code: Optional[int] = None
    timestamp: str = Field(default_factory=iso_now)


class EnrichedTask(CamelModel):  # Task with display labels; unknown parts fall back to raw ids
    task_id: str
    title: str
    task_model_id: Optional[str] = None
    task_model_name: Optional[str] = None
    question_id: Optional[str] = None
    question: Optional[Question] = None
    end_time: Optional[str] = None
    degraded: bool = False


class SessionClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
        poll_seconds: Optional[float] = None,
    ) -> None:
        self._owns_client = client is None
        self._http = client or httpx.Client(base_url=base_url or settings.API_BASE_URL, timeout=timeout)
        self.session: Optional[Session] = None
        self.notifications: List[Notification] = []
        self._tasks: Dict[str, Task] = {}
        self.monitor = DeadlineMonitor(self.refresh_async, poll_seconds=poll_seconds)

    # -- session lifecycle ---------------------------------------------------

    def create(
        self,
        student_id: Optional[str],
        task_ids: Optional[List[str]],
        selection_strategy: str = "fixed",
        policy_id: Optional[str] = None,
        *,
        end_time: Optional[str] = None,
    ) -> Optional[Session]:
        if not student_id:
            raise ValidationError("studentId is required")
        if not task_ids:
            raise ValidationError("taskIds must contain at least one task")
        if selection_strategy != "fixed" and not policy_id:
            raise ValidationError(f"{selection_strategy} selection requires a policyId")
        body = {
            "studentId": student_id,
            "taskIds": list(task_ids),
            "selectionStrategy": selection_strategy,
            "policyId": policy_id,
            "endTime": end_time,
        }
        return self._apply(self._call("POST", "/sessions", json=body))

    def load(self, session_id: str) -> Optional[Session]:
        return self._apply(self._call("GET", f"/sessions/{session_id}"))

    def refresh(self) -> Optional[Session]:
        """Re-read the current session from the server."""
        if self.session is None:
            return None
        return self._apply(self._call("GET", f"/sessions/{self.session.id}"))

    async def refresh_async(self) -> Optional[Session]:
        """Like ``refresh``, with the HTTP round trip run in a worker thread."""
        if self.session is None:
            return None
        payload = await asyncio.to_thread(self._call, "GET", f"/sessions/{self.session.id}")
        return self._apply(payload)

    def next_task(self) -> Optional[EnrichedTask]:
        session = self._require_session()
        if session.is_terminal or session.auto_finished:
            return None
        payload = self._call("GET", f"/sessions/{session.id}/next-task")
        if not payload or not payload.get("taskId"):
            return None
        return self.enrich(payload["taskId"])

    def submit(
        self,
        task_id: str,
        raw_answer: Any = None,
        *,
        question_id: Optional[str] = None,
        rubric_level: Optional[str] = None,
        observation_id: Optional[str] = None,
        evidence_id: Optional[str] = None,
    ) -> Optional[Session]:
        session = self._require_writable("submit to")
        if task_id not in session.task_ids:
            raise ValidationError(f"Task {task_id} is not part of session {session.id}", session_id=session.id)
        if session.has_response(task_id):
            raise InvalidStateError(f"Task {task_id} already has a response", session_id=session.id)
        body = {
            "taskId": task_id,
            "questionId": question_id,
            "rawAnswer": raw_answer,
            "rubricLevel": rubric_level,
            "observationId": observation_id,
            "evidenceId": evidence_id,
        }
        return self._apply(self._call("POST", f"/sessions/{session.id}/submit", json=body))

    def pause(self) -> Optional[Session]:
        session = self._require_writable("pause")
        return self._apply(self._call("POST", f"/sessions/{session.id}/pause"))

    def resume(self) -> Optional[Session]:
        session = self._require_session()
        if session.status != "paused" or session.auto_finished:
            raise InvalidStateError(f"Only paused sessions can be resumed (status={session.status})", session_id=session.id)
        return self._apply(self._call("POST", f"/sessions/{session.id}/resume"))

    def finish(self, *, early: bool = False) -> Optional[Session]:
        session = self._require_writable("finish")
        return self._apply(self._call("POST", f"/sessions/{session.id}/finish", json={"early": early}))

    def archive(self) -> Optional[Session]:
        session = self._require_session()
        if session.is_terminal:
            raise InvalidStateError("Session is already archived", session_id=session.id)
        return self._apply(self._call("POST", f"/sessions/{session.id}/archive"))

    # -- enrichment ----------------------------------------------------------

    def enrich(self, task_id: str) -> EnrichedTask:
        task = self._task(task_id)
        if task is None:
            return EnrichedTask(task_id=task_id, title=task_id, degraded=True)
        degraded = False
        task_model_name = task.task_model_id
        if task.task_model_id:
            payload = self._get_quietly(f"/taskModels/{task.task_model_id}")
            if payload is None:
                degraded = True
            else:
                task_model_name = TaskModel.model_validate(payload).name or task.task_model_id
        question = None
        if task.question_id:
            payload = self._get_quietly(f"/questions/{task.question_id}")
            if payload is None:
                degraded = True
            else:
                question = Question.model_validate(payload)
        return EnrichedTask(
            task_id=task.id,
            title=task.title or task.id,
            task_model_id=task.task_model_id,
            task_model_name=task_model_name,
            question_id=task.question_id,
            question=question,
            end_time=task.end_time,
            degraded=degraded,
        )

    # -- deadline ------------------------------------------------------------

    def arm_deadline(self) -> bool:
        session = self._require_session()
        tasks = [task for task in (self._task(tid) for tid in session.task_ids) if task is not None]
        return self.monitor.arm(session, tasks)

    def watch_deadline(self):
        """Arm and start the monitor on the running event loop."""
        if not self.arm_deadline():
            self.monitor.cancel()
            return None
        return self.monitor.start()

    def close(self) -> None:
        self.monitor.cancel()
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> "SessionClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- helpers -------------------------------------------------------------

    def _require_session(self) -> Session:
        if self.session is None:
            raise InvalidStateError("No session loaded")
        return self.session

    def _require_writable(self, action: str) -> Session:
        session = self._require_session()
        if session.is_terminal:
            raise InvalidStateError(f"Cannot {action} an archived session", session_id=session.id)
        if session.auto_finished:
            raise InvalidStateError(f"Cannot {action} a session closed by its deadline", session_id=session.id)
        if session.status != "in-progress":
            raise InvalidStateError(f"Cannot {action} a session that is {session.status}", session_id=session.id)
        return session

    def _task(self, task_id: str) -> Optional[Task]:
        if task_id not in self._tasks:
            payload = self._get_quietly(f"/tasks/{task_id}")
            if payload is None:
                return None
            self._tasks[task_id] = Task.model_validate(payload)
        return self._tasks[task_id]

    def _get_quietly(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self._http.get(path)
        except httpx.HTTPError as exc:
            logger.debug("Enrichment request %s failed: %s", path, exc)
            return None
        if resp.status_code != 200:
            logger.debug("Enrichment request %s returned %s", path, resp.status_code)
            return None
        return resp.json()

    def _call(self, method: str, path: str, *, json: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        try:
            resp = self._http.request(method, path, json=json)
        except httpx.HTTPError as exc:
            self._notify(f"Could not reach the server: {exc}", level="error")
            return None
        if resp.status_code >= 400:
            self._notify(_detail(resp), status_code=resp.status_code)
            if resp.status_code == 409 and self.session is not None and method != "GET":
                # stale local copy; pick up the server's version
                self.refresh()
            return None
        return resp.json()

    def _apply(self, payload: Optional[Dict[str, Any]]) -> Optional[Session]:
        if payload is None:
            return self.session
        self.session = Session.model_validate(payload)
        if self.session.is_terminal:
            self.monitor.cancel()
        return self.session

    def _notify(self, message: str, *, level: str = "warning", status_code: Optional[int] = None) -> None:
        note = Notification(level=level, message=message, status_code=status_code)
        self.notifications.append(note)
        logger.warning("Session request failed: %s", message)
        log_event(
            "client_notification",
            self.session.id if self.session else None,
            level=logging.WARNING,
            message=message,
            status_code=status_code,
        )


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return f"HTTP {resp.status_code}"


__all__ = ["EnrichedTask", "Notification", "SessionClient"]
