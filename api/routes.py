"""FastAPI routes for session delivery."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.deps import get_controller, http_errors
from api.schemas import (
    CreateSessionReq,
    FinishReq,
    GradeReq,
    NextTaskResp,
    RoleReq,
    SessionEventResp,
    SubmitReq,
)
from delivery.controller import SessionController
from delivery.state import Session


router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=Session, status_code=201)
def create_session(req: CreateSessionReq, ctl: SessionController = Depends(get_controller)) -> Session:
    with http_errors():
        return ctl.create(
            req.student_id,
            req.task_ids,
            req.selection_strategy,
            req.policy_id,
            end_time=req.end_time,
            session_id=req.session_id,
        )


@router.get("", response_model=List[Session])
def list_sessions(
    active: bool = False,
    student_id: Optional[str] = Query(None, alias="studentId"),
    ctl: SessionController = Depends(get_controller),
) -> List[Session]:
    return ctl.list_sessions(active_only=active, student_id=student_id)


@router.get("/{session_id}", response_model=Session)
def get_session(session_id: str, ctl: SessionController = Depends(get_controller)) -> Session:
    with http_errors():
        return ctl.get(session_id)


@router.get("/{session_id}/next-task", response_model=NextTaskResp)
def next_task(session_id: str, ctl: SessionController = Depends(get_controller)) -> NextTaskResp:
    with http_errors():
        task_id = ctl.next_task(session_id)
    task = ctl.catalog.get(task_id) if task_id else None
    question = ctl.registry.question(task.question_id) if task else None
    return NextTaskResp(session_id=session_id, task_id=task_id, task=task, question=question)


@router.get("/{session_id}/events", response_model=List[SessionEventResp])
def session_events(session_id: str, limit: int = 50, ctl: SessionController = Depends(get_controller)) -> List[SessionEventResp]:
    with http_errors():
        ctl.get(session_id)
    return [SessionEventResp.model_validate(evt.model_dump()) for evt in ctl.store.events(session_id, limit=limit)]


@router.post("/{session_id}/submit", response_model=Session)
def submit(session_id: str, req: SubmitReq, ctl: SessionController = Depends(get_controller)) -> Session:
    with http_errors():
        return ctl.submit(session_id, req)


@router.post("/{session_id}/pause", response_model=Session)
def pause(session_id: str, ctl: SessionController = Depends(get_controller)) -> Session:
    with http_errors():
        return ctl.pause(session_id)


@router.post("/{session_id}/resume", response_model=Session)
def resume(session_id: str, ctl: SessionController = Depends(get_controller)) -> Session:
    with http_errors():
        return ctl.resume(session_id)


@router.post("/{session_id}/finish", response_model=Session)
def finish(session_id: str, req: Optional[FinishReq] = None, ctl: SessionController = Depends(get_controller)) -> Session:
    with http_errors():
        return ctl.finish(session_id, early=bool(req and req.early))


@router.post("/{session_id}/finalize", response_model=Session)
def finalize(session_id: str, req: Optional[RoleReq] = None, ctl: SessionController = Depends(get_controller)) -> Session:
    with http_errors():
        return ctl.finalize_review(session_id, role=req.role if req else None)


@router.post("/{session_id}/grade", response_model=Session)
def grade(session_id: str, req: GradeReq, ctl: SessionController = Depends(get_controller)) -> Session:
    with http_errors():
        return ctl.grade(session_id, req.task_id, req.scored_value, role=req.role)


@router.post("/{session_id}/archive", response_model=Session)
def archive(session_id: str, ctl: SessionController = Depends(get_controller)) -> Session:
    with http_errors():
        return ctl.archive(session_id)


@router.post("/{session_id}/force-finish", response_model=Session)
def force_finish(session_id: str, req: Optional[RoleReq] = None, ctl: SessionController = Depends(get_controller)) -> Session:
    with http_errors():
        return ctl.force_finish(session_id, role=req.role if req else None)
