"""Report and admin routes."""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.deps import get_controller, http_errors
from api.schemas import AutoFinishRunResp
from delivery.controller import SessionController
from observability import log_event
from services.auto_finish import auto_finish_due_sessions
from services.scoring import CompetencyRollup, competency_rollup, reportable
from session_reports import (
    LearnerFeedback,
    SessionReport,
    TeacherReport,
    build_learner_feedback,
    build_session_report,
    build_teacher_report,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reports"])


@router.get("/reports/session/{session_id}", response_model=SessionReport)
def session_report(session_id: str, ctl: SessionController = Depends(get_controller)) -> SessionReport:
    with http_errors():
        session = ctl.get(session_id)
    return build_session_report(session, ctl.registry, ctl.catalog)


@router.get("/reports/session/{session_id}/learner-feedback", response_model=LearnerFeedback)
def learner_feedback(session_id: str, ctl: SessionController = Depends(get_controller)) -> LearnerFeedback:
    with http_errors():
        session = ctl.get(session_id)
    return build_learner_feedback(session, ctl.registry)


@router.get("/reports/session/{session_id}/teacher-report", response_model=TeacherReport)
def teacher_report(session_id: str, ctl: SessionController = Depends(get_controller)) -> TeacherReport:
    with http_errors():
        session = ctl.get(session_id)
    return build_teacher_report(session, ctl.registry)


@router.get("/reports/competencies", response_model=List[CompetencyRollup])
def class_rollup(
    student_id: Optional[str] = Query(None, alias="studentId"),
    ctl: SessionController = Depends(get_controller),
) -> List[CompetencyRollup]:
    sessions = reportable(ctl.list_sessions(student_id=student_id))
    rollups = competency_rollup(sessions, ctl.registry.competencies(), ctl.registry.construct_index())
    return list(rollups.values())


@router.post("/admin/auto-finish/run", response_model=AutoFinishRunResp)
def run_auto_finish(ctl: SessionController = Depends(get_controller)) -> AutoFinishRunResp:
    finished = auto_finish_due_sessions(ctl.store, ctl.catalog)
    logger.info("Auto-finish sweep closed %d session(s)", len(finished))
    log_event("auto_finish_sweep", None, count=len(finished))
    return AutoFinishRunResp(count=len(finished), session_ids=finished)
