"""Pydantic schemas for the session delivery API."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field

from delivery.state import Session, Submission
from ecd.configs import CamelModel
from ecd.models import Question, Task


class CreateSessionReq(CamelModel):
    # studentId/taskIds are checked by the controller so they surface as 400s
    student_id: Optional[str] = None
    task_ids: List[str] = Field(default_factory=list)
    selection_strategy: str = "fixed"
    policy_id: Optional[str] = None
    end_time: Optional[str] = None
    session_id: Optional[str] = None


class SubmitReq(Submission):
    pass


class FinishReq(CamelModel):
    early: bool = False


class RoleReq(CamelModel):
    role: Optional[str] = None


class GradeReq(CamelModel):
    task_id: str
    scored_value: float = Field(ge=0, allow_inf_nan=False)
    role: Optional[str] = None


class NextTaskResp(CamelModel):
    session_id: str
    task_id: Optional[str] = None
    task: Optional[Task] = None
    question: Optional[Question] = None


class SessionEventResp(CamelModel):
    session_id: str
    kind: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[str] = None


class AutoFinishRunResp(CamelModel):
    count: int
    session_ids: List[str] = Field(default_factory=list)


__all__ = [
    "AutoFinishRunResp",
    "CreateSessionReq",
    "FinishReq",
    "GradeReq",
    "NextTaskResp",
    "RoleReq",
    "Session",
    "SessionEventResp",
    "SubmitReq",
]
