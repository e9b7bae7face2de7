"""Session aggregate and status transitions."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Literal, Mapping, Optional

from pydantic import Field

from ecd.configs import CamelModel

Status = Literal["in-progress", "paused", "submitted", "completed", "reviewed", "archived"]
Strategy = Literal["fixed", "IRT", "BayesianNetwork", "MarkovChain"]

TRANSITIONS: Mapping[str, FrozenSet[str]] = {
    "in-progress": frozenset({"paused", "submitted", "completed", "archived"}),
    "paused": frozenset({"in-progress", "archived"}),
    "submitted": frozenset({"reviewed", "archived"}),
    "completed": frozenset({"archived"}),
    "reviewed": frozenset({"archived"}),
    "archived": frozenset(),
}

TERMINAL: FrozenSet[str] = frozenset({"archived"})
# statuses the server auto-finish sweep may close
OPEN_STATUSES: FrozenSet[str] = frozenset({"in-progress", "paused"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_now() -> str:
    return utcnow().isoformat()


def as_utc(value: datetime | str | None) -> Optional[datetime]:
    """Parse ISO timestamps, treating naive values as UTC."""

    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


class NextTaskPolicy(CamelModel):
    policy_id: str


class SessionResponse(CamelModel):
    task_id: str
    question_id: Optional[str] = None
    raw_answer: Any = None
    scored_value: Optional[float] = None
    rubric_level: Optional[str] = None
    observation_id: Optional[str] = None
    evidence_id: Optional[str] = None
    construct_ids: List[str] = Field(default_factory=list)
    competency_ids: List[str] = Field(default_factory=list)
    is_rubric: bool = False
    locked: bool = False
    graded_by: Optional[str] = None
    timestamp: str = Field(default_factory=iso_now)

    @property
    def needs_grading(self) -> bool:
        return self.scored_value is None and self.raw_answer not in (None, "")


class Submission(CamelModel):
    """Answer payload posted by a student for one task."""

    task_id: str
    question_id: Optional[str] = None
    raw_answer: Any = None
    rubric_level: Optional[str] = None
    observation_id: Optional[str] = None
    evidence_id: Optional[str] = None


class Session(CamelModel):
    """Mutable delivery aggregate; only the controller changes it."""

    id: str
    student_id: str
    task_ids: List[str]
    selection_strategy: Strategy = "fixed"
    next_task_policy: Optional[NextTaskPolicy] = None
    responses: List[SessionResponse] = Field(default_factory=list)
    status: Status = "in-progress"
    started_at: str = Field(default_factory=iso_now)
    end_time: Optional[str] = None
    finished_at: Optional[str] = None
    auto_finished: bool = False
    next_task_id: Optional[str] = None
    student_model: Dict[str, Any] = Field(default_factory=dict)
    version: int = 0
    updated_at: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    @property
    def is_active(self) -> bool:
        return self.status != "archived"

    @property
    def is_adaptive(self) -> bool:
        return self.selection_strategy != "fixed"

    def answered_task_ids(self) -> List[str]:
        return [resp.task_id for resp in self.responses]

    def has_response(self, task_id: str) -> bool:
        return any(resp.task_id == task_id for resp in self.responses)

    def unanswered_task_ids(self) -> List[str]:
        answered = set(self.answered_task_ids())
        return [tid for tid in self.task_ids if tid not in answered]

    def response_for(self, task_id: str) -> Optional[SessionResponse]:
        return next((resp for resp in self.responses if resp.task_id == task_id), None)

    def student_writable(self) -> bool:
        return self.status == "in-progress" and not self.auto_finished


__all__ = [
    "Status",
    "Strategy",
    "TRANSITIONS",
    "TERMINAL",
    "OPEN_STATUSES",
    "utcnow",
    "iso_now",
    "as_utc",
    "can_transition",
    "NextTaskPolicy",
    "SessionResponse",
    "Submission",
    "Session",
]
