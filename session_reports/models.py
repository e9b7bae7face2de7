from __future__ import annotations  # Session report domain models

from typing import Any, Dict, List, Optional

from pydantic import Field

from ecd.configs import CamelModel
from services.scoring import CompetencyRollup, MeasurementResult


class CapturedEvidence(CamelModel):  # Observations/evidence a task produced in this session
    task_id: str
    task_model_id: Optional[str] = None
    task_model_name: str = ""
    observation_ids: List[str] = Field(default_factory=list)
    evidence_ids: List[str] = Field(default_factory=list)


class ResponseLine(CamelModel):  # One response with its attribution labels
    task_id: str
    question_id: Optional[str] = None
    answer: str = ""
    scored_value: Optional[float] = None
    rubric_level: Optional[str] = None
    observation_id: Optional[str] = None
    evidence_id: Optional[str] = None
    competency_ids: List[str] = Field(default_factory=list)
    competency_labels: List[str] = Field(default_factory=list)
    needs_grading: bool = False


class SessionReport(CamelModel):  # Summary of one session
    session_id: str
    student_id: str
    status: str
    selection_strategy: str
    auto_finished: bool = False
    responses: List[ResponseLine] = Field(default_factory=list)
    captured: List[CapturedEvidence] = Field(default_factory=list)
    competencies: List[CompetencyRollup] = Field(default_factory=list)
    measurements: List[MeasurementResult] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class FeedbackSummary(CamelModel):
    level: Optional[str] = None
    message: Optional[str] = None


class LearnerFeedback(CamelModel):  # Student-facing feedback
    session_id: str
    summary: FeedbackSummary = Field(default_factory=FeedbackSummary)
    strengths: List[str] = Field(default_factory=list)
    focus_areas: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)
    encouragement: str = "Great effort! Keep practicing."


class Recommendations(CamelModel):
    group_level: List[str] = Field(default_factory=list)
    individual_level: List[str] = Field(default_factory=list)


class TeacherReport(CamelModel):  # Teacher-facing report with model summary
    session_id: str
    student_id: str
    status: str
    strategy: str
    model_summary: Dict[str, Any] = Field(default_factory=dict)
    responses: List[ResponseLine] = Field(default_factory=list)
    competencies: List[CompetencyRollup] = Field(default_factory=list)
    pending_grading: int = 0
    recommendations: Recommendations = Field(default_factory=Recommendations)


__all__ = [
    "CapturedEvidence",
    "ResponseLine",
    "SessionReport",
    "FeedbackSummary",
    "LearnerFeedback",
    "Recommendations",
    "TeacherReport",
]
