"""Report builders for a single session.

Reports degrade gracefully: missing task models, questions or competencies
are shown by raw id rather than failing the report.
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from delivery.state import Session, SessionResponse
from ecd.registry import Registry, TaskCatalog
from services.scoring import CompetencyRollup, competency_rollup, evaluate_measurement

from .models import (
    CapturedEvidence,
    FeedbackSummary,
    LearnerFeedback,
    Recommendations,
    ResponseLine,
    SessionReport,
    TeacherReport,
)

STRONG = 0.7
WEAK = 0.4


def theta_level(theta: float) -> str:
    if theta > 1:
        return "Advanced"
    if theta > 0:
        return "Proficient"
    return "Needs Support"


def probability_level(prob: float) -> str:
    if prob > STRONG:
        return "Strong"
    if prob > WEAK:
        return "Developing"
    return "Needs Support"


def entropy(prob: float) -> float:
    """Binary entropy in bits; 0 at the extremes."""
    if prob <= 0 or prob >= 1:
        return 0.0
    return -prob * math.log2(prob) - (1 - prob) * math.log2(1 - prob)


def _answer_text(resp: SessionResponse) -> str:
    for value in (resp.raw_answer, resp.rubric_level, resp.scored_value):
        if value not in (None, ""):
            if isinstance(value, (list, tuple)):
                return ", ".join(str(item) for item in value)
            return str(value)
    return ""


def _response_lines(session: Session, registry: Registry) -> List[ResponseLine]:
    return [
        ResponseLine(
            task_id=resp.task_id,
            question_id=resp.question_id,
            answer=_answer_text(resp),
            scored_value=resp.scored_value,
            rubric_level=resp.rubric_level,
            observation_id=resp.observation_id,
            evidence_id=resp.evidence_id,
            competency_ids=resp.competency_ids,
            competency_labels=[registry.label("competency", cid) for cid in resp.competency_ids],
            needs_grading=resp.needs_grading,
        )
        for resp in session.responses
    ]


def _captured(session: Session, registry: Registry, catalog: TaskCatalog) -> List[CapturedEvidence]:
    captured: List[CapturedEvidence] = []
    for task_id in session.task_ids:
        task = catalog.get(task_id)
        if task is None:
            captured.append(CapturedEvidence(task_id=task_id))
            continue
        task_model = registry.task_model(task.task_model_id)
        observation_ids: List[str] = []
        evidence_ids: List[str] = []
        if task_model is not None:
            for ref in task_model.expected_observations:
                observation_ids.append(ref.observation_id)
                if ref.evidence_id and ref.evidence_id not in evidence_ids:
                    evidence_ids.append(ref.evidence_id)
        captured.append(
            CapturedEvidence(
                task_id=task.id,
                task_model_id=task.task_model_id,
                task_model_name=registry.label("task_model", task.task_model_id),
                observation_ids=observation_ids,
                evidence_ids=evidence_ids,
            )
        )
    return captured


def _rollups(session: Session, registry: Registry) -> List[CompetencyRollup]:
    rollups = competency_rollup([session], registry.competencies(), registry.construct_index())
    return list(rollups.values())


def _relative(rollup: CompetencyRollup, scale: float) -> float:
    return rollup.average / scale if scale > 0 else 0.0


def _score_scale(session: Session) -> float:
    scores = [resp.scored_value for resp in session.responses if resp.scored_value is not None]
    return max([1.0, *scores]) if scores else 1.0


def _bn_posteriors(session: Session) -> Dict[str, float]:
    posteriors = session.student_model.get("bnPosteriors") or session.student_model.get("bn_posteriors") or {}
    return {str(node): float(prob) for node, prob in posteriors.items()}


def _theta(session: Session) -> Optional[float]:
    theta = session.student_model.get("irtTheta", session.student_model.get("irt_theta"))
    return float(theta) if theta is not None else None


def build_session_report(session: Session, registry: Registry, catalog: TaskCatalog) -> SessionReport:
    rollups = _rollups(session, registry)
    measurements = [evaluate_measurement(model, session.responses) for model in registry.evidence_models()]
    recommendations: List[str] = []
    theta = _theta(session)
    if session.selection_strategy == "IRT" and theta is not None:
        recommendations.append("Assign items near current theta for better precision.")
    if session.selection_strategy == "BayesianNetwork" and _bn_posteriors(session):
        recommendations.append("Focus on nodes with highest uncertainty.")
    if not recommendations:
        recommendations.append("Complete more tasks for a fuller assessment.")
    return SessionReport(
        session_id=session.id,
        student_id=session.student_id,
        status=session.status,
        selection_strategy=session.selection_strategy,
        auto_finished=session.auto_finished,
        responses=_response_lines(session, registry),
        captured=_captured(session, registry, catalog),
        competencies=rollups,
        measurements=[m for m in measurements if m.count or m.value is not None],
        recommendations=recommendations,
    )


def build_learner_feedback(session: Session, registry: Registry) -> LearnerFeedback:
    feedback = LearnerFeedback(session_id=session.id)
    theta = _theta(session)
    if session.selection_strategy == "IRT" and theta is not None:
        level = theta_level(theta)
        messages = {
            "Advanced": "Excellent! You're ready for challenging problems.",
            "Proficient": "Great work! You're showing good understanding.",
            "Needs Support": "Don't worry, this is just a starting point.",
        }
        feedback.summary = FeedbackSummary(level=level, message=messages[level])
        if theta <= 0:
            feedback.focus_areas.append("Core skills practice")
            feedback.next_steps.append("Review basic exercises with examples.")
        elif theta > 1:
            feedback.strengths.append("Core skills mastered")
            feedback.next_steps.append("Try advanced, multi-step problems.")

    posteriors = _bn_posteriors(session) if session.selection_strategy == "BayesianNetwork" else {}
    for node, prob in posteriors.items():
        if prob > STRONG:
            feedback.strengths.append(node)
        elif prob < WEAK:
            feedback.focus_areas.append(node)

    scale = _score_scale(session)
    for rollup in _rollups(session, registry):
        if rollup.count == 0:
            continue
        relative = _relative(rollup, scale)
        if relative >= STRONG:
            feedback.strengths.append(rollup.name)
        elif relative < WEAK:
            feedback.focus_areas.append(rollup.name)

    if feedback.summary.level is None:
        scored = [resp.scored_value for resp in session.responses if resp.scored_value is not None]
        if scored:
            overall = sum(scored) / len(scored) / scale
            feedback.summary = FeedbackSummary(
                level=probability_level(overall),
                message=f"You answered {len(scored)} scored task(s).",
            )
    if feedback.focus_areas:
        feedback.next_steps.append(f"Practice more in: {', '.join(feedback.focus_areas)}")
    return feedback


def build_teacher_report(session: Session, registry: Registry) -> TeacherReport:
    model_summary: Dict[str, Any] = {}
    recs = Recommendations()
    theta = _theta(session)
    if session.selection_strategy == "IRT" and theta is not None:
        count = len(session.responses)
        model_summary["IRT"] = {
            "theta": theta,
            "stderr": 1 / math.sqrt(count) if count else None,
            "level": theta_level(theta),
        }
        recs.individual_level.append("Assign items near current theta for higher measurement precision.")

    posteriors = _bn_posteriors(session)
    if session.selection_strategy == "BayesianNetwork" and posteriors:
        model_summary["BayesianNetwork"] = {
            node: {"posterior": prob, "entropy": entropy(prob), "level": probability_level(prob)}
            for node, prob in posteriors.items()
        }
        recs.individual_level.append("Focus on nodes with highest entropy (uncertainty).")
        recs.group_level.append("Review group-level trends to identify systemic weaknesses.")

    pending = sum(1 for resp in session.responses if resp.needs_grading)
    if pending:
        recs.individual_level.append(f"Grade {pending} response(s) awaiting manual scoring.")
    if not model_summary:
        recs.individual_level.append("Complete more tasks to build a measurable profile.")

    return TeacherReport(
        session_id=session.id,
        student_id=session.student_id,
        status=session.status,
        strategy=session.selection_strategy,
        model_summary=model_summary,
        responses=_response_lines(session, registry),
        competencies=_rollups(session, registry),
        pending_grading=pending,
        recommendations=recs,
    )


__all__ = [
    "build_learner_feedback",
    "build_session_report",
    "build_teacher_report",
    "entropy",
    "probability_level",
    "theta_level",
]
