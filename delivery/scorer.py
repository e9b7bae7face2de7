"""Response scoring and construct attribution."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Set, Tuple

from ecd.models import EvidenceModel, Observation, Question, Rubric, Task, TaskModel
from ecd.registry import Registry

from .errors import InvalidLevelError, ValidationError
from .state import SessionResponse, Submission

logger = logging.getLogger(__name__)

# question types whose answers are kept for manual grading
MANUAL_TYPES = frozenset({"open", "constructed", "reading"})


@dataclass
class Attribution:
    """Where a response's evidence lands inside the evidence models."""

    observation_id: Optional[str] = None
    evidence_id: Optional[str] = None
    construct_ids: List[str] = field(default_factory=list)
    competency_ids: List[str] = field(default_factory=list)
    observation: Optional[Observation] = None
    evidence_model: Optional[EvidenceModel] = None
    source: str = "none"

    def rubric(self) -> Optional[Rubric]:
        if self.evidence_model is None or self.observation_id is None:
            return None
        return self.evidence_model.rubric_for(self.observation_id)


def _selected_ids(raw_answer: Any) -> Set[str]:
    if raw_answer is None:
        return set()
    if isinstance(raw_answer, str):
        return {part.strip() for part in raw_answer.split(",") if part.strip()}
    if isinstance(raw_answer, Iterable):
        return {str(item) for item in raw_answer}
    return {str(raw_answer)}


def score_mcq(question: Question, raw_answer: Any) -> Optional[float]:
    if question.correct_option_id is None:
        return None
    if raw_answer is None:
        return 0.0
    return 1.0 if str(raw_answer) == question.correct_option_id else 0.0


def score_msq(question: Question, raw_answer: Any, method: str = "binary") -> Optional[float]:
    correct = set(question.correct_option_ids)
    if not correct and question.correct_option_id:
        correct = {question.correct_option_id}
    if not correct:
        return None
    selected = _selected_ids(raw_answer)
    if method != "partial":
        return 1.0 if selected == correct else 0.0
    hits = len(selected & correct)
    wrong = len(selected - correct)
    return max(0.0, (hits - wrong) / len(correct))


def score_numeric(question: Question, raw_answer: Any) -> Optional[float]:
    expected = question.metadata.get("answer")
    if expected is None:
        return None
    try:
        target = float(expected)
        tolerance = abs(float(question.metadata.get("tolerance", 0.0)))
    except (TypeError, ValueError):
        logger.warning("Question %s has a non-numeric answer key; leaving ungraded", question.id)
        return None
    try:
        value = float(raw_answer)
    except (TypeError, ValueError):
        return 0.0
    return 1.0 if abs(value - target) <= tolerance else 0.0


def score_rubric(rubric: Optional[Rubric], level_name: Optional[str], *, observation_id: Optional[str]) -> float:
    if rubric is None:
        raise InvalidLevelError(f"No rubric is linked to observation {observation_id or '(unmapped)'}")
    if not level_name:
        raise InvalidLevelError(f"A rubric level is required for rubric {rubric.id}")
    matches = rubric.matching_levels(level_name)
    if len(matches) > 1:
        raise InvalidLevelError(f"Level '{level_name}' is ambiguous across the criteria of rubric {rubric.id}")
    if not matches:
        raise InvalidLevelError(f"Level '{level_name}' does not belong to rubric {rubric.id}")
    return float(matches[0].score)


class ResponseScorer:
    """Scores raw answers and attributes them to constructs via item mappings."""

    def __init__(self, registry: Registry) -> None:
        self._registry = registry

    def resolve_question(self, task: Task, submission: Submission) -> Optional[Question]:
        """Question answered by ``submission``; sub-questions of a reading passage are allowed."""

        question_id = task.question_id or submission.question_id
        if submission.question_id and task.question_id and submission.question_id != task.question_id:
            passage = self._registry.question(task.question_id)
            if passage is None or submission.question_id not in passage.sub_question_ids:
                raise ValidationError(
                    f"Question {submission.question_id} is not part of task {task.id}"
                )
            question_id = submission.question_id
        if not question_id:
            return None
        question = self._registry.question(question_id)
        if question is None:
            logger.warning("Question %s for task %s is missing; keeping the raw answer", question_id, task.id)
        return question

    def attribute(
        self,
        task: Task,
        question_id: Optional[str],
        *,
        observation_id: Optional[str] = None,
        evidence_id: Optional[str] = None,
    ) -> Attribution:
        task_model = self._registry.task_model(task.task_model_id)
        if task.task_model_id and task_model is None:
            logger.warning("Task model %s for task %s is missing", task.task_model_id, task.id)
        models = self._registry.evidence_models_for(task_model)

        resolved = self._from_mapping(task_model, question_id)
        source = "item_mapping"
        if resolved is None and question_id:
            resolved = self._from_linked_questions(models, task_model, question_id)
            source = "linked_question"
        if resolved is None and observation_id:
            resolved = (observation_id, evidence_id)
            source = "submission"
        if resolved is None:
            return Attribution()

        obs_id, ev_id = resolved
        located = self._registry.find_observation(obs_id, models) or self._registry.find_observation(obs_id)
        if located is None:
            logger.warning("Observation %s is not defined in any evidence model", obs_id)
            return Attribution(observation_id=obs_id, evidence_id=ev_id, source=source)

        model, observation = located
        construct_ids: List[str] = []
        competency_ids: List[str] = []
        construct = model.construct(observation.construct_id) if observation.construct_id else None
        if construct is not None:
            construct_ids.append(construct.id)
            if construct.linked_competency_id:
                competency_ids.append(construct.linked_competency_id)
            if ev_id is None:
                ev_id = construct.evidence_id
        return Attribution(
            observation_id=obs_id,
            evidence_id=ev_id,
            construct_ids=construct_ids,
            competency_ids=competency_ids,
            observation=observation,
            evidence_model=model,
            source=source,
        )

    def _from_mapping(self, task_model: Optional[TaskModel], question_id: Optional[str]) -> Optional[Tuple[str, Optional[str]]]:
        if task_model is None or not question_id:
            return None
        mapping = task_model.mapping_for(question_id)
        if mapping is None:
            return None
        return mapping.observation_id, mapping.evidence_id

    def _from_linked_questions(
        self, models: List[EvidenceModel], task_model: Optional[TaskModel], question_id: str
    ) -> Optional[Tuple[str, Optional[str]]]:
        for model in models:
            matches = model.observations_for_question(question_id)
            if not matches:
                continue
            if len(matches) > 1:
                logger.info(
                    "Question %s is linked to %d observations in %s; using %s",
                    question_id,
                    len(matches),
                    model.id,
                    matches[0].id,
                )
            obs = matches[0]
            evidence_id = None
            if task_model is not None:
                expected = next((ref for ref in task_model.expected_observations if ref.observation_id == obs.id), None)
                evidence_id = expected.evidence_id if expected else None
            return obs.id, evidence_id
        return None

    def score(self, question: Optional[Question], submission: Submission, attribution: Attribution) -> Tuple[Optional[float], bool]:
        """Return ``(scored_value, is_rubric)``; ``None`` means manual grading."""

        if question is None:
            return None, False
        method = attribution.observation.scoring.method if attribution.observation else "binary"
        if question.type == "rubric" or (submission.rubric_level and method == "rubric"):
            value = score_rubric(attribution.rubric(), submission.rubric_level, observation_id=attribution.observation_id)
            return value, True
        if question.type == "mcq":
            return score_mcq(question, submission.raw_answer), False
        if question.type == "msq":
            return score_msq(question, submission.raw_answer, method), False
        if question.type == "numeric":
            return score_numeric(question, submission.raw_answer), False
        if question.type in MANUAL_TYPES:
            return None, False
        logger.warning("No scoring rule for question type %s", question.type)
        return None, False

    def build_response(self, task: Task, submission: Submission) -> SessionResponse:
        """Score ``submission`` and wrap it as an append-ready response."""

        question = self.resolve_question(task, submission)
        question_id = question.id if question else (submission.question_id or task.question_id)
        attribution = self.attribute(
            task,
            question_id,
            observation_id=submission.observation_id,
            evidence_id=submission.evidence_id,
        )
        scored_value, is_rubric = self.score(question, submission, attribution)
        return SessionResponse(
            task_id=task.id,
            question_id=question_id,
            raw_answer=submission.raw_answer,
            scored_value=scored_value,
            rubric_level=submission.rubric_level,
            observation_id=attribution.observation_id,
            evidence_id=attribution.evidence_id,
            construct_ids=attribution.construct_ids,
            competency_ids=attribution.competency_ids,
            is_rubric=is_rubric,
        )


__all__ = ["Attribution", "ResponseScorer", "score_mcq", "score_msq", "score_numeric", "score_rubric"]
