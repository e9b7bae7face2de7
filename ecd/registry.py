"""Read-only lookups over evidence-model reference data and the task catalog."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from delivery.errors import NotFoundError

from .models import Competency, Construct, EvidenceModel, Observation, Question, Rubric, Task, TaskModel

logger = logging.getLogger(__name__)


class Registry:
    """Competencies, evidence models, task models, questions and policies.

    ``require_*`` helpers raise :class:`NotFoundError`; plain lookups return
    ``None`` so views can degrade to raw identifiers.
    """

    def __init__(self, store) -> None:
        self._store = store

    def competencies(self) -> List[Competency]:
        return self._store.competencies.list()

    def evidence_models(self) -> List[EvidenceModel]:
        return self._store.evidence_models.list()

    def task_models(self) -> List[TaskModel]:
        return self._store.task_models.list()

    def questions(self) -> List[Question]:
        return self._store.questions.list()

    def policies(self) -> list:
        return self._store.policies.list()

    def competency(self, competency_id: str) -> Optional[Competency]:
        return self._store.competencies.get(competency_id)

    def evidence_model(self, model_id: str) -> Optional[EvidenceModel]:
        return self._store.evidence_models.get(model_id)

    def task_model(self, model_id: Optional[str]) -> Optional[TaskModel]:
        if not model_id:
            return None
        return self._store.task_models.get(model_id)

    def question(self, question_id: Optional[str]) -> Optional[Question]:
        if not question_id:
            return None
        return self._store.questions.get(question_id)

    def policy(self, policy_id: Optional[str]):
        if not policy_id:
            return None
        return self._store.policies.get(policy_id)

    def require_question(self, question_id: str) -> Question:
        question = self.question(question_id)
        if question is None:
            raise NotFoundError("question", question_id)
        return question

    def require_policy(self, policy_id: str):
        policy = self.policy(policy_id)
        if policy is None:
            raise NotFoundError("policy", policy_id)
        return policy

    def evidence_models_for(self, task_model: Optional[TaskModel]) -> List[EvidenceModel]:
        """Evidence models a task model draws on; every model when unknown."""

        if task_model is None or not task_model.evidence_model_ids:
            return self.evidence_models()
        found: List[EvidenceModel] = []
        for model_id in task_model.evidence_model_ids:
            model = self.evidence_model(model_id)
            if model is None:
                logger.warning("Task model %s references missing evidence model %s", task_model.id, model_id)
                continue
            found.append(model)
        return found

    def find_observation(
        self, observation_id: str, models: Optional[Iterable[EvidenceModel]] = None
    ) -> Optional[Tuple[EvidenceModel, Observation]]:
        for model in models if models is not None else self.evidence_models():
            obs = model.observation(observation_id)
            if obs is not None:
                return model, obs
        return None

    def rubric_for(self, observation_id: str) -> Optional[Rubric]:
        located = self.find_observation(observation_id)
        if located is None:
            return None
        model, _ = located
        return model.rubric_for(observation_id)

    def construct_index(self) -> Dict[str, Construct]:
        index: Dict[str, Construct] = {}
        for model in self.evidence_models():
            for construct in model.constructs:
                index[construct.id] = construct
        return index

    def label(self, kind: str, entity_id: Optional[str]) -> str:
        """Display name for an entity, falling back to its raw id."""

        if not entity_id:
            return ""
        lookups = {
            "competency": self.competency,
            "evidence_model": self.evidence_model,
            "task_model": self.task_model,
        }
        lookup = lookups.get(kind)
        entity = lookup(entity_id) if lookup else None
        if entity is None:
            return entity_id
        return getattr(entity, "name", None) or entity_id


class TaskCatalog:  # Task instances binding task models to questions
    def __init__(self, store) -> None:
        self._store = store

    def get(self, task_id: str) -> Optional[Task]:
        return self._store.tasks.get(task_id)

    def require(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    def many(self, task_ids: Iterable[str]) -> List[Task]:
        tasks: List[Task] = []
        for task_id in task_ids:
            task = self.get(task_id)
            if task is None:
                logger.warning("Task %s is missing from the catalog", task_id)
                continue
            tasks.append(task)
        return tasks

    def missing(self, task_ids: Iterable[str]) -> List[str]:
        return [task_id for task_id in task_ids if self.get(task_id) is None]


__all__ = ["Registry", "TaskCatalog"]
