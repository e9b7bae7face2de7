"""Read-only routes over the evidence model registry and task catalog."""
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_controller
from delivery.controller import SessionController
from ecd.models import Competency, EvidenceModel, Question, Task, TaskModel


router = APIRouter(tags=["registry"])


def _not_found(kind: str, entity_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{kind} {entity_id} not found")


@router.get("/evidenceModels", response_model=List[EvidenceModel])
def evidence_models(ctl: SessionController = Depends(get_controller)) -> List[EvidenceModel]:
    return ctl.registry.evidence_models()


@router.get("/competencies", response_model=List[Competency])
def competencies(ctl: SessionController = Depends(get_controller)) -> List[Competency]:
    return ctl.registry.competencies()


@router.get("/taskModels", response_model=List[TaskModel])
def task_models(ctl: SessionController = Depends(get_controller)) -> List[TaskModel]:
    return ctl.registry.task_models()


@router.get("/taskModels/{model_id}", response_model=TaskModel)
def task_model(model_id: str, ctl: SessionController = Depends(get_controller)) -> TaskModel:
    found = ctl.registry.task_model(model_id)
    if found is None:
        raise _not_found("Task model", model_id)
    return found


@router.get("/questions", response_model=List[Question])
def questions(ctl: SessionController = Depends(get_controller)) -> List[Question]:
    return ctl.registry.questions()


@router.get("/questions/{question_id}", response_model=Question)
def question(question_id: str, ctl: SessionController = Depends(get_controller)) -> Question:
    found = ctl.registry.question(question_id)
    if found is None:
        raise _not_found("Question", question_id)
    return found


@router.get("/policies")
def policies(ctl: SessionController = Depends(get_controller)) -> List[Dict[str, Any]]:
    # policies are a tagged union; dump each by alias
    return [policy.model_dump(mode="json", by_alias=True) for policy in ctl.registry.policies()]


@router.get("/tasks/{task_id}", response_model=Task)
def task(task_id: str, ctl: SessionController = Depends(get_controller)) -> Task:
    found = ctl.catalog.get(task_id)
    if found is None:
        raise _not_found("Task", task_id)
    return found
