"""Load registry reference data (competencies, models, questions, tasks, policies)."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping

from ecd.configs import policy_adapter
from ecd.models import Competency, EvidenceModel, Question, Task, TaskModel

logger = logging.getLogger(__name__)

# payload key -> (store attribute, parser); competencies and questions first
# so evidence and task models can be checked against them
SECTIONS = (
    ("competencies", "competencies", Competency.model_validate),
    ("evidenceModels", "evidence_models", EvidenceModel.model_validate),
    ("taskModels", "task_models", TaskModel.model_validate),
    ("questions", "questions", Question.model_validate),
    ("tasks", "tasks", Task.model_validate),
    ("policies", "policies", policy_adapter.validate_python),
)


def _upsert(repo, entity) -> None:
    existing = repo.get(entity.id)
    if existing is None:
        repo.create(entity)
        return
    repo.update(entity, expected_version=getattr(existing, "version", None))


def seed_store(store, data: Mapping[str, Iterable[Dict[str, Any]]]) -> Dict[str, int]:
    """Insert or replace every entity in ``data``; returns counts per section."""

    counts: Dict[str, int] = {}
    for key, attr, parse in SECTIONS:
        items = list(data.get(key) or [])
        repo = getattr(store, attr)
        for raw in items:
            _upsert(repo, parse(raw))
        counts[key] = len(items)
    logger.info("Seeded reference data: %s", counts)
    return counts


def seed_from_file(store, path: Path) -> Dict[str, int]:
    return seed_store(store, json.loads(Path(path).read_text(encoding="utf-8")))


__all__ = ["SECTIONS", "seed_from_file", "seed_store"]
