"""Evidence-centered design reference entities.

Competencies, evidence models, task models, tasks and questions are
authored elsewhere and only read by the delivery core. Field names are
snake_case in Python and camelCase on the wire.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import ConfigDict, Field, model_validator

from .configs import CamelModel, MeasurementModel, WeightedMeasurement

QuestionType = Literal["mcq", "msq", "open", "constructed", "rubric", "numeric", "reading"]
ScoringMethod = Literal["binary", "partial", "rubric"]


class Competency(CamelModel):
    id: str
    name: str
    description: str = ""
    parent_id: Optional[str] = None
    model_id: Optional[str] = None


class Evidence(CamelModel):
    id: str
    name: str = ""
    description: str = ""


class Construct(CamelModel):
    id: str
    name: str = ""
    linked_competency_id: Optional[str] = None
    evidence_id: Optional[str] = None


class ScoringDescriptor(CamelModel):
    method: ScoringMethod = "binary"
    max_score: Optional[float] = None


class Observation(CamelModel):
    id: str
    name: str = ""
    construct_id: Optional[str] = None
    type: str = "response"
    linked_question_ids: List[str] = Field(default_factory=list)
    scoring: ScoringDescriptor = Field(default_factory=ScoringDescriptor)


class RubricLevel(CamelModel):
    name: str
    descriptor: str = ""
    score: float


class RubricCriterion(CamelModel):
    name: str
    levels: List[RubricLevel] = Field(default_factory=list)


class Rubric(CamelModel):
    id: str
    observation_id: str
    criteria: List[RubricCriterion] = Field(default_factory=list)

    def levels(self) -> List[RubricLevel]:
        return [level for criterion in self.criteria for level in criterion.levels]

    def matching_levels(self, name: str) -> List[RubricLevel]:
        """Levels whose name equals ``name``, ignoring case and surrounding spaces."""
        wanted = name.strip().lower()
        return [level for level in self.levels() if level.name.strip().lower() == wanted]

    def max_score(self) -> float:
        scores = [level.score for level in self.levels()]
        return max(scores) if scores else 0.0


class EvidenceModel(CamelModel):
    id: str
    name: str
    evidences: List[Evidence] = Field(default_factory=list)
    constructs: List[Construct] = Field(default_factory=list)
    observations: List[Observation] = Field(default_factory=list)
    rubrics: List[Rubric] = Field(default_factory=list)
    measurement_model: MeasurementModel = Field(default_factory=lambda: WeightedMeasurement(type="average"))

    @model_validator(mode="after")
    def _check_references(self) -> "EvidenceModel":
        known = {obs.id for obs in self.observations} | {rubric.id for rubric in self.rubrics}
        unknown = sorted(set(self.measurement_model.referenced_ids()) - known)
        if unknown:
            raise ValueError(
                f"Measurement model of {self.id} references unknown observation/rubric ids: {', '.join(unknown)}"
            )
        construct_ids = {c.id for c in self.constructs}
        for obs in self.observations:
            if obs.construct_id and obs.construct_id not in construct_ids:
                raise ValueError(f"Observation {obs.id} links to unknown construct {obs.construct_id}")
        observation_ids = {obs.id for obs in self.observations}
        for rubric in self.rubrics:
            if rubric.observation_id not in observation_ids:
                raise ValueError(f"Rubric {rubric.id} links to unknown observation {rubric.observation_id}")
        return self

    def observation(self, observation_id: str) -> Optional[Observation]:
        return next((obs for obs in self.observations if obs.id == observation_id), None)

    def construct(self, construct_id: str) -> Optional[Construct]:
        return next((c for c in self.constructs if c.id == construct_id), None)

    def rubric_for(self, observation_id: str) -> Optional[Rubric]:
        return next((r for r in self.rubrics if r.observation_id == observation_id), None)

    def observations_for_question(self, question_id: str) -> List[Observation]:
        return [obs for obs in self.observations if question_id in obs.linked_question_ids]


class ObservationRef(CamelModel):
    observation_id: str
    evidence_id: Optional[str] = None


class ItemMapping(CamelModel):
    item_id: str
    observation_id: str
    evidence_id: Optional[str] = None


class TaskModel(CamelModel):
    id: str
    name: str
    description: str = ""
    difficulty: Optional[str] = None
    evidence_model_ids: List[str] = Field(default_factory=list)
    expected_observations: List[ObservationRef] = Field(default_factory=list)
    item_mappings: List[ItemMapping] = Field(default_factory=list)
    sub_task_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _mappings_are_expected(self) -> "TaskModel":
        expected = {(ref.observation_id, ref.evidence_id) for ref in self.expected_observations}
        for mapping in self.item_mappings:
            if (mapping.observation_id, mapping.evidence_id) not in expected:
                raise ValueError(
                    f"Item mapping for {mapping.item_id} uses ({mapping.observation_id}, {mapping.evidence_id}) "
                    f"which is not an expected observation of task model {self.id}"
                )
        return self

    def mapping_for(self, item_id: str) -> Optional[ItemMapping]:
        return next((m for m in self.item_mappings if m.item_id == item_id), None)


class Task(CamelModel):
    id: str
    task_model_id: Optional[str] = None
    question_id: Optional[str] = None
    title: str = ""
    end_time: Optional[str] = None

    model_config = ConfigDict(**CamelModel.model_config, frozen=True)


class QuestionOption(CamelModel):
    id: str
    text: str = ""


class Question(CamelModel):
    id: str
    stem: str = ""
    type: QuestionType = "mcq"
    options: List[QuestionOption] = Field(default_factory=list)
    correct_option_id: Optional[str] = None
    correct_option_ids: List[str] = Field(default_factory=list)
    sub_question_ids: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_passage(self) -> bool:
        return self.type == "reading"


__all__ = [
    "Competency",
    "Evidence",
    "Construct",
    "ScoringDescriptor",
    "Observation",
    "RubricLevel",
    "RubricCriterion",
    "Rubric",
    "EvidenceModel",
    "ObservationRef",
    "ItemMapping",
    "TaskModel",
    "Task",
    "QuestionOption",
    "Question",
    "QuestionType",
]
