"""Evidence-centered design reference data: models, configs and lookups."""
from .configs import MeasurementModel, Policy, policy_adapter
from .models import (
    Competency,
    Construct,
    Evidence,
    EvidenceModel,
    ItemMapping,
    Observation,
    ObservationRef,
    Question,
    Rubric,
    RubricCriterion,
    RubricLevel,
    Task,
    TaskModel,
)

__all__ = [
    "MeasurementModel",
    "Policy",
    "policy_adapter",
    "Competency",
    "Construct",
    "Evidence",
    "EvidenceModel",
    "ItemMapping",
    "Observation",
    "ObservationRef",
    "Question",
    "Rubric",
    "RubricCriterion",
    "RubricLevel",
    "Task",
    "TaskModel",
]
