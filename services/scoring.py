"""Competency rollups and measurement-model evaluation."""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from delivery.state import Session, SessionResponse
from ecd.configs import CamelModel
from ecd.models import Competency, Construct, EvidenceModel

# statuses whose responses count towards reporting
REPORTABLE = frozenset({"submitted", "completed", "reviewed", "archived"})


def _round3(value: float) -> float:
    """Round to three decimals with stable formatting."""
    return float(f"{value:.3f}")


def _mean(values: List[float]) -> float:
    if not values:
        return 0.0
    return _round3(sum(values) / len(values))


class CompetencyRollup(CamelModel):
    competency_id: str
    name: str
    parent_id: Optional[str] = None
    average: float = 0.0
    rubric_average: float = 0.0
    count: int = 0
    rubric_count: int = 0


class MeasurementResult(CamelModel):
    evidence_model_id: str
    type: str
    value: Optional[float] = None
    count: int = 0


def response_competencies(resp: SessionResponse, constructs: Optional[Dict[str, Construct]] = None) -> List[str]:
    """Competencies a response counts towards, via its attributed constructs."""

    if constructs is None:
        return list(resp.competency_ids)
    found: List[str] = []
    for construct_id in resp.construct_ids:
        construct = constructs.get(construct_id)
        if construct is None:
            continue
        if construct.linked_competency_id and construct.linked_competency_id not in found:
            found.append(construct.linked_competency_id)
    if not found and not any(cid in constructs for cid in resp.construct_ids):
        # construct deleted since submission: keep the snapshot taken then
        return list(resp.competency_ids)
    return found


def competency_rollup(
    sessions: Iterable[Session],
    competencies: Iterable[Competency],
    constructs: Optional[Dict[str, Construct]] = None,
) -> Dict[str, CompetencyRollup]:
    """Average scored values per competency, overall and rubric-only.

    Every registry competency is present; competencies with no scored
    responses report 0. Unscored responses are ignored.
    """

    buckets: Dict[str, List[float]] = {}
    rubric_buckets: Dict[str, List[float]] = {}
    for session in sessions:
        for resp in session.responses:
            if resp.scored_value is None:
                continue
            for competency_id in response_competencies(resp, constructs):
                buckets.setdefault(competency_id, []).append(resp.scored_value)
                if resp.is_rubric:
                    rubric_buckets.setdefault(competency_id, []).append(resp.scored_value)

    rollups: Dict[str, CompetencyRollup] = {}
    for comp in competencies:
        values = buckets.get(comp.id, [])
        rubric_values = rubric_buckets.get(comp.id, [])
        rollups[comp.id] = CompetencyRollup(
            competency_id=comp.id,
            name=comp.name,
            parent_id=comp.parent_id,
            average=_mean(values),
            rubric_average=_mean(rubric_values),
            count=len(values),
            rubric_count=len(rubric_values),
        )
    return rollups


def evaluate_measurement(model: EvidenceModel, responses: Iterable[SessionResponse]) -> MeasurementResult:
    """Apply a sum/average/rubric measurement model; IRT and BN are left to providers."""

    mm = model.measurement_model
    if mm.type not in ("sum", "average", "rubric"):
        return MeasurementResult(evidence_model_id=model.id, type=mm.type)

    rubric_ids = {rubric.observation_id: rubric.id for rubric in model.rubrics}
    weighted: List[float] = []
    weights: List[float] = []
    for resp in responses:
        if resp.scored_value is None or resp.observation_id is None:
            continue
        if model.observation(resp.observation_id) is None:
            continue
        if mm.type == "rubric" and not resp.is_rubric:
            continue
        weight = mm.weights.get(resp.observation_id)
        if weight is None:
            weight = mm.weights.get(rubric_ids.get(resp.observation_id, ""), 1.0)
        weighted.append(weight * resp.scored_value)
        weights.append(weight)

    if not weights:
        return MeasurementResult(evidence_model_id=model.id, type=mm.type, value=0.0, count=0)
    total = sum(weighted)
    if mm.type == "sum":
        value = total
    else:
        denom = sum(weights)
        value = total / denom if denom else 0.0
    return MeasurementResult(evidence_model_id=model.id, type=mm.type, value=_round3(value), count=len(weights))


def reportable(sessions: Iterable[Session]) -> List[Session]:
    return [s for s in sessions if s.status in REPORTABLE]


__all__ = [
    "CompetencyRollup",
    "MeasurementResult",
    "REPORTABLE",
    "competency_rollup",
    "evaluate_measurement",
    "reportable",
    "response_competencies",
]
