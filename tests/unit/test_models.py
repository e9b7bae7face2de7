import pytest
from pydantic import ValidationError

from ecd.configs import BayesMeasurement, IrtMeasurement, MarkovChainPolicy, WeightedMeasurement, measurement_adapter, policy_adapter
from ecd.models import EvidenceModel, Rubric, TaskModel


def test_measurement_union_dispatches_on_type():
    assert isinstance(measurement_adapter.validate_python({"type": "sum"}), WeightedMeasurement)
    irt = measurement_adapter.validate_python({"type": "irt", "irtConfig": {"model": "3PL", "itemParameters": {"o1": {"a": 1.2, "c": 0.2}}}})
    assert isinstance(irt, IrtMeasurement)
    assert irt.irt_config.item_parameters["o1"].c == 0.2
    assert isinstance(measurement_adapter.validate_python({"type": "BN", "bayesianConfig": {"nodes": ["n1"]}}), BayesMeasurement)
    with pytest.raises(ValidationError):
        measurement_adapter.validate_python({"type": "median"})


def test_bn_cpts_must_reference_nodes():
    with pytest.raises(ValidationError):
        measurement_adapter.validate_python({"type": "BN", "bayesianConfig": {"nodes": ["n1"], "cpts": {"n2": {}}}})


def test_policy_union_and_markov_rows():
    policy = policy_adapter.validate_python(
        {"id": "p", "name": "Markov", "type": "MarkovChain", "config": {"transitions": {"t1": {"t2": 0.4, "t3": 0.6}}}}
    )
    assert isinstance(policy, MarkovChainPolicy)
    with pytest.raises(ValidationError):
        policy_adapter.validate_python(
            {"id": "p", "name": "Markov", "type": "MarkovChain", "config": {"transitions": {"t1": {"t2": 0.4}}}}
        )
    with pytest.raises(ValidationError):
        policy_adapter.validate_python({"id": "p", "name": "x", "type": "Random"})


def test_evidence_model_rejects_dangling_references():
    with pytest.raises(ValidationError):
        EvidenceModel.model_validate({"id": "em", "name": "em", "measurementModel": {"type": "sum", "weights": {"o9": 1}}})
    with pytest.raises(ValidationError):
        EvidenceModel.model_validate({"id": "em", "name": "em", "observations": [{"id": "o1", "constructId": "missing"}]})
    with pytest.raises(ValidationError):
        EvidenceModel.model_validate({"id": "em", "name": "em", "rubrics": [{"id": "r1", "observationId": "o1"}]})


def test_item_mappings_must_be_expected_observations():
    with pytest.raises(ValidationError):
        TaskModel.model_validate(
            {
                "id": "tm",
                "name": "tm",
                "expectedObservations": [{"observationId": "o1", "evidenceId": "ev1"}],
                "itemMappings": [{"itemId": "q1", "observationId": "o2", "evidenceId": "ev1"}],
            }
        )


def test_rubric_levels_and_max_score():
    rubric = Rubric.model_validate(
        {
            "id": "r1",
            "observationId": "o1",
            "criteria": [{"name": "Clarity", "levels": [{"name": "Low", "score": 1}, {"name": "High", "score": 3}]}],
        }
    )
    assert [level.score for level in rubric.matching_levels(" high ")] == [3]
    assert rubric.matching_levels("Medium") == []
    assert rubric.max_score() == 3
