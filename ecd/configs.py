"""Tagged configuration unions for measurement models and selection policies."""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting either camelCase or snake_case field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", protected_namespaces=())


# -- measurement models -----------------------------------------------------


class WeightedMeasurement(CamelModel):
    type: Literal["sum", "average", "rubric"]
    weights: Dict[str, float] = Field(default_factory=dict)

    def referenced_ids(self) -> List[str]:
        return list(self.weights)


class IrtItemParameters(CamelModel):
    a: float = 1.0
    b: float = 0.0
    c: float = Field(default=0.0, ge=0.0, lt=1.0)


class IrtConfig(CamelModel):
    model: Literal["1PL", "2PL", "3PL"] = "2PL"
    item_parameters: Dict[str, IrtItemParameters] = Field(default_factory=dict)


class IrtMeasurement(CamelModel):
    type: Literal["irt"]
    irt_config: IrtConfig = Field(default_factory=IrtConfig)
    weights: Dict[str, float] = Field(default_factory=dict)

    def referenced_ids(self) -> List[str]:
        return list(self.weights) + list(self.irt_config.item_parameters)


class BayesianConfig(CamelModel):
    nodes: List[str] = Field(default_factory=list)
    cpts: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _cpts_reference_nodes(self) -> "BayesianConfig":
        unknown = sorted(set(self.cpts) - set(self.nodes))
        if unknown:
            raise ValueError(f"CPTs reference unknown nodes: {', '.join(unknown)}")
        return self


class BayesMeasurement(CamelModel):
    type: Literal["BN"]
    bayesian_config: BayesianConfig = Field(default_factory=BayesianConfig)
    weights: Dict[str, float] = Field(default_factory=dict)

    def referenced_ids(self) -> List[str]:
        return list(self.weights)


MeasurementModel = Annotated[
    Union[WeightedMeasurement, IrtMeasurement, BayesMeasurement],
    Field(discriminator="type"),
]


# -- selection policies -----------------------------------------------------


class IrtPolicyConfig(CamelModel):
    model: Literal["1PL", "2PL", "3PL"] = "2PL"
    theta_start: float = 0.0
    stop_after: Optional[int] = Field(default=None, ge=1)


class BayesianPolicyConfig(CamelModel):
    target_nodes: List[str] = Field(default_factory=list)
    entropy_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class MarkovPolicyConfig(CamelModel):
    transitions: Dict[str, Dict[str, float]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _rows_are_distributions(self) -> "MarkovPolicyConfig":
        for source, row in self.transitions.items():
            if any(p < 0 for p in row.values()):
                raise ValueError(f"Negative transition probability from {source}")
            total = sum(row.values())
            if row and abs(total - 1.0) > 1e-6:
                raise ValueError(f"Transition row for {source} sums to {total:.3f}, expected 1")
        return self


class _PolicyBase(CamelModel):
    id: str
    name: str
    description: str = ""


class IrtPolicy(_PolicyBase):
    type: Literal["IRT"]
    config: IrtPolicyConfig = Field(default_factory=IrtPolicyConfig)


class BayesianNetworkPolicy(_PolicyBase):
    type: Literal["BayesianNetwork"]
    config: BayesianPolicyConfig = Field(default_factory=BayesianPolicyConfig)


class MarkovChainPolicy(_PolicyBase):
    type: Literal["MarkovChain"]
    config: MarkovPolicyConfig = Field(default_factory=MarkovPolicyConfig)


Policy = Annotated[
    Union[IrtPolicy, BayesianNetworkPolicy, MarkovChainPolicy],
    Field(discriminator="type"),
]

POLICY_TYPES = ("IRT", "BayesianNetwork", "MarkovChain")

policy_adapter: TypeAdapter = TypeAdapter(Policy)
measurement_adapter: TypeAdapter = TypeAdapter(MeasurementModel)


__all__ = [
    "CamelModel",
    "WeightedMeasurement",
    "IrtItemParameters",
    "IrtConfig",
    "IrtMeasurement",
    "BayesianConfig",
    "BayesMeasurement",
    "MeasurementModel",
    "IrtPolicyConfig",
    "BayesianPolicyConfig",
    "MarkovPolicyConfig",
    "IrtPolicy",
    "BayesianNetworkPolicy",
    "MarkovChainPolicy",
    "Policy",
    "POLICY_TYPES",
    "policy_adapter",
    "measurement_adapter",
]
