from __future__ import annotations  # Configuration schema for policy provider routing

from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field


class PolicyRoute(BaseModel):  # Policy provider endpoint configuration
    name: str
    base_url: str
    endpoint: str = "/next"
    timeout_s: float = Field(default=5.0, ge=0.1)
    max_retries: int = Field(default=1, ge=0)
    api_key_env: str | None = None
    extra_headers: Dict[str, str] = Field(default_factory=dict)


class ProviderConfig(BaseModel):  # Provider configuration root
    routes: Dict[str, PolicyRoute] = Field(default_factory=dict)
    registry: Dict[str, str] = Field(default_factory=dict)


def _load_yaml(path: Path) -> dict:
    import yaml  # only needed for YAML routing files

    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def load_config(path: Path) -> ProviderConfig:  # Load provider configuration from disk (JSON or YAML)
    if path.suffix in (".yaml", ".yml"):
        return ProviderConfig.model_validate(_load_yaml(path))
    data = path.read_text(encoding="utf-8")
    return ProviderConfig.model_validate_json(data)


def resolve_route(cfg: ProviderConfig, policy_type: str) -> Optional[PolicyRoute]:  # Route bound to a policy type
    route_id = cfg.registry.get(policy_type)
    if route_id is None:
        return None
    if route_id not in cfg.routes:
        raise KeyError(f"Route '{route_id}' missing for '{policy_type}'")
    return cfg.routes[route_id]


def default_route(base_url: str, *, timeout_s: float, max_retries: int) -> PolicyRoute:  # Route built from settings
    return PolicyRoute(
        name="default",
        base_url=base_url.rstrip("/"),
        timeout_s=timeout_s,
        max_retries=max_retries,
    )
