"""In-memory provider registry for adaptive task-selection policies."""
from typing import Any, Callable, Dict

_REGISTRY: Dict[str, Callable[..., Any]] = {}


def bind_provider(key: str, fn: Callable[..., Any]) -> None:
    """Bind a callable policy provider to a registry key."""
    _REGISTRY[key] = fn


def unbind_provider(key: str) -> None:
    _REGISTRY.pop(key, None)


def get_provider(key: str) -> Callable[..., Any]:
    """Retrieve a provider from the registry.

    Raises:
        KeyError: If no callable has been bound for ``key``.
    """

    if key not in _REGISTRY:
        raise KeyError(f"Policy provider not bound in registry: {key}")
    return _REGISTRY[key]


def provider_key(policy_type: str) -> str:
    return f"policies.{policy_type}"


IRT_KEY = provider_key("IRT")
BAYES_KEY = provider_key("BayesianNetwork")
MARKOV_KEY = provider_key("MarkovChain")
