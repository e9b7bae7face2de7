"""Configuration package for the session delivery service."""
from .providers import PolicyRoute, ProviderConfig, default_route, load_config, resolve_route
from .registry import BAYES_KEY, IRT_KEY, MARKOV_KEY, bind_provider, get_provider, provider_key, unbind_provider
from .settings import Settings, settings

__all__ = [
    "PolicyRoute",
    "ProviderConfig",
    "default_route",
    "load_config",
    "resolve_route",
    "BAYES_KEY",
    "IRT_KEY",
    "MARKOV_KEY",
    "bind_provider",
    "get_provider",
    "provider_key",
    "unbind_provider",
    "Settings",
    "settings",
]
