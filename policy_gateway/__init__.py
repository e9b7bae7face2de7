from __future__ import annotations  # Re-export policy_gateway public API

from .policy_gateway import (
    HttpClient,
    HttpResponse,
    PolicyGatewayError,
    PolicyRequest,
    ProviderDecision,
    provider_for,
    request_next,
)

__all__ = [
    "HttpClient",
    "HttpResponse",
    "PolicyGatewayError",
    "PolicyRequest",
    "ProviderDecision",
    "provider_for",
    "request_next",
]
