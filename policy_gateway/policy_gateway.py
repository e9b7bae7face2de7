from __future__ import annotations  # Adaptive policy provider gateway module

import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import httpx
from pydantic import Field, ValidationError

from config import PolicyRoute
from delivery.errors import PolicyUnavailableError
from ecd.configs import CamelModel


logger = logging.getLogger(__name__)  # Module logger setup


class HttpClient(Protocol):  # Minimal HTTP client protocol
    def post(self, url: str, *, json: Dict[str, Any], headers: Dict[str, str], timeout: float) -> "HttpResponse": ...


class HttpResponse(Protocol):  # Minimal HTTP response protocol
    @property
    def status_code(self) -> int: ...

    def json(self) -> Any: ...

    @property
    def text(self) -> str: ...


class PolicyGatewayError(PolicyUnavailableError):  # Provider unreachable or returned an unusable payload
    status_code = 502


class PolicyRequest(CamelModel):  # Payload sent to an adaptive provider
    policy_id: str
    type: str
    config: Dict[str, Any] = Field(default_factory=dict)
    session_id: str
    student_id: Optional[str] = None
    history: List[Dict[str, Any]] = Field(default_factory=list)
    candidates: List[str] = Field(default_factory=list)
    student_model: Dict[str, Any] = Field(default_factory=dict)


class ProviderDecision(CamelModel):  # Provider reply; a null taskId ends delivery early
    task_id: Optional[str] = None
    student_model: Dict[str, Any] = Field(default_factory=dict)
    rationale: Optional[str] = None


def request_next(
    request: PolicyRequest,
    *,
    route: PolicyRoute,
    client: Optional[HttpClient] = None,
) -> ProviderDecision:  # Ask the provider for the next task, retrying transport and payload failures
    url = f"{route.base_url.rstrip('/')}{route.endpoint}"
    payload = request.model_dump(mode="json", by_alias=True)
    headers = {"Content-Type": "application/json"}
    if route.api_key_env:
        api_key = os.getenv(route.api_key_env)
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
    headers.update(route.extra_headers)

    attempts = route.max_retries + 1
    last_error: Optional[Exception] = None
    for attempt in range(attempts):
        logger.info(
            "Policy request send route=%s policy=%s session=%s attempt=%d/%d candidates=%d",
            route.name,
            request.policy_id,
            request.session_id,
            attempt + 1,
            attempts,
            len(request.candidates),
        )
        try:
            response, close_cb = _post(url, payload, headers, route.timeout_s, client)
        except httpx.HTTPError as exc:
            logger.warning("Policy transport failure: %s", exc)
            last_error = exc
            continue
        try:
            if response.status_code >= 500:
                logger.warning("Policy provider status %s", response.status_code)
                last_error = PolicyGatewayError(f"Policy provider returned status {response.status_code}")
                continue
            if response.status_code >= 400:
                raise PolicyGatewayError(f"Policy provider rejected request with status {response.status_code}")
            try:
                decision = ProviderDecision.model_validate(response.json())
            except (json.JSONDecodeError, ValueError, ValidationError) as exc:
                logger.warning("Policy provider payload invalid: %s", exc)
                last_error = exc
                continue
        finally:
            _close_safely(close_cb)
        logger.info(
            "Policy request done route=%s policy=%s task=%s attempt=%d",
            route.name,
            request.policy_id,
            decision.task_id,
            attempt + 1,
        )
        return decision
    raise PolicyGatewayError(
        f"Policy provider {route.name} unavailable after {attempts} attempt(s)",
        session_id=request.session_id,
    ) from last_error


def provider_for(route: PolicyRoute, client: Optional[HttpClient] = None) -> Callable[[PolicyRequest], ProviderDecision]:  # Bindable provider callable
    def _provider(request: PolicyRequest) -> ProviderDecision:
        return request_next(request, route=route, client=client)

    return _provider


def _post(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: float, client: Optional[HttpClient]) -> Tuple[HttpResponse, Optional[Callable[[], None]]]:  # Dispatch HTTP request
    if client is not None:
        return client.post(url, json=payload, headers=headers, timeout=timeout), None
    http_client = httpx.Client(timeout=timeout)
    try:
        response = http_client.post(url, json=payload, headers=headers)
    except Exception:
        http_client.close()
        raise
    return response, http_client.close


def _close_safely(close_cb: Optional[Callable[[], None]]) -> None:  # Close HTTP client callback when provided
    if close_cb is not None:
        close_cb()
