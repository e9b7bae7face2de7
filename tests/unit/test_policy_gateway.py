import httpx
import pytest

from config.providers import PolicyRoute
from policy_gateway import PolicyGatewayError, PolicyRequest, provider_for, request_next


class FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeClient:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, *, json, headers, timeout):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


ROUTE = PolicyRoute(name="test", base_url="http://policy.local/", timeout_s=1.0, max_retries=1)
REQUEST = PolicyRequest(policy_id="p-irt", type="IRT", session_id="s1", candidates=["t2", "t3"])


def test_request_posts_camel_case_payload():
    client = FakeClient(FakeResponse(200, {"taskId": "t3", "studentModel": {"irtTheta": 0.2}}))
    decision = request_next(REQUEST, route=ROUTE, client=client)
    assert decision.task_id == "t3"
    assert decision.student_model == {"irtTheta": 0.2}
    call = client.calls[0]
    assert call["url"] == "http://policy.local/next"
    assert call["json"]["policyId"] == "p-irt"
    assert call["json"]["candidates"] == ["t2", "t3"]
    assert call["timeout"] == 1.0


def test_retries_transport_errors_then_succeeds():
    client = FakeClient(httpx.ConnectError("refused"), FakeResponse(200, {"taskId": "t2"}))
    assert request_next(REQUEST, route=ROUTE, client=client).task_id == "t2"
    assert len(client.calls) == 2


def test_server_errors_exhaust_retries():
    client = FakeClient(FakeResponse(503), FakeResponse(500))
    with pytest.raises(PolicyGatewayError):
        request_next(REQUEST, route=ROUTE, client=client)


def test_client_error_is_not_retried():
    client = FakeClient(FakeResponse(400), FakeResponse(200, {"taskId": "t2"}))
    with pytest.raises(PolicyGatewayError):
        request_next(REQUEST, route=ROUTE, client=client)
    assert len(client.calls) == 1


def test_invalid_payload_is_retried():
    client = FakeClient(FakeResponse(200, ValueError("not json")), FakeResponse(200, {"taskId": ["bad"]}))
    with pytest.raises(PolicyGatewayError):
        request_next(REQUEST, route=ROUTE, client=client)


def test_api_key_header(monkeypatch):
    monkeypatch.setenv("POLICY_KEY", "secret")
    route = ROUTE.model_copy(update={"api_key_env": "POLICY_KEY", "extra_headers": {"X-Tenant": "school"}})
    client = FakeClient(FakeResponse(200, {"taskId": "t2"}))
    provider_for(route, client)(REQUEST)
    headers = client.calls[0]["headers"]
    assert headers["Authorization"] == "Bearer secret"
    assert headers["X-Tenant"] == "school"
