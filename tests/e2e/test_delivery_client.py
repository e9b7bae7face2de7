import asyncio
import threading
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from api.deps import use_store
from api_server import create_app
from delivery.errors import InvalidStateError, ValidationError
from delivery_client import SessionClient


@pytest.fixture
def http(store):
    use_store(store)
    return TestClient(create_app())


@pytest.fixture
def client(http):
    with SessionClient(client=http, poll_seconds=0.01) as session_client:
        yield session_client


def test_drives_a_session_end_to_end(client):
    session = client.create("stu", ["t1", "t3"])
    assert session.status == "in-progress"

    task = client.next_task()
    assert task.task_id == "t1"
    assert task.task_model_name == "Fraction MCQ"
    assert task.question.stem == "Which is larger?"
    assert task.degraded is False

    client.submit("t1", "A")
    assert client.session.responses[0].scored_value == 1.0
    assert client.next_task().task_id == "t3"
    client.submit("t3", rubric_level="High")
    assert client.next_task() is None
    assert client.finish().status == "completed"
    assert client.notifications == []


def test_local_validation_happens_before_any_request(store):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    with SessionClient(client=httpx.Client(transport=httpx.MockTransport(handler), base_url="http://test")) as offline:
        with pytest.raises(ValidationError):
            offline.create(None, ["t1"])
        with pytest.raises(ValidationError):
            offline.create("stu", [])
        with pytest.raises(ValidationError):
            offline.create("stu", ["t1"], "IRT")
        with pytest.raises(InvalidStateError):
            offline.submit("t1", "A")
    assert calls == []


def test_local_state_checks(client):
    client.create("stu", ["t1", "t2"])
    client.submit("t1", "A")
    with pytest.raises(InvalidStateError):
        client.submit("t1", "B")
    with pytest.raises(ValidationError):
        client.submit("t9", "B")
    client.pause()
    with pytest.raises(InvalidStateError):
        client.submit("t2", "A")
    client.resume()
    client.archive()
    with pytest.raises(InvalidStateError):
        client.submit("t2", "A")
    with pytest.raises(InvalidStateError):
        client.archive()


def test_server_errors_become_notifications(client):
    session = client.create("stu", ["t3"])
    before = client.session
    result = client.submit("t3", rubric_level="Medium")
    assert result is before
    assert client.session.responses == []
    assert client.notifications[-1].status_code == 400
    assert "Medium" in client.notifications[-1].message
    assert session.id == client.session.id


def test_transport_failure_keeps_local_copy(store):
    state = {"fail": False}
    app_client = TestClient(create_app())
    use_store(store)

    def handler(request):
        if state["fail"]:
            raise httpx.ConnectError("offline", request=request)
        resp = app_client.request(
            request.method,
            request.url.path,
            content=request.content,
            headers={"content-type": "application/json"},
        )
        return httpx.Response(resp.status_code, content=resp.content, headers=resp.headers)

    with SessionClient(client=httpx.Client(transport=httpx.MockTransport(handler), base_url="http://test")) as flaky:
        created = flaky.create("stu", ["t1", "t2"])
        state["fail"] = True
        assert flaky.submit("t1", "A") is created
        assert flaky.notifications[-1].level == "error"
        state["fail"] = False
        assert flaky.refresh().responses == []


def test_enrichment_degrades_to_raw_ids(client, store):
    client.create("stu", ["t1"])
    store.task_models.delete("tm1")
    store.questions.delete("q1")
    task = client.next_task()
    assert task.task_id == "t1"
    assert task.task_model_name == "tm1"
    assert task.question is None
    assert task.degraded is True


def test_deadline_monitor_resyncs_once(client):
    soon = (datetime.now(timezone.utc) + timedelta(seconds=1)).isoformat()
    client.create("stu", ["t1", "t2"], end_time=soon)
    assert client.session.auto_finished is False

    async def run():
        task = client.watch_deadline()
        assert task is not None
        await asyncio.wait_for(task, timeout=5)

    asyncio.run(run())
    assert client.monitor.fetch_count == 1
    assert client.session.auto_finished is True
    assert client.session.status == "submitted"


def test_no_deadline_no_polling(client):
    client.create("stu", ["t1"])

    async def run():
        return client.watch_deadline()

    assert asyncio.run(run()) is None
    assert not client.monitor.active


def test_deadline_refresh_does_not_block_the_event_loop(store):
    release = threading.Event()
    app_client = TestClient(create_app())
    use_store(store)

    def handler(request):
        if request.method == "GET":
            release.wait(timeout=5)
        resp = app_client.request(
            request.method,
            request.url.path,
            content=request.content,
            headers={"content-type": "application/json"},
        )
        return httpx.Response(resp.status_code, content=resp.content, headers=resp.headers)

    with SessionClient(client=httpx.Client(transport=httpx.MockTransport(handler), base_url="http://test")) as slow:
        slow.create("stu", ["t1"])
        slow.monitor.arm(slow.session)
        slow.monitor.deadline = datetime.now(timezone.utc) - timedelta(seconds=1)

        async def run():
            pending = asyncio.ensure_future(slow.monitor.check())
            await asyncio.sleep(0.05)
            assert not pending.done()
            release.set()
            return await asyncio.wait_for(pending, timeout=5)

        refreshed = asyncio.run(run())
    assert refreshed.id == slow.session.id
    assert slow.monitor.fetch_count == 1
