"""Session controller: lifecycle, read-after-write and delivery scenarios."""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from config.registry import IRT_KEY, bind_provider
from delivery.errors import (
    ConflictError,
    ForbiddenError,
    InvalidLevelError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from services.scoring import competency_rollup, reportable


def _iso(delta: timedelta) -> str:
    return (datetime.now(timezone.utc) + delta).isoformat()


# -- creation -----------------------------------------------------------------


def test_create_memoises_first_task(controller):
    session = controller.create("stu", ["t1", "t2"])
    assert session.status == "in-progress"
    assert session.next_task_id == "t1"
    assert session.version == 1
    assert controller.next_task(session.id) == "t1"


@pytest.mark.parametrize(
    "student_id,task_ids",
    [(None, ["t1"]), ("stu", []), ("stu", ["t1", "t1"]), ("stu", ["t1", "nope"])],
)
def test_create_rejects_bad_input(controller, student_id, task_ids):
    with pytest.raises(ValidationError):
        controller.create(student_id, task_ids)
    assert controller.list_sessions() == []


def test_adaptive_create_requires_matching_policy(controller):
    with pytest.raises(ValidationError):
        controller.create("stu", ["t1"], "IRT")
    with pytest.raises(ValidationError):
        controller.create("stu", ["t1"], "IRT", "missing")
    with pytest.raises(ValidationError):
        controller.create("stu", ["t1"], "IRT", "p-bn")
    with pytest.raises(ValidationError):
        controller.create("stu", ["t1"], "Random", "p-irt")


def test_get_unknown_session(controller):
    with pytest.raises(NotFoundError):
        controller.get("ghost")


# -- next task ----------------------------------------------------------------


def test_fixed_order_next_task_sequence(controller):
    session = controller.create("stu", ["t2", "t1", "t6"])
    assert controller.next_task(session.id) == "t2"
    controller.submit(session.id, {"taskId": "t2", "rawAnswer": "A"})
    assert controller.next_task(session.id) == "t1"
    controller.submit(session.id, {"taskId": "t1", "rawAnswer": "A"})
    controller.submit(session.id, {"taskId": "t6", "rawAnswer": "42"})
    assert controller.next_task(session.id) is None


def test_next_task_is_idempotent_for_adaptive_sessions(controller):
    calls = []

    def provider(request):
        calls.append(request)
        return {"taskId": request.candidates[-1]}

    bind_provider(IRT_KEY, provider)
    session = controller.create("stu", ["t1", "t2", "t3"], "IRT", "p-irt")
    first = controller.next_task(session.id)
    assert first == "t3"
    assert controller.next_task(session.id) == first
    assert controller.next_task(session.id) == first
    assert len(calls) == 1


def test_out_of_order_submit_then_next_task(controller):
    session = controller.create("stu", ["t1", "t2"])
    controller.submit(session.id, {"taskId": "t2", "rawAnswer": "B"})
    assert controller.next_task(session.id) == "t1"


# -- submit ---------------------------------------------------------------------


def test_submit_rejects_duplicates_and_foreign_tasks(controller):
    session = controller.create("stu", ["t1", "t2"])
    controller.submit(session.id, {"taskId": "t1", "rawAnswer": "A"})
    with pytest.raises(InvalidStateError):
        controller.submit(session.id, {"taskId": "t1", "rawAnswer": "B"})
    with pytest.raises(ValidationError):
        controller.submit(session.id, {"taskId": "t3", "rawAnswer": "B"})
    assert len(controller.get(session.id).responses) == 1


def test_submit_requires_a_task_id(controller):
    session = controller.create("stu", ["t1"])
    with pytest.raises(ValidationError):
        controller.submit(session.id, {"rawAnswer": "A"})


def test_invalid_rubric_level_records_nothing(controller):
    session = controller.create("stu", ["t3"])
    with pytest.raises(InvalidLevelError):
        controller.submit(session.id, {"taskId": "t3", "rubricLevel": "Medium"})
    assert controller.get(session.id).responses == []


def test_submit_on_paused_session_is_rejected(controller):
    session = controller.create("stu", ["t1"])
    controller.pause(session.id)
    with pytest.raises(InvalidStateError):
        controller.submit(session.id, {"taskId": "t1", "rawAnswer": "A"})


def test_stale_version_raises_conflict(controller, store):
    session = controller.create("stu", ["t1", "t2"])
    controller.submit(session.id, {"taskId": "t1", "rawAnswer": "A"})
    with pytest.raises(ConflictError):
        store.sessions.update(session, expected_version=session.version)


# -- lifecycle ------------------------------------------------------------------


def test_pause_and_resume(controller):
    session = controller.create("stu", ["t1"])
    paused = controller.pause(session.id)
    assert paused.status == "paused"
    with pytest.raises(InvalidStateError):
        controller.pause(session.id)
    resumed = controller.resume(session.id)
    assert resumed.status == "in-progress"
    with pytest.raises(InvalidStateError):
        controller.resume(session.id)


def test_finish_requires_all_tasks_unless_early(controller):
    session = controller.create("stu", ["t1", "t2"])
    controller.submit(session.id, {"taskId": "t1", "rawAnswer": "A"})
    with pytest.raises(InvalidStateError):
        controller.finish(session.id)
    finished = controller.finish(session.id, early=True)
    assert finished.status == "completed"
    assert finished.finished_at is not None
    assert all(resp.locked for resp in finished.responses)


def test_finish_with_ungraded_answers_is_submitted(controller):
    session = controller.create("stu", ["t5"])
    controller.submit(session.id, {"taskId": "t5", "rawAnswer": "Half of something"})
    finished = controller.finish(session.id)
    assert finished.status == "submitted"


def test_review_grade_and_archive(controller):
    session = controller.create("stu", ["t5"])
    controller.submit(session.id, {"taskId": "t5", "rawAnswer": "Half of something"})
    controller.finish(session.id)
    with pytest.raises(ForbiddenError):
        controller.grade(session.id, "t5", 1.0, role="student")
    graded = controller.grade(session.id, "t5", 0.5, role="teacher")
    assert graded.responses[0].scored_value == 0.5
    assert graded.responses[0].graded_by == "teacher"
    with pytest.raises(ForbiddenError):
        controller.finalize_review(session.id, role="student")
    reviewed = controller.finalize_review(session.id, role="teacher")
    assert reviewed.status == "reviewed"
    archived = controller.archive(session.id)
    assert archived.status == "archived"
    assert controller.list_sessions(active_only=True) == []
    assert [s.id for s in controller.list_sessions()] == [session.id]


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), -1.0])
def test_grade_rejects_non_finite_and_negative_scores(controller, bad):
    session = controller.create("stu", ["t5"])
    controller.submit(session.id, {"taskId": "t5", "rawAnswer": "Half of something"})
    controller.finish(session.id)
    with pytest.raises(ValidationError):
        controller.grade(session.id, "t5", bad, role="teacher")
    stored = controller.get(session.id)
    assert stored.responses[0].scored_value is None
    rollup = competency_rollup([stored], controller.registry.competencies())
    assert not any(math.isnan(item.average) for item in rollup.values())


def test_list_sessions_applies_expired_deadlines(controller, store):
    session = controller.create("stu", ["t1", "t2"], end_time=_iso(timedelta(hours=1)))
    expired = session.model_copy(update={"end_time": _iso(-timedelta(seconds=1))})
    store.sessions.update(expired, expected_version=session.version)

    listed = controller.list_sessions()
    assert [(s.status, s.auto_finished) for s in listed] == [("submitted", True)]
    assert reportable(listed) == listed


def test_finalize_requires_submitted(controller):
    session = controller.create("stu", ["t1"])
    with pytest.raises(InvalidStateError):
        controller.finalize_review(session.id, role="teacher")


def test_force_finish_locks_without_deadline_flag(controller):
    session = controller.create("stu", ["t1", "t2"])
    controller.submit(session.id, {"taskId": "t1", "rawAnswer": "A"})
    forced = controller.force_finish(session.id, role="admin")
    assert forced.status == "submitted"
    assert forced.auto_finished is False
    assert forced.responses[0].locked is True
    assert controller.next_task(session.id) is None


def test_every_mutation_returns_the_stored_copy(controller, store):
    session = controller.create("stu", ["t1", "t2"])
    returned = controller.submit(session.id, {"taskId": "t1", "rawAnswer": "A"})
    assert returned == store.sessions.get(session.id)
    assert returned.version == session.version + 1


def test_events_recorded_for_transitions(controller, store):
    session = controller.create("stu", ["t1"])
    controller.pause(session.id)
    kinds = [evt.kind for evt in store.events(session.id)]
    assert kinds[0] == "status_paused"
    assert kinds[-1] == "created"


# -- scenarios ------------------------------------------------------------------


def test_mcq_scoring_and_competency_average(controller, store):
    session = controller.create("stu", ["t1", "t2"], session_id="s1")
    controller.submit("s1", {"taskId": "t1", "rawAnswer": "A"})
    session = controller.submit("s1", {"taskId": "t2", "rawAnswer": "B"})
    assert [(r.task_id, r.scored_value) for r in session.responses] == [("t1", 1.0), ("t2", 0.0)]
    rollup = competency_rollup([session], controller.registry.competencies())
    assert rollup["comp1"].average == 0.5
    assert rollup["comp2"].average == 0.0


def test_rubric_high_level_scores_three(controller):
    session = controller.create("stu", ["t3"])
    session = controller.submit(session.id, {"taskId": "t3", "rubricLevel": "High"})
    assert session.responses[0].scored_value == 3.0
    assert session.responses[0].is_rubric is True


def test_past_end_time_reads_back_auto_finished(controller):
    session = controller.create("stu", ["t1", "t2"], end_time=_iso(-timedelta(minutes=5)))
    assert session.auto_finished is True
    assert session.status == "submitted"
    assert session.responses == []
    with pytest.raises(InvalidStateError):
        controller.submit(session.id, {"taskId": "t1", "rawAnswer": "A"})
    assert controller.next_task(session.id) is None


def test_future_end_time_stays_open(controller):
    session = controller.create("stu", ["t1"], end_time=_iso(timedelta(hours=1)))
    assert session.auto_finished is False
    assert session.status == "in-progress"


def test_policy_timeout_still_delivers_next_fixed_task(controller):
    def provider(request):
        raise TimeoutError("provider timed out")

    bind_provider(IRT_KEY, provider)
    session = controller.create("stu", ["t1", "t2", "t3"], "IRT", "p-irt")
    controller.submit(session.id, {"taskId": "t1", "rawAnswer": "A"})
    assert controller.next_task(session.id) == "t2"


def test_submit_to_archived_session_is_rejected(controller):
    session = controller.create("stu", ["t1", "t2"])
    controller.archive(session.id)
    with pytest.raises(InvalidStateError):
        controller.submit(session.id, {"taskId": "t1", "rawAnswer": "A"})
    assert controller.get(session.id).responses == []
    with pytest.raises(InvalidStateError):
        controller.archive(session.id)
