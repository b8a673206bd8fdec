"""
Tests for the caller-side live session: optimistic updates, exact rollback,
the undo window, the suggestion budget, and the offline replay queue.
"""
import asyncio
import copy
from datetime import timedelta

import pytest

from conftest import SERVE_TIME, FakeClock
from CookPlan.exceptions import ConnectivityError, NotFoundError, StorageFailure, UndoExpired, ValidationError
from CookPlan.gateway import TimelineGateway
from CookPlan.live_session import LiveSession
from CookPlan.models import RecalculationSuggestion, TaskStatus, Timeline


class FakeGateway(TimelineGateway):
    """In-memory server holding its own copy of the timeline."""

    def __init__(self, timeline):
        self.server = copy.deepcopy(timeline)
        self.calls = []
        self.fail_with = None
        self.fail_on = {}

    def _check(self, task_id=None):
        if self.fail_with is not None:
            raise self.fail_with
        if task_id in self.fail_on:
            raise self.fail_on[task_id]

    def _snapshot(self):
        return copy.deepcopy(self.server)

    async def fetch_timeline(self, meal_id):
        return self._snapshot()

    async def update_task_status(self, meal_id, task_id, status, previous_status=None, notes=None):
        self.calls.append(("status", task_id, status, previous_status))
        await asyncio.sleep(0)
        self._check(task_id)
        task = self.server.task(task_id)
        if status == TaskStatus.pending:
            updated = task.with_status(previous_status or TaskStatus.pending)
        else:
            updated = task.with_status(status, task.completed_at)
        self.server.tasks = [updated if t.id == task_id else t for t in self.server.tasks]
        return {"timeline": self._snapshot(), "undo": None}

    async def update_task(self, timeline_id, task_id, updates):
        self.calls.append(("update", task_id, updates["start_time_minutes"]))
        await asyncio.sleep(0)
        self._check(task_id)
        self.server.tasks = [
            t.moved_to(updates["start_time_minutes"]) if t.id == task_id else t
            for t in self.server.tasks
        ]
        return self._snapshot()

    async def request_suggestion(self, meal_id, current_time, context=None):
        self.calls.append(("suggest", context))
        self._check()
        return RecalculationSuggestion("roast", -225, "Start the roast late", ["carve"], 1)


@pytest.fixture
def live_timeline(make_task):
    return Timeline(id="tl-1", meal_id="meal-1", is_running=True, tasks=[
        make_task("brine", -300, 30, status=TaskStatus.in_progress),
        make_task("roast", -240, 180),
        make_task("carve", -45, 30, depends_on=["roast"]),
        make_task("gravy", -30, 15),
    ])


@pytest.fixture
def gateway(live_timeline):
    return FakeGateway(live_timeline)


@pytest.fixture
def session_clock():
    return FakeClock(SERVE_TIME - timedelta(hours=5))


@pytest.fixture
def session(live_timeline, gateway, session_clock):
    return LiveSession(live_timeline, gateway, clock=session_clock)


def _starts(timeline):
    return {t.id: t.start_time_minutes for t in timeline.tasks}


def test_check_off_is_applied_before_the_request(session, gateway):
    pending = session.check_off("brine")

    assert session.timeline.task("brine").status == TaskStatus.completed
    assert session.is_busy("brine")
    assert session.current_task.id == "roast"
    assert gateway.calls == []

    asyncio.run(pending)

    assert not session.is_busy("brine")
    assert gateway.server.task("brine").status == TaskStatus.completed
    assert [a.task_id for a in session.undo_actions()] == ["brine"]


def test_failed_check_off_restores_the_exact_task(session, gateway):
    original = session.timeline.task("brine")
    gateway.fail_with = StorageFailure("database unavailable")

    with pytest.raises(StorageFailure):
        asyncio.run(session.check_off("brine"))

    assert session.timeline.task("brine") is original
    assert session.undo_actions() == []
    assert not session.is_busy("brine")
    assert session.online


def test_unreachable_server_marks_session_offline(session, gateway):
    gateway.fail_with = ConnectivityError("no network")

    with pytest.raises(ConnectivityError):
        asyncio.run(session.skip("gravy"))

    assert not session.online
    assert session.timeline.task("gravy").status == TaskStatus.pending


def test_undo_inside_the_window(session, gateway, session_clock):
    asyncio.run(session.check_off("brine"))
    session_clock.advance(seconds=29)

    pending = session.undo("brine")
    assert session.timeline.task("brine").status == TaskStatus.in_progress
    asyncio.run(pending)

    assert gateway.calls[-1] == ("status", "brine", TaskStatus.pending, TaskStatus.in_progress)
    assert gateway.server.task("brine").status == TaskStatus.in_progress
    assert session.undo_actions() == []


def test_undo_after_the_window_is_rejected_locally(session, gateway, session_clock):
    asyncio.run(session.check_off("brine"))
    session_clock.advance(seconds=30)
    calls = len(gateway.calls)

    with pytest.raises(UndoExpired):
        session.undo("brine")

    assert len(gateway.calls) == calls
    assert session.timeline.task("brine").status == TaskStatus.completed


def test_failed_undo_can_be_retried(session, gateway):
    asyncio.run(session.check_off("brine"))
    gateway.fail_with = StorageFailure("write failed")

    with pytest.raises(StorageFailure):
        asyncio.run(session.undo("brine"))

    assert session.timeline.task("brine").status == TaskStatus.completed
    gateway.fail_with = None
    asyncio.run(session.undo("brine"))
    assert session.timeline.task("brine").status == TaskStatus.in_progress


def test_concurrent_mutations_both_land(session, gateway):
    async def both():
        await asyncio.gather(session.check_off("brine"), session.skip("gravy"))

    asyncio.run(both())

    assert session.timeline.task("brine").status == TaskStatus.completed
    assert session.timeline.task("gravy").status == TaskStatus.skipped
    assert not session.is_busy("brine") and not session.is_busy("gravy")


def test_three_suggestions_per_delay(session):
    for _ in range(3):
        asyncio.run(session.request_suggestion("oven is slow"))

    assert session.suggestions_remaining == 0
    with pytest.raises(ValidationError):
        asyncio.run(session.request_suggestion())

    session.begin_behind_episode()
    assert asyncio.run(session.request_suggestion()).task_id == "roast"


def test_suggestions_do_not_change_the_timeline(session):
    before = _starts(session.timeline)

    suggestion = asyncio.run(session.request_suggestion())

    assert session.last_suggestion is suggestion
    assert _starts(session.timeline) == before


def test_accept_and_undo_a_suggestion(session, gateway):
    suggestion = asyncio.run(session.request_suggestion())

    pending = session.accept_suggestion(suggestion)
    assert _starts(session.timeline)["roast"] == -225
    assert _starts(session.timeline)["carve"] == -30
    asyncio.run(pending)

    assert ("update", "roast", -225) in gateway.calls
    assert ("update", "carve", -30) in gateway.calls
    assert not session.episode_open

    asyncio.run(session.undo())
    assert _starts(gateway.server) == {"brine": -300, "roast": -240, "carve": -45, "gravy": -30}
    assert _starts(session.timeline) == _starts(gateway.server)


def test_failed_suggestion_write_is_rolled_back(session, gateway):
    suggestion = asyncio.run(session.request_suggestion())
    roast = session.timeline.task("roast")
    gateway.fail_on = {"carve": StorageFailure("write failed")}

    with pytest.raises(StorageFailure):
        asyncio.run(session.accept_suggestion(suggestion))

    assert session.timeline.task("roast") is roast
    assert gateway.calls[-1] == ("update", "roast", -240)
    assert gateway.server.task("roast").start_time_minutes == -240
    assert session.undo_actions() == []


def test_offline_shift_is_queued_and_replayed(session, gateway):
    session.shift_offline()
    session.shift_offline()

    assert session.replay_queue == {"roast": -210, "carve": -15, "gravy": 0}
    assert session.timeline.task("brine").start_time_minutes == -300

    gateway.fail_with = ConnectivityError("still offline")
    assert asyncio.run(session.flush_offline()) == 0
    assert not session.online
    assert len(session.replay_queue) == 3

    gateway.fail_with = None
    gateway.fail_on = {"gravy": NotFoundError("deleted on another device")}
    assert asyncio.run(session.flush_offline()) == 2

    assert session.online
    assert session.replay_queue == {}
    assert gateway.server.task("roast").start_time_minutes == -210
    assert session.timeline.task("carve").start_time_minutes == -15


def test_queued_shift_goes_out_after_the_next_successful_request(session, gateway):
    gateway.fail_with = ConnectivityError("no network")
    with pytest.raises(ConnectivityError):
        asyncio.run(session.check_off("brine"))
    session.shift_offline()
    assert _starts(gateway.server)["roast"] == -240

    gateway.fail_with = None
    asyncio.run(session.check_off("brine"))

    assert session.online
    assert session.replay_queue == {}
    assert gateway.server.task("brine").status == TaskStatus.completed
    assert _starts(gateway.server) == {"brine": -300, "roast": -225, "carve": -30, "gravy": -15}
    assert _starts(session.timeline) == _starts(gateway.server)


def test_no_suggestion_requests_while_offline(session, gateway):
    session.online = False

    with pytest.raises(ConnectivityError):
        asyncio.run(session.request_suggestion("oven is slow"))

    assert gateway.calls == []
    assert session.suggestions_remaining == 3


def test_offline_shift_of_zero_minutes_is_rejected(session):
    with pytest.raises(ValidationError):
        session.shift_offline(0)

    assert session.replay_queue == {}
    assert _starts(session.timeline)["roast"] == -240


def test_check_off_a_skipped_task(session, gateway):
    asyncio.run(session.skip("gravy"))

    asyncio.run(session.check_off("gravy"))

    assert gateway.server.task("gravy").status == TaskStatus.completed
    assert [a.previous_status for a in session.undo_actions()] == [TaskStatus.skipped]
