"""
Service-level tests against an in-memory database: generation, editing,
the live state machine with its undo window, and recalculation.
"""
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from conftest import SERVE_TIME, ScriptedGenerator, ScriptedRecalculator, ScriptedReviewer, by_title
from CookPlan.exceptions import (
    CollaboratorFailure, InvalidTransition, NotFoundError, StorageFailure, UndoExpired, ValidationError,
)
from CookPlan.models import ConflictSeverity, ConflictType, TaskStatus, Timeline, TimelineState
from CookPlan.repository_postgres import PostgresTimelineRepository, unit_of_work
from CookPlan.schemas.meal import MealCreate
from CookPlan.services.execution_service import ExecutionService
from CookPlan.services.meal_service import MealService
from CookPlan.services.recalculation_service import RecalculationService
from CookPlan.services.timeline_service import TimelineService


@pytest.fixture
def timeline(db, meal):
    return TimelineService(db, ScriptedGenerator()).generate(meal)


@pytest.fixture
def execution(db, clock):
    return ExecutionService(db, clock)


# --- generation ------------------------------------------------------------

def test_generated_timeline_keeps_oven_conflict(timeline, meal):
    assert timeline.meal_id == meal.id
    assert len(timeline.tasks) == 4
    assert timeline.has_conflicts
    assert not timeline.is_valid
    assert [(c.type, c.severity) for c in timeline.conflicts] == [
        (ConflictType.oven_overlap, ConflictSeverity.error)
    ]
    pie = by_title(timeline.tasks, "Bake pie")
    roast = by_title(timeline.tasks, "Roast turkey")
    assert pie.recipe_id == "pie"
    assert not pie.is_valid and not roast.is_valid
    assert by_title(timeline.tasks, "Brine turkey").is_valid
    assert timeline.state == TimelineState.not_started


def test_meal_without_recipes_never_reaches_the_generator(db):
    empty = MealService(db).create_meal(MealCreate(
        name="Empty", serve_time=SERVE_TIME, guest_count=2, recipes=[]
    ))
    generator = ScriptedGenerator()

    with pytest.raises(ValidationError):
        TimelineService(db, generator).generate_for_meal_id(empty.id)
    assert generator.calls == []


def test_unknown_meal(db):
    with pytest.raises(NotFoundError):
        TimelineService(db, ScriptedGenerator()).generate_for_meal_id("no-such-meal")


def test_generator_failure_stores_nothing(db, meal):
    service = TimelineService(db, ScriptedGenerator(error=TimeoutError("planner timed out")))

    with pytest.raises(CollaboratorFailure):
        service.generate(meal)
    assert PostgresTimelineRepository(db).get_by_meal_id(meal.id) is None


def test_generator_garbage_is_a_collaborator_failure(db, meal):
    with pytest.raises(CollaboratorFailure):
        TimelineService(db, ScriptedGenerator(tasks=[{"title": "no times"}])).generate(meal)


def test_regenerating_replaces_the_tasks(db, meal, timeline):
    again = TimelineService(db, ScriptedGenerator(tasks=[
        {"title": "Order pizza", "startTimeMinutes": -30, "durationMinutes": 5},
    ])).generate(meal)

    assert again.id == timeline.id
    assert [t.title for t in again.tasks] == ["Order pizza"]
    assert not again.has_conflicts


# --- editing -----------------------------------------------------------------

def test_moving_the_pie_clears_the_conflict(db, timeline):
    pie = by_title(timeline.tasks, "Bake pie")

    updated = TimelineService(db).edit_task(timeline.id, pie.id, {"start_time_minutes": -60})

    moved = by_title(updated.tasks, "Bake pie")
    assert moved.end_time_minutes == 0
    assert not updated.has_conflicts
    assert all(t.is_valid for t in updated.tasks)


@pytest.mark.parametrize("updates", [
    {"duration_minutes": 0},
    {"title": "   "},
    {"end_time_minutes": 10},
    {},
])
def test_invalid_edits_are_rejected(db, timeline, updates):
    pie = by_title(timeline.tasks, "Bake pie")
    with pytest.raises(ValidationError):
        TimelineService(db).edit_task(timeline.id, pie.id, updates)


def test_self_dependency_edit_is_rejected(db, timeline):
    pie = by_title(timeline.tasks, "Bake pie")
    with pytest.raises(ValidationError):
        TimelineService(db).edit_task(timeline.id, pie.id, {"depends_on": [pie.id]})


def test_deleting_a_task_drops_references_to_it(db, timeline):
    roast = by_title(timeline.tasks, "Roast turkey")

    updated = TimelineService(db).delete_task(timeline.id, roast.id)

    assert len(updated.tasks) == 3
    assert by_title(updated.tasks, "Rest and carve").depends_on == []
    assert not updated.has_conflicts


def test_reorder_puts_listed_tasks_first(db, timeline):
    carve = by_title(timeline.tasks, "Rest and carve")
    pie = by_title(timeline.tasks, "Bake pie")

    updated = TimelineService(db).reorder_tasks(timeline.id, [carve.id, pie.id])

    assert [t.title for t in updated.tasks] == ["Rest and carve", "Bake pie", "Brine turkey", "Roast turkey"]
    with pytest.raises(ValidationError):
        TimelineService(db).reorder_tasks(timeline.id, ["ghost"])


def test_replace_tasks_keeps_caller_ids(db, timeline):
    updated = TimelineService(db).replace_tasks(timeline.id, [
        {"id": "a", "title": "Prep", "start_time_minutes": -60, "duration_minutes": 20},
        {"id": "b", "title": "Cook", "start_time_minutes": -40, "duration_minutes": 40, "depends_on": ["a"]},
    ])

    assert [t.id for t in updated.tasks] == ["a", "b"]
    assert updated.id == timeline.id
    with pytest.raises(ValidationError):
        TimelineService(db).replace_tasks(timeline.id, [{"title": "No times"}])


def test_storage_errors_roll_back():
    class BrokenSession:
        rolled_back = False

        def commit(self):
            raise OperationalError("COMMIT", {}, Exception("connection lost"))

        def rollback(self):
            self.rolled_back = True

    session = BrokenSession()
    with pytest.raises(StorageFailure):
        with unit_of_work(session, "save timeline"):
            pass
    assert session.rolled_back


def test_failed_task_insert_leaves_no_timeline_row(db, meal, make_task):
    repo = PostgresTimelineRepository(db)
    clash = Timeline(id="tl-clash", meal_id=meal.id, tasks=[
        make_task("prep", -60, 20, meal_id=meal.id),
        make_task("prep", -30, 20, meal_id=meal.id),
    ])

    with pytest.raises(StorageFailure):
        repo.save(clash)

    assert repo.get_by_meal_id(meal.id) is None
    assert repo.get("tl-clash") is None


def test_task_ids_only_need_to_be_unique_per_timeline(db, meal, timeline):
    other = MealService(db).create_meal(MealCreate(
        name="Sunday roast", serve_time=SERVE_TIME, guest_count=4,
        recipes=[{"recipe_id": "turkey", "name": "Roast turkey", "serving_size": 4}],
    ))
    other_timeline = TimelineService(db, ScriptedGenerator()).generate(other)
    tasks = [
        {"id": "prep", "title": "Prep veg", "start_time_minutes": -60, "duration_minutes": 20},
        {"id": "cook", "title": "Cook veg", "start_time_minutes": -40, "duration_minutes": 20},
    ]

    first = TimelineService(db).replace_tasks(timeline.id, tasks)
    second = TimelineService(db).replace_tasks(other_timeline.id, tasks)

    assert [t.id for t in first.tasks] == [t.id for t in second.tasks] == ["prep", "cook"]
    TimelineService(db).delete_task(second.id, "prep")
    assert [t.id for t in TimelineService(db).get(timeline.id).tasks] == ["prep", "cook"]


# --- live execution ----------------------------------------------------------

def test_start_marks_first_task_in_progress(execution, meal, timeline):
    started = execution.start(meal.id)

    brine = by_title(started.tasks, "Brine turkey")
    assert started.state == TimelineState.running
    assert brine.status == TaskStatus.in_progress
    assert started.current_task_id == brine.id
    with pytest.raises(InvalidTransition):
        execution.start(meal.id)


def test_end_only_from_running(execution, meal, timeline):
    with pytest.raises(InvalidTransition):
        execution.end(meal.id)
    execution.start(meal.id)

    ended = execution.end(meal.id)

    assert ended.state == TimelineState.ended
    assert ended.current_task_id is None
    with pytest.raises(InvalidTransition):
        execution.start(meal.id)


def test_checkoff_advances_and_offers_undo(execution, meal, timeline, clock):
    execution.start(meal.id)
    brine = by_title(timeline.tasks, "Brine turkey")

    updated, undo = execution.checkoff(meal.id, brine.id)

    roast = by_title(updated.tasks, "Roast turkey")
    assert by_title(updated.tasks, "Brine turkey").status == TaskStatus.completed
    assert roast.status == TaskStatus.in_progress
    assert updated.current_task_id == roast.id
    assert undo.task_id == brine.id
    assert undo.previous_status == TaskStatus.in_progress
    assert undo.expires_at == clock.now + timedelta(seconds=30)


def test_checking_off_the_last_task_keeps_cooking_running(execution, meal, timeline):
    execution.start(meal.id)

    for task in sorted(timeline.tasks, key=lambda t: t.start_time_minutes):
        updated, _ = execution.checkoff(meal.id, task.id)

    assert all(t.status == TaskStatus.completed for t in updated.tasks)
    assert updated.current_task_id is None
    assert updated.is_running
    assert updated.state == TimelineState.running


def test_a_skipped_task_can_still_be_checked_off(execution, meal, timeline):
    execution.start(meal.id)
    pie = by_title(timeline.tasks, "Bake pie")
    execution.skip(meal.id, pie.id)

    updated, undo = execution.checkoff(meal.id, pie.id)

    assert by_title(updated.tasks, "Bake pie").status == TaskStatus.completed
    assert undo.previous_status == TaskStatus.skipped


def test_undo_inside_the_window(execution, meal, timeline, clock):
    execution.start(meal.id)
    brine = by_title(timeline.tasks, "Brine turkey")
    _, undo = execution.checkoff(meal.id, brine.id)
    clock.advance(seconds=29)

    restored = execution.undo(meal.id, brine.id, undo.previous_status)

    task = by_title(restored.tasks, "Brine turkey")
    assert task.status == TaskStatus.in_progress
    assert task.completed_at is None
    assert restored.current_task_id == brine.id


def test_undo_after_the_window_changes_nothing(execution, meal, timeline, clock):
    execution.start(meal.id)
    brine = by_title(timeline.tasks, "Brine turkey")
    execution.checkoff(meal.id, brine.id)
    clock.advance(seconds=30)

    with pytest.raises(UndoExpired):
        execution.undo(meal.id, brine.id)

    stored = PostgresTimelineRepository(execution.db).get(timeline.id)
    assert by_title(stored.tasks, "Brine turkey").status == TaskStatus.completed


def test_undo_of_an_unfinished_task(execution, meal, timeline):
    pie = by_title(timeline.tasks, "Bake pie")
    with pytest.raises(InvalidTransition):
        execution.undo(meal.id, pie.id)


def test_skip_and_set_status(execution, meal, timeline):
    execution.start(meal.id)
    brine = by_title(timeline.tasks, "Brine turkey")

    result = execution.set_status(meal.id, brine.id, TaskStatus.skipped)

    assert result["undo"] is None
    updated = result["timeline"]
    assert by_title(updated.tasks, "Brine turkey").status == TaskStatus.skipped
    assert updated.current_task_id == by_title(updated.tasks, "Roast turkey").id
    with pytest.raises(InvalidTransition):
        execution.set_status(meal.id, brine.id, TaskStatus.in_progress)


def test_live_view(execution, meal, timeline):
    execution.start(meal.id)

    view = execution.live_view(meal.id)

    assert view["state"] == "running"
    assert view["current_task"]["title"] == "Brine turkey"
    assert view["present_minute"] == -300
    assert view["time_remaining"] == "5h until dinner"
    assert view["progress"] == {"completed": 0, "total": 4, "percentage": 0}
    assert [t["title"] for t in view["groups"]["now"]] == ["Brine turkey"]
    assert [t["title"] for t in view["groups"]["next"]] == ["Roast turkey"]
    assert view["equipment"] == ["Oven", "Oven (350°F)"]
    assert view["overdue_task_ids"] == []


# --- recalculation -----------------------------------------------------------

def test_suggestion_from_recalculator(db, meal, timeline):
    roast = by_title(timeline.tasks, "Roast turkey")
    carve = by_title(timeline.tasks, "Rest and carve")
    recalculator = ScriptedRecalculator(reply={
        "taskId": roast.id, "newStartTimeMinutes": -225,
        "description": "Start the roast 15 minutes late", "affectedTaskIds": [carve.id],
    })

    suggestion = RecalculationService(db, recalculator).suggest(meal.id, context="Oven was slow")

    assert suggestion.task_id == roast.id
    assert suggestion.affected_task_ids == [carve.id]
    assert recalculator.calls[0][2] == "Oven was slow"
    # Suggestions never touch stored state
    stored = PostgresTimelineRepository(db).get(timeline.id)
    assert by_title(stored.tasks, "Roast turkey").start_time_minutes == -240


def test_recalculator_failure(db, meal, timeline):
    service = RecalculationService(db, ScriptedRecalculator(error=ConnectionError("down")))
    with pytest.raises(CollaboratorFailure):
        service.suggest(meal.id)


def test_shift_pending_moves_only_pending_tasks(db, execution, meal, timeline):
    execution.start(meal.id)

    shifted = RecalculationService(db).shift_pending(meal.id, 15)

    assert by_title(shifted.tasks, "Brine turkey").start_time_minutes == -300
    assert by_title(shifted.tasks, "Roast turkey").start_time_minutes == -225
    assert by_title(shifted.tasks, "Rest and carve").start_time_minutes == -30
    assert shifted.has_conflicts


def test_scaling_review_is_advisory(db):
    reviewer = ScriptedReviewer(error=RuntimeError("reviewer down"))

    created = MealService(db, reviewer).create_meal(MealCreate(
        name="Big dinner", serve_time=SERVE_TIME, guest_count=16,
        recipes=[{"recipe_id": "turkey", "name": "Roast turkey", "serving_size": 8}],
    ))

    assert reviewer.calls == ["turkey"]
    assert created.recipes[0].scaling.multiplier == 2.0
    assert created.recipes[0].scaling.review_notes is None


def test_duplicate_recipes_in_a_meal(db):
    with pytest.raises(ValidationError):
        MealService(db).create_meal(MealCreate(
            name="Twice", serve_time=SERVE_TIME, guest_count=4,
            recipes=[
                {"recipe_id": "pie", "name": "Pie", "serving_size": 8},
                {"recipe_id": "pie", "name": "Pie again", "serving_size": 8},
            ],
        ))
