"""
Tests for the timeline conflict validator.
"""
from CookPlan.dependency_graph import DependencyGraph
from CookPlan.models import ConflictSeverity, ConflictType
from CookPlan.validator import (
    annotate_tasks, ranges_overlap, validate_timeline,
)


def test_ranges_overlap_is_half_open():
    assert ranges_overlap(0, 10, 5, 15)
    assert not ranges_overlap(0, 10, 10, 20)
    assert not ranges_overlap(10, 20, 0, 10)


def test_turkey_and_pie_at_different_temps_is_an_error(make_task):
    roast = make_task("roast", -240, 180, requires_oven=True, oven_temp=350)
    pie = make_task("pie", -180, 60, requires_oven=True, oven_temp=425)

    result = validate_timeline([roast, pie])

    assert not result.is_valid
    assert len(result.conflicts) == 1
    conflict = result.conflicts[0]
    assert conflict.type == ConflictType.oven_overlap
    assert conflict.severity == ConflictSeverity.error
    assert conflict.task_ids == ["roast", "pie"]
    assert "350°F" in conflict.message and "425°F" in conflict.message
    assert "3h before to 2h before" in conflict.message


def test_shared_oven_at_same_temp_is_a_warning(make_task):
    rolls = make_task("rolls", -60, 20, requires_oven=True, oven_temp=375)
    stuffing = make_task("stuffing", -50, 40, requires_oven=True, oven_temp=375)

    result = validate_timeline([rolls, stuffing])

    assert result.is_valid
    assert [c.severity for c in result.conflicts] == [ConflictSeverity.warning]
    assert result.invalid_tasks == {}


def test_back_to_back_oven_tasks_do_not_conflict(make_task):
    first = make_task("first", -120, 60, requires_oven=True, oven_temp=400)
    second = make_task("second", -60, 45, requires_oven=True, oven_temp=325)

    assert validate_timeline([first, second]).conflicts == []


def test_every_task_on_a_cycle_gets_an_error(make_task):
    a = make_task("a", -60, 10, depends_on=["b"])
    b = make_task("b", -60, 10, depends_on=["a"])
    c = make_task("c", -30, 10)

    result = validate_timeline([a, b, c])

    assert [c.type for c in result.conflicts] == [ConflictType.dependency_cycle] * 2
    assert {tuple(c.task_ids) for c in result.conflicts} == {("a", "b"), ("b", "a")}
    assert set(result.invalid_tasks) == {"a", "b"}
    assert DependencyGraph.from_tasks([a, b, c]).cycles() == [["a", "b"]]


def test_self_dependency_is_a_cycle(make_task):
    loner = make_task("loner", -20, 10, depends_on=["loner"])

    result = validate_timeline([loner])

    assert len(result.conflicts) == 1
    assert result.conflicts[0].type == ConflictType.dependency_cycle


def test_missing_dependency_is_reported(make_task):
    gravy = make_task("gravy", -20, 15, depends_on=["drippings-123456789"])

    result = validate_timeline([gravy])

    assert len(result.conflicts) == 1
    conflict = result.conflicts[0]
    assert conflict.type == ConflictType.missing_dependency
    assert conflict.severity == ConflictSeverity.error
    assert "doesn't exist" in conflict.message
    assert "dripping..." in conflict.message


def test_dependency_ending_after_dependent_start(make_task):
    roast = make_task("roast", -240, 180)
    carve = make_task("carve", -90, 20, depends_on=["roast"])

    result = validate_timeline([roast, carve])

    assert len(result.conflicts) == 1
    conflict = result.conflicts[0]
    assert conflict.type == ConflictType.timing_error
    assert conflict.task_ids == ["carve", "roast"]
    assert "1h before" in conflict.message


def test_non_positive_duration_is_a_timing_error(make_task):
    broken = make_task("broken", -30, 0)

    result = validate_timeline([broken])

    assert result.conflicts[0].type == ConflictType.timing_error
    assert "invalid duration" in result.conflicts[0].message


def test_conflicts_are_sorted_errors_first_then_by_start(make_task):
    rolls = make_task("rolls", -300, 20, requires_oven=True, oven_temp=375)
    buns = make_task("buns", -290, 20, requires_oven=True, oven_temp=375)
    gravy = make_task("gravy", -100, 15, depends_on=["nowhere"])
    glaze = make_task("glaze", -200, 5, depends_on=["also-nowhere"])
    tasks = [rolls, buns, gravy, glaze]

    first = validate_timeline(tasks)
    second = validate_timeline(list(reversed(tasks)))

    assert [c.severity for c in first.conflicts] == [
        ConflictSeverity.error, ConflictSeverity.error, ConflictSeverity.warning,
    ]
    assert [c.task_ids[0] for c in first.conflicts[:2]] == ["glaze", "gravy"]
    assert [c.to_dict() for c in first.conflicts] == [
        c.to_dict() for c in validate_timeline(tasks).conflicts
    ]
    assert [c.type for c in second.conflicts] == [c.type for c in first.conflicts]


def test_annotate_tasks_returns_copies(make_task):
    roast = make_task("roast", -240, 180, requires_oven=True, oven_temp=350)
    pie = make_task("pie", -180, 60, requires_oven=True, oven_temp=425)
    salad = make_task("salad", -20, 10)

    result = validate_timeline([roast, pie, salad])
    annotated = annotate_tasks([roast, pie, salad], result)

    assert [t.is_valid for t in annotated] == [False, False, True]
    assert annotated[0].validation_errors == [result.conflicts[0].message]
    assert roast.is_valid and roast.validation_errors == []
