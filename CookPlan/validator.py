"""
Deterministic timeline validator.

Pure functions over a task list: no I/O, no mutation of the input, and the
same task set always yields the same conflict list in the same order.

Detects:
- Dependency cycles (every task on a cycle gets an error)
- Missing dependencies (dependsOn id not in the task set)
- Oven overlaps (warning when the temperatures match, error otherwise)
- Timing errors (end <= start, or a dependency that ends after its dependent starts)
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Iterable

from CookPlan.dependency_graph import DependencyGraph
from CookPlan.models import (
    ConflictSeverity, ConflictType, Task, TimelineConflict,
)
from CookPlan.utils_time import format_relative_time


SEVERITY_ORDER = {ConflictSeverity.error: 0, ConflictSeverity.warning: 1}
TYPE_ORDER = {
    ConflictType.dependency_cycle: 0,
    ConflictType.missing_dependency: 1,
    ConflictType.timing_error: 2,
    ConflictType.oven_overlap: 3,
}


@dataclass
class ValidationResult:
    is_valid: bool
    conflicts: List[TimelineConflict]
    # task id -> error-level messages for that task
    invalid_tasks: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def errors(self) -> List[TimelineConflict]:
        return [c for c in self.conflicts if c.severity == ConflictSeverity.error]

    @property
    def warnings(self) -> List[TimelineConflict]:
        return [c for c in self.conflicts if c.severity == ConflictSeverity.warning]


def ranges_overlap(start1: int, end1: int, start2: int, end2: int) -> bool:
    """Half-open [start, end) overlap."""
    return start1 < end2 and start2 < end1


def validate_cycles(tasks: List[Task], graph: DependencyGraph) -> List[TimelineConflict]:
    by_id = {t.id: t for t in tasks}
    conflicts = []
    for component in graph.cycles():
        chain = " -> ".join(f'"{by_id[m].title}"' for m in component)
        for member in component:
            others = [m for m in component if m != member]
            conflicts.append(TimelineConflict(
                type=ConflictType.dependency_cycle,
                severity=ConflictSeverity.error,
                task_ids=[member] + others,
                message=f'"{by_id[member].title}" is part of a dependency cycle: {chain}',
            ))
    return conflicts


def validate_missing_dependencies(tasks: List[Task], graph: DependencyGraph) -> List[TimelineConflict]:
    by_id = {t.id: t for t in tasks}
    return [
        TimelineConflict(
            type=ConflictType.missing_dependency,
            severity=ConflictSeverity.error,
            task_ids=[task_id],
            message=f'"{by_id[task_id].title}" depends on a task that doesn\'t exist (ID: {dep_id[:8]}...)',
        )
        for task_id, dep_id in graph.missing_edges()
    ]


def validate_oven_conflicts(tasks: List[Task]) -> List[TimelineConflict]:
    conflicts = []
    oven_tasks = [t for t in tasks if t.requires_oven]

    for i, task_a in enumerate(oven_tasks):
        for task_b in oven_tasks[i + 1:]:
            if not ranges_overlap(task_a.start_time_minutes, task_a.end_time_minutes,
                                  task_b.start_time_minutes, task_b.end_time_minutes):
                continue

            window = (
                f"{format_relative_time(max(task_a.start_time_minutes, task_b.start_time_minutes))} to "
                f"{format_relative_time(min(task_a.end_time_minutes, task_b.end_time_minutes))}"
            )
            if task_a.oven_temp == task_b.oven_temp:
                severity = ConflictSeverity.warning
                temp = f" at {task_a.oven_temp}°F" if task_a.oven_temp is not None else ""
                message = (
                    f'"{task_a.title}" and "{task_b.title}" share the oven{temp} '
                    f"from {window}"
                )
            else:
                severity = ConflictSeverity.error
                message = (
                    f'"{task_a.title}" ({_temp(task_a)}) and "{task_b.title}" ({_temp(task_b)}) '
                    f"both need the oven from {window}"
                )
            conflicts.append(TimelineConflict(
                type=ConflictType.oven_overlap,
                severity=severity,
                task_ids=[task_a.id, task_b.id],
                message=message,
            ))
    return conflicts


def _temp(task: Task) -> str:
    return f"{task.oven_temp}°F" if task.oven_temp is not None else "unknown temp"


def validate_timing(tasks: List[Task], graph: DependencyGraph) -> List[TimelineConflict]:
    conflicts = []
    by_id = {t.id: t for t in tasks}
    cyclic: Dict[str, int] = {}
    for n, component in enumerate(graph.cycles()):
        for member in component:
            cyclic[member] = n

    for task in tasks:
        if task.end_time_minutes <= task.start_time_minutes:
            conflicts.append(TimelineConflict(
                type=ConflictType.timing_error,
                severity=ConflictSeverity.error,
                task_ids=[task.id],
                message=f'"{task.title}" has invalid duration: {task.duration_minutes} minutes',
            ))

        for dep_id in graph.adjacency.get(task.id, []):
            dependency = by_id.get(dep_id)
            if dependency is None:
                continue
            # Ordering inside a cycle is meaningless; the cycle is reported instead.
            if task.id in cyclic and cyclic.get(dep_id) == cyclic[task.id]:
                continue
            if dependency.end_time_minutes > task.start_time_minutes:
                conflicts.append(TimelineConflict(
                    type=ConflictType.timing_error,
                    severity=ConflictSeverity.error,
                    task_ids=[task.id, dep_id],
                    message=(
                        f'"{task.title}" starts at {format_relative_time(task.start_time_minutes)} '
                        f'but depends on "{dependency.title}" which ends at '
                        f"{format_relative_time(dependency.end_time_minutes)}"
                    ),
                ))
    return conflicts


def sort_conflicts(conflicts: Iterable[TimelineConflict], tasks: List[Task]) -> List[TimelineConflict]:
    """Errors before warnings, then by the earliest start among the involved tasks."""
    starts = {t.id: t.start_time_minutes for t in tasks}

    def key(conflict: TimelineConflict):
        involved = [starts[i] for i in conflict.task_ids if i in starts]
        earliest = min(involved) if involved else 0
        return (
            SEVERITY_ORDER[conflict.severity],
            earliest,
            TYPE_ORDER[conflict.type],
            tuple(conflict.task_ids),
        )

    return sorted(conflicts, key=key)


def validate_timeline(tasks: Iterable[Task]) -> ValidationResult:
    """
    Run every rule over the task set and return the complete conflict list.
    The result replaces any previous conflict set; it is never merged.
    """
    tasks = list(tasks)
    graph = DependencyGraph.from_tasks(tasks)

    conflicts = sort_conflicts(
        validate_cycles(tasks, graph)
        + validate_missing_dependencies(tasks, graph)
        + validate_oven_conflicts(tasks)
        + validate_timing(tasks, graph),
        tasks,
    )

    invalid_tasks: Dict[str, List[str]] = {}
    for conflict in conflicts:
        if conflict.severity != ConflictSeverity.error:
            continue
        for task_id in conflict.task_ids:
            invalid_tasks.setdefault(task_id, []).append(conflict.message)

    return ValidationResult(
        is_valid=not any(c.severity == ConflictSeverity.error for c in conflicts),
        conflicts=conflicts,
        invalid_tasks=invalid_tasks,
    )


def annotate_tasks(tasks: Iterable[Task], result: ValidationResult) -> List[Task]:
    """Copies of the tasks with is_valid / validation_errors taken from `result`."""
    annotated = []
    for task in tasks:
        errors = result.invalid_tasks.get(task.id, [])
        annotated.append(replace(task, is_valid=not errors, validation_errors=list(errors)))
    return annotated
