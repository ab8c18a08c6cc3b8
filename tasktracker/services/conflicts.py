"""Service for detecting scheduling conflicts between tasks."""

from __future__ import annotations

from collections.abc import Iterable

from tasktracker.domain.models import (
    CandidateTask,
    Conflict,
    ConflictGroup,
    ConflictView,
    Task,
    TimeWindow,
)


def windows_overlap(a: TimeWindow, b: TimeWindow) -> bool:
    """Return True when two same-day windows overlap.

    Overlap rule: conflict if a.start < b.finish AND b.start < a.finish.
    Exact boundary touches (finish == start) are NOT considered conflicts,
    and a window that is unset or malformed never overlaps anything.
    """
    first, second = a.as_minutes(), b.as_minutes()
    if first is None or second is None:
        return False
    return first[0] < second[1] and second[0] < first[1]


def find_conflicts(
    candidate: CandidateTask | Task,
    existing_tasks: Iterable[Task],
) -> list[Conflict]:
    """Return one Conflict per (existing task, shared assignee) overlap.

    Only tasks on the candidate's calendar day are considered. Results keep
    the order of *existing_tasks*, then the candidate's assignee order. The
    caller is responsible for leaving the candidate itself out of
    *existing_tasks* when re-checking a stored task.
    """
    if candidate.window.as_minutes() is None or candidate.due_date is None:
        return []
    if not candidate.assignees:
        return []

    conflicts: list[Conflict] = []
    for task in existing_tasks:
        if task.due_date != candidate.due_date:
            continue
        if not windows_overlap(candidate.window, task.window):
            continue
        task_assignee_ids = {ref.id for ref in task.assignees}
        for assignee in candidate.assignees:
            if assignee.id in task_assignee_ids:
                conflicts.append(Conflict(existing_task=task, assignee=assignee))
    return conflicts


def describe_conflicts(conflicts: list[Conflict]) -> list[ConflictView]:
    """Flatten conflicts into rendering rows, preserving order."""
    return [
        ConflictView(
            existing_task_id=c.existing_task.id,
            existing_task_title=c.existing_task.title,
            existing_window=str(c.existing_task.window),
            due_date=c.existing_task.due_date,
            assignee_id=c.assignee.id,
            assignee_name=c.assignee.display_name,
        )
        for c in conflicts
    ]


def group_by_assignee(conflicts: list[Conflict]) -> list[ConflictGroup]:
    """Group conflicts per assignee, in order of first appearance."""
    groups: dict[str, ConflictGroup] = {}
    for view in describe_conflicts(conflicts):
        group = groups.get(view.assignee_id)
        if group is None:
            group = ConflictGroup(
                assignee_id=view.assignee_id, assignee_name=view.assignee_name
            )
            groups[view.assignee_id] = group
        group.conflicts.append(view)
    return list(groups.values())
