"""Domain events emitted during task submission."""

from __future__ import annotations

from pydantic import BaseModel


class TaskCreated(BaseModel):
    """Fired when a new Task is persisted."""

    task_id: str
    submission_id: str | None = None


class TaskRescheduled(BaseModel):
    """Fired when an existing task is moved to a new date or time."""

    task_id: str
    reason: str
    previous_date: str | None = None
    previous_window: str | None = None


class ConflictDetected(BaseModel):
    """Fired when a submission overlaps with tasks of the same assignees."""

    submission_id: str
    conflicting_task_ids: list[str]
    assignee_ids: list[str]


class ConflictOverridden(BaseModel):
    """Fired when a user commits a task despite reported conflicts."""

    submission_id: str
    task_id: str
    conflicting_task_ids: list[str]


class SubmissionCancelled(BaseModel):
    """Fired when a user backs out of a conflicting submission."""

    submission_id: str
    conflicting_task_ids: list[str]
