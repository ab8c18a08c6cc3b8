"""Domain event handlers: wired up at application startup."""

from __future__ import annotations

import logging

from tasktracker.domain.bus import EventBus
from tasktracker.domain.events import (
    ConflictDetected,
    ConflictOverridden,
    SubmissionCancelled,
    TaskCreated,
    TaskRescheduled,
)
from tasktracker.domain.models import TimelineEntry, TimelineEntryType
from tasktracker.repos.memory import TaskRepository, TimelineRepository

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Wires domain-event handlers to the bus with access to the repositories."""

    def __init__(
        self,
        bus: EventBus,
        task_repo: TaskRepository,
        timeline_repo: TimelineRepository,
    ) -> None:
        self.bus = bus
        self.task_repo = task_repo
        self.timeline_repo = timeline_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(TaskCreated, self.on_task_created)
        self.bus.subscribe(TaskRescheduled, self.on_task_rescheduled)
        self.bus.subscribe(ConflictDetected, self.on_conflict_detected)
        self.bus.subscribe(ConflictOverridden, self.on_conflict_overridden)
        self.bus.subscribe(SubmissionCancelled, self.on_submission_cancelled)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_task_created(self, event: TaskCreated) -> None:
        stored = self.task_repo.get(event.task_id)
        if stored is None:
            return

        logger.info(
            "Task %s created: %r",
            stored.id,
            stored.title,
            extra={"task_id": stored.id, "submission_id": event.submission_id},
        )
        self.timeline_repo.add(
            TimelineEntry(
                task_id=stored.id,
                type=TimelineEntryType.CREATED,
                payload={
                    "submission_id": event.submission_id,
                    "assignee_ids": [a.id for a in stored.assignees],
                },
            )
        )

    def on_task_rescheduled(self, event: TaskRescheduled) -> None:
        stored = self.task_repo.get(event.task_id)
        if stored is None:
            return

        logger.info(
            "Task %s rescheduled: %s",
            stored.id,
            event.reason,
            extra={"task_id": stored.id},
        )
        self.timeline_repo.add(
            TimelineEntry(
                task_id=stored.id,
                type=TimelineEntryType.RESCHEDULED,
                payload={
                    "reason": event.reason,
                    "from": {
                        "date": event.previous_date,
                        "window": event.previous_window,
                    },
                    "to": {
                        "date": stored.due_date.isoformat() if stored.due_date else None,
                        "window": str(stored.window),
                    },
                },
            )
        )

    def on_conflict_detected(self, event: ConflictDetected) -> None:
        # The candidate has no id yet, so the trail lives on the tasks it
        # collided with.
        for task_id in event.conflicting_task_ids:
            self.timeline_repo.add(
                TimelineEntry(
                    task_id=task_id,
                    type=TimelineEntryType.CONFLICT_DETECTED,
                    payload={
                        "submission_id": event.submission_id,
                        "assignee_ids": event.assignee_ids,
                    },
                )
            )

    def on_conflict_overridden(self, event: ConflictOverridden) -> None:
        logger.info(
            "Task %s committed over conflicts with %s",
            event.task_id,
            ", ".join(event.conflicting_task_ids),
            extra={"task_id": event.task_id, "submission_id": event.submission_id},
        )
        self.timeline_repo.add(
            TimelineEntry(
                task_id=event.task_id,
                type=TimelineEntryType.CONFLICT_OVERRIDDEN,
                payload={
                    "submission_id": event.submission_id,
                    "conflicting_task_ids": event.conflicting_task_ids,
                },
            )
        )

    def on_submission_cancelled(self, event: SubmissionCancelled) -> None:
        for task_id in event.conflicting_task_ids:
            self.timeline_repo.add(
                TimelineEntry(
                    task_id=task_id,
                    type=TimelineEntryType.SUBMISSION_CANCELLED,
                    payload={"submission_id": event.submission_id},
                )
            )
