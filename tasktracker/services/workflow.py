"""Two-phase task submission: check for conflicts, then commit or abort."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterable

from tasktracker.domain.bus import EventBus
from tasktracker.domain.events import (
    ConflictDetected,
    ConflictOverridden,
    SubmissionCancelled,
)
from tasktracker.domain.models import (
    CandidateTask,
    Conflict,
    ConflictGroup,
    Decision,
    Task,
    WorkflowState,
)
from tasktracker.services.conflicts import find_conflicts, group_by_assignee

logger = logging.getLogger(__name__)

_RESTARTABLE = frozenset(
    {WorkflowState.EDITING, WorkflowState.ABORTED, WorkflowState.DONE}
)


class WorkflowStateError(RuntimeError):
    """Raised when an operation is not allowed in the current state."""


class SchedulingWorkflow:
    """Drives one candidate task from submission to commit or abort.

    ``submit`` runs conflict detection against a snapshot of existing tasks.
    A clean result is committed right away; otherwise the workflow parks in
    ``conflict_presented`` holding the exact conflict list, and nothing is
    created until ``decide`` is called with ``override``. ``cancel`` discards
    the candidate without calling *create_task*.

    *create_task* is called with the candidate and must return the stored
    Task. Anything it raises propagates unchanged and the workflow returns to
    ``editing`` with the candidate kept.

    When *editing_task_id* is given the candidate is a new version of that
    stored task, and the task is left out of the conflict check.

    Transitions are serialised per workflow, so two callers resolving the
    same submission at once get one commit and one ``WorkflowStateError``.
    """

    def __init__(
        self,
        create_task: Callable[[CandidateTask], Task],
        bus: EventBus | None = None,
        workflow_id: str | None = None,
        editing_task_id: str | None = None,
    ) -> None:
        self.id = workflow_id or str(uuid.uuid4())
        self.editing_task_id = editing_task_id
        self._create_task = create_task
        self._bus = bus
        self._state = WorkflowState.EDITING
        self._candidate: CandidateTask | None = None
        self._conflicts: list[Conflict] = []
        self._task: Task | None = None
        self._lock = threading.Lock()
        self._log_extra = {"submission_id": self.id}

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def candidate(self) -> CandidateTask | None:
        return self._candidate

    @property
    def conflicts(self) -> list[Conflict]:
        return list(self._conflicts)

    @property
    def conflict_groups(self) -> list[ConflictGroup]:
        return group_by_assignee(self._conflicts)

    @property
    def task(self) -> Task | None:
        return self._task

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(
        self, candidate: CandidateTask, existing_tasks: Iterable[Task]
    ) -> list[Conflict]:
        """Check *candidate* and commit it if nothing overlaps.

        Returns the conflicts found; an empty list means the task was
        committed and is available as ``task``.
        """
        with self._lock:
            if self._state not in _RESTARTABLE:
                raise WorkflowStateError(f"Cannot submit while {self._state}")

            self._candidate = candidate
            self._conflicts = []
            self._task = None
            self._transition(WorkflowState.CHECKING)

            others = [t for t in existing_tasks if t.id != self.editing_task_id]
            conflicts = find_conflicts(candidate, others)
            if not conflicts:
                self._transition(WorkflowState.CLEAN)
                self._commit()
                return []

            self._conflicts = conflicts
            self._transition(WorkflowState.CONFLICT_PRESENTED)
            logger.info(
                "Submission %s has %d conflict(s) for %r",
                self.id,
                len(conflicts),
                candidate.title,
                extra=self._log_extra,
            )
            self._publish(
                ConflictDetected(
                    submission_id=self.id,
                    conflicting_task_ids=self._conflicting_task_ids(),
                    assignee_ids=list(
                        dict.fromkeys(c.assignee.id for c in conflicts)
                    ),
                )
            )
            return list(conflicts)

    def decide(self, decision: Decision | str) -> Task | None:
        """Resolve a pending conflict. Returns the created task on override."""
        with self._lock:
            if self._state != WorkflowState.CONFLICT_PRESENTED:
                raise WorkflowStateError(
                    f"No pending conflict to resolve ({self._state})"
                )

            decision = Decision(decision)
            if decision == Decision.CANCEL:
                return self._cancel()

            logger.info(
                "Submission %s overriding %d conflict(s)",
                self.id,
                len(self._conflicts),
                extra=self._log_extra,
            )
            task = self._commit()
            self._publish(
                ConflictOverridden(
                    submission_id=self.id,
                    task_id=task.id,
                    conflicting_task_ids=self._conflicting_task_ids(),
                )
            )
            return task

    def run(
        self,
        candidate: CandidateTask,
        existing_tasks: Iterable[Task],
        ask: Callable[[list[Conflict]], Decision | str],
    ) -> Task | None:
        """Submit and, if needed, block on *ask* for the override decision."""
        conflicts = self.submit(candidate, existing_tasks)
        if not conflicts:
            return self._task
        return self.decide(ask(conflicts))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel(self) -> None:
        self._transition(WorkflowState.ABORTED)
        logger.info("Submission %s cancelled by user", self.id, extra=self._log_extra)
        self._candidate = None
        self._publish(
            SubmissionCancelled(
                submission_id=self.id,
                conflicting_task_ids=self._conflicting_task_ids(),
            )
        )

    def _commit(self) -> Task:
        self._transition(WorkflowState.COMMITTING)
        try:
            task = self._create_task(self._candidate)
        except Exception:
            logger.warning(
                "Commit failed for submission %s",
                self.id,
                exc_info=True,
                extra=self._log_extra,
            )
            self._transition(WorkflowState.EDITING)
            raise
        self._task = task
        self._transition(WorkflowState.DONE)
        return task

    def _transition(self, new_state: WorkflowState) -> None:
        logger.debug("Submission %s: %s -> %s", self.id, self._state, new_state)
        self._state = new_state

    def _conflicting_task_ids(self) -> list[str]:
        # One id per task even when several assignees overlap it.
        return list(dict.fromkeys(c.existing_task.id for c in self._conflicts))

    def _publish(self, event) -> None:
        if self._bus is not None:
            self._bus.publish(event)
