"""In-memory repositories for tasks, team members and submissions."""

from __future__ import annotations

from datetime import date, timedelta

from tasktracker.domain.models import (
    CandidateTask,
    Period,
    Task,
    TeamMember,
    TeamMemberRef,
    TimelineEntry,
    TimeOfDay,
    TimeWindow,
    WorkflowState,
)
from tasktracker.services.workflow import SchedulingWorkflow

_FINISHED = frozenset({WorkflowState.DONE, WorkflowState.ABORTED})


class TaskValidationError(ValueError):
    """Raised when a task cannot be stored as given."""


class UnknownAssignee(LookupError):
    """Raised when an assignee id does not match any team member."""

    def __init__(self, member_ids: list[str]) -> None:
        super().__init__(f"Unknown team member(s): {', '.join(member_ids)}")
        self.member_ids = member_ids


class TaskRepository:
    """Dict-backed store for Task instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Task] = {}

    def add(self, task: Task) -> None:
        self._store[task.id] = task

    def create(self, candidate: CandidateTask) -> Task:
        """Persist *candidate* as a new Task and return it."""
        if not candidate.title.strip():
            raise TaskValidationError("Task title must not be empty")
        task = Task.from_candidate(candidate)
        self.add(task)
        return task

    def get(self, task_id: str) -> Task | None:
        return self._store.get(task_id)

    def list_all(self) -> list[Task]:
        return list(self._store.values())

    def list_for_date(self, day: date) -> list[Task]:
        return [t for t in self._store.values() if t.due_date == day]

    def reschedule(
        self, task_id: str, due_date: date, window: TimeWindow, reason: str
    ) -> Task:
        task = self._store.get(task_id)
        if task is None:
            raise TaskValidationError(f"Task {task_id} no longer exists")
        updated = task.model_copy(
            update={"due_date": due_date, "window": window, "reschedule_reason": reason}
        )
        self._store[task_id] = updated
        return updated


class TeamMemberRepository:
    """Dict-backed store for TeamMember instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, TeamMember] = {}

    def add(self, member: TeamMember) -> None:
        self._store[member.id] = member

    def get(self, member_id: str) -> TeamMember | None:
        return self._store.get(member_id)

    def list_all(self) -> list[TeamMember]:
        return list(self._store.values())

    def resolve(self, member_ids: list[str]) -> list[TeamMemberRef]:
        """Map ids to refs in the given order; all ids must exist."""
        missing = [mid for mid in member_ids if mid not in self._store]
        if missing:
            raise UnknownAssignee(missing)
        return [self._store[mid].ref() for mid in member_ids]


class SubmissionRepository:
    """Dict-backed store for SchedulingWorkflow instances, keyed by id.

    Unresolved submissions are kept until they finish. Of the done and
    aborted ones only the newest *keep_finished* stay retrievable; older ones
    are dropped when the next submission is added.
    """

    def __init__(self, keep_finished: int = 100) -> None:
        self.keep_finished = keep_finished
        self._store: dict[str, SchedulingWorkflow] = {}

    def add(self, workflow: SchedulingWorkflow) -> None:
        self._prune()
        self._store[workflow.id] = workflow

    def get(self, submission_id: str) -> SchedulingWorkflow | None:
        return self._store.get(submission_id)

    def list_pending(self) -> list[SchedulingWorkflow]:
        return [
            w
            for w in self._store.values()
            if w.state == WorkflowState.CONFLICT_PRESENTED
        ]

    def _prune(self) -> None:
        finished = [
            sid for sid, w in list(self._store.items()) if w.state in _FINISHED
        ]
        for sid in finished[: max(len(finished) - self.keep_finished, 0)]:
            self._store.pop(sid, None)


class TimelineRepository:
    """List-backed store for TimelineEntry instances."""

    def __init__(self) -> None:
        self._entries: list[TimelineEntry] = []

    def add(self, entry: TimelineEntry) -> None:
        self._entries.append(entry)

    def list_for_task(self, task_id: str) -> list[TimelineEntry]:
        return sorted(
            [e for e in self._entries if e.task_id == task_id],
            key=lambda e: e.timestamp,
        )


# ---------------------------------------------------------------------------
# Seed data – a small team with overlapping work, useful for conflict testing
# ---------------------------------------------------------------------------


def _at(hour: int, minute: int, period: Period) -> TimeOfDay:
    return TimeOfDay(hour=hour, minute=minute, period=period)


def seed_demo_data(
    task_repo: TaskRepository, member_repo: TeamMemberRepository
) -> None:
    today = date.today()

    ahmed = TeamMember(name="Ahmed Saleh", role="Technician", email="ahmed@example.com")
    sara = TeamMember(name="Sara Khalil", role="Technician", email="sara@example.com")
    omar = TeamMember(name="Omar Nasser", role="Supervisor", email="omar@example.com")
    for member in (ahmed, sara, omar):
        member_repo.add(member)

    task_repo.add(
        Task(
            title="AC maintenance",
            customer_name="Al Noor Clinic",
            due_date=today,
            window=TimeWindow(
                start=_at(9, 0, Period.AM), finish=_at(11, 0, Period.AM)
            ),
            assignees=[ahmed.ref(), sara.ref()],
        )
    )
    task_repo.add(
        Task(
            title="Site inspection",
            customer_name="Blue Tower",
            due_date=today,
            window=TimeWindow(
                start=_at(1, 0, Period.PM), finish=_at(3, 30, Period.PM)
            ),
            assignees=[omar.ref()],
        )
    )
    task_repo.add(
        Task(
            title="Filter replacement",
            customer_name="Green Market",
            due_date=today + timedelta(days=1),
            window=TimeWindow(
                start=_at(10, 0, Period.AM), finish=_at(12, 0, Period.PM)
            ),
            assignees=[sara.ref()],
        )
    )
