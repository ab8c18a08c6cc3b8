"""Domain models for task scheduling and time-conflict detection."""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime, timezone
from enum import StrEnum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field


class Period(StrEnum):
    AM = "AM"
    PM = "PM"


class TaskStatus(StrEnum):
    PENDING = "pending"
    START = "start"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MemberStatus(StrEnum):
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"


class WorkflowState(StrEnum):
    EDITING = "editing"
    CHECKING = "checking"
    CLEAN = "clean"
    CONFLICT_PRESENTED = "conflict_presented"
    COMMITTING = "committing"
    ABORTED = "aborted"
    DONE = "done"


class Decision(StrEnum):
    OVERRIDE = "override"
    CANCEL = "cancel"


class TimelineEntryType(StrEnum):
    CREATED = "created"
    RESCHEDULED = "rescheduled"
    CONFLICT_DETECTED = "conflict_detected"
    CONFLICT_OVERRIDDEN = "conflict_overridden"
    SUBMISSION_CANCELLED = "submission_cancelled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


# ---------------------------------------------------------------------------
# Time values
# ---------------------------------------------------------------------------


class TimeOfDay(BaseModel):
    """A 12-hour wall-clock reading such as 9:30 AM."""

    hour: int = Field(ge=1, le=12)
    minute: int = Field(default=0, ge=0, le=59)
    period: Period

    @classmethod
    def parse(cls, clock: str, period: str) -> TimeOfDay:
        """Build from the stored ``"HH:MM"`` text plus an ``AM``/``PM`` marker."""
        m = _CLOCK_RE.match(clock)
        if m is None:
            raise ValueError(f"Invalid clock value: {clock!r}")
        return cls(
            hour=int(m.group(1)),
            minute=int(m.group(2)),
            period=Period(period.strip().upper()),
        )

    @classmethod
    def from_24h(cls, hour: int, minute: int) -> TimeOfDay:
        period = Period.PM if hour >= 12 else Period.AM
        return cls(hour=hour % 12 or 12, minute=minute, period=period)

    def to_minutes(self) -> int:
        """Minute of day: 12 AM -> 0, 12 PM -> 720."""
        offset = 720 if self.period == Period.PM else 0
        return (self.hour % 12) * 60 + self.minute + offset

    def __str__(self) -> str:
        return f"{self.hour}:{self.minute:02d} {self.period}"


class TimeWindow(BaseModel):
    start: TimeOfDay | None = None
    finish: TimeOfDay | None = None

    @property
    def is_set(self) -> bool:
        return self.start is not None and self.finish is not None

    def as_minutes(self) -> tuple[int, int] | None:
        """Return ``(start, finish)`` in minutes of day, or None.

        None covers a missing end as well as a window whose finish does not
        come after its start; neither can overlap anything.
        """
        if self.start is None or self.finish is None:
            return None
        start, finish = self.start.to_minutes(), self.finish.to_minutes()
        if finish <= start:
            return None
        return start, finish

    def __str__(self) -> str:
        if not self.is_set:
            return "no time set"
        return f"{self.start} - {self.finish}"


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class TeamMemberRef(BaseModel):
    id: str
    display_name: str


class TeamMember(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    role: str = ""
    email: str | None = None
    status: MemberStatus = MemberStatus.AVAILABLE

    def ref(self) -> TeamMemberRef:
        return TeamMemberRef(id=self.id, display_name=self.name)


def _unique_by_id(refs: list[TeamMemberRef]) -> list[TeamMemberRef]:
    seen: set[str] = set()
    unique = []
    for ref in refs:
        if ref.id not in seen:
            seen.add(ref.id)
            unique.append(ref)
    return unique


AssigneeList = Annotated[list[TeamMemberRef], AfterValidator(_unique_by_id)]


class CandidateTask(BaseModel):
    """A task that has not been persisted yet."""

    title: str
    description: str = ""
    customer_name: str = ""
    due_date: date | None = None
    window: TimeWindow = Field(default_factory=TimeWindow)
    assignees: AssigneeList = Field(default_factory=list)
    priority: TaskPriority = TaskPriority.MEDIUM
    notes: str | None = None


class Task(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    description: str = ""
    customer_name: str = ""
    due_date: date | None = None
    window: TimeWindow = Field(default_factory=TimeWindow)
    assignees: AssigneeList = Field(default_factory=list)
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    notes: str | None = None
    reschedule_reason: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_candidate(cls, candidate: CandidateTask) -> Task:
        return cls(**candidate.model_dump())


class Conflict(BaseModel):
    """One (existing task, shared assignee) pair overlapping a candidate."""

    existing_task: Task
    assignee: TeamMemberRef


class TimelineEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    task_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    type: TimelineEntryType
    payload: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class ConflictView(BaseModel):
    existing_task_id: str
    existing_task_title: str
    existing_window: str
    due_date: date | None = None
    assignee_id: str
    assignee_name: str


class ConflictGroup(BaseModel):
    assignee_id: str
    assignee_name: str
    conflicts: list[ConflictView] = Field(default_factory=list)


class CreateTeamMemberRequest(BaseModel):
    name: str = Field(min_length=1)
    role: str = ""
    email: str | None = None


class TaskRequest(BaseModel):
    """Form payload for a candidate task.

    The window can be sent as explicit ``start``/``finish`` values or as the
    free-text ``time`` field ("9:00 AM - 12:00 PM"); explicit values win.
    """

    title: str
    description: str = ""
    customer_name: str = ""
    due_date: date | None = None
    start: TimeOfDay | None = None
    finish: TimeOfDay | None = None
    time: str | None = None
    assignee_ids: list[str] = Field(default_factory=list)
    priority: TaskPriority = TaskPriority.MEDIUM
    notes: str | None = None


class RescheduleRequest(BaseModel):
    due_date: date
    start: TimeOfDay | None = None
    finish: TimeOfDay | None = None
    reason: str = Field(min_length=1)


class CheckResponse(BaseModel):
    conflicts: list[ConflictView] = Field(default_factory=list)
    groups: list[ConflictGroup] = Field(default_factory=list)


class SubmissionResponse(BaseModel):
    id: str
    state: WorkflowState
    candidate: CandidateTask | None = None
    conflicts: list[ConflictView] = Field(default_factory=list)
    groups: list[ConflictGroup] = Field(default_factory=list)
    task: Task | None = None
    rescheduled_task_id: str | None = None
    error: str | None = None
