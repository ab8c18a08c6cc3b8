"""FastAPI application: entry point for the task scheduling service."""

from __future__ import annotations

import logging
import uuid
from datetime import date

from fastapi import FastAPI, HTTPException, Query, Response

from tasktracker.core.config import settings
from tasktracker.core.logging import RequestIDMiddleware, init_logging
from tasktracker.domain.bus import EventBus
from tasktracker.domain.events import TaskCreated, TaskRescheduled
from tasktracker.domain.handlers import HandlerRegistry
from tasktracker.domain.models import (
    CandidateTask,
    CheckResponse,
    CreateTeamMemberRequest,
    Decision,
    RescheduleRequest,
    SubmissionResponse,
    Task,
    TaskRequest,
    TeamMember,
    TimelineEntry,
    TimeWindow,
    WorkflowState,
)
from tasktracker.repos.memory import (
    SubmissionRepository,
    TaskRepository,
    TaskValidationError,
    TeamMemberRepository,
    TimelineRepository,
    UnknownAssignee,
    seed_demo_data,
)
from tasktracker.services.conflicts import (
    describe_conflicts,
    find_conflicts,
    group_by_assignee,
)
from tasktracker.services.parser import parse_time_range
from tasktracker.services.workflow import SchedulingWorkflow, WorkflowStateError

init_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_TITLE)
app.add_middleware(RequestIDMiddleware)

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
task_repo = TaskRepository()
member_repo = TeamMemberRepository()
submission_repo = SubmissionRepository(
    keep_finished=settings.SUBMISSION_HISTORY
)
timeline_repo = TimelineRepository()

handler_registry = HandlerRegistry(
    bus=event_bus,
    task_repo=task_repo,
    timeline_repo=timeline_repo,
)

if settings.SEED_DEMO_DATA:
    seed_demo_data(task_repo, member_repo)
    logger.info("Loaded demo data: %d task(s)", len(task_repo.list_all()))


# ── Helpers ───────────────────────────────────────────────────────────


def _build_candidate(payload: TaskRequest) -> CandidateTask:
    try:
        assignees = member_repo.resolve(payload.assignee_ids)
    except UnknownAssignee as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    if payload.start is not None or payload.finish is not None:
        window = TimeWindow(start=payload.start, finish=payload.finish)
    else:
        window = parse_time_range(payload.time)

    return CandidateTask(
        title=payload.title,
        description=payload.description,
        customer_name=payload.customer_name,
        due_date=payload.due_date,
        window=window,
        assignees=assignees,
        priority=payload.priority,
        notes=payload.notes,
    )


def _to_response(
    workflow: SchedulingWorkflow, error: str | None = None
) -> SubmissionResponse:
    conflicts = workflow.conflicts
    return SubmissionResponse(
        id=workflow.id,
        state=workflow.state,
        candidate=workflow.candidate,
        conflicts=describe_conflicts(conflicts),
        groups=group_by_assignee(conflicts),
        task=workflow.task,
        rescheduled_task_id=workflow.editing_task_id,
        error=error,
    )


def _get_submission(submission_id: str) -> SchedulingWorkflow:
    workflow = submission_repo.get(submission_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    return workflow


def _get_task(task_id: str) -> Task:
    task = task_repo.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def _run(action, *args) -> None:
    """Call a workflow transition, mapping its errors to HTTP responses."""
    try:
        action(*args)
    except WorkflowStateError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TaskValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _submit(
    workflow: SchedulingWorkflow, candidate: CandidateTask, response: Response
) -> SubmissionResponse:
    """Submit against the current tasks.

    A rejected commit answers 422 with the submission itself, which is back
    in `editing` with its candidate so the client can fix and resubmit.
    """
    try:
        workflow.submit(candidate, task_repo.list_all())
    except TaskValidationError as exc:
        response.status_code = 422
        return _to_response(workflow, error=str(exc))
    if workflow.state == WorkflowState.DONE and workflow.editing_task_id is None:
        response.status_code = 201
    return _to_response(workflow)


def _new_task_workflow() -> SchedulingWorkflow:
    submission_id = str(uuid.uuid4())

    def create(candidate: CandidateTask) -> Task:
        task = task_repo.create(candidate)
        event_bus.publish(TaskCreated(task_id=task.id, submission_id=submission_id))
        return task

    return SchedulingWorkflow(
        create_task=create, bus=event_bus, workflow_id=submission_id
    )


def _reschedule_workflow(task: Task, reason: str) -> SchedulingWorkflow:
    previous_date = task.due_date.isoformat() if task.due_date else None
    previous_window = str(task.window)

    def commit(candidate: CandidateTask) -> Task:
        updated = task_repo.reschedule(
            task.id, candidate.due_date, candidate.window, reason
        )
        event_bus.publish(
            TaskRescheduled(
                task_id=updated.id,
                reason=reason,
                previous_date=previous_date,
                previous_window=previous_window,
            )
        )
        return updated

    return SchedulingWorkflow(
        create_task=commit, bus=event_bus, editing_task_id=task.id
    )


# ── Team members ──────────────────────────────────────────────────────


@app.get("/team-members", response_model=list[TeamMember])
def list_team_members() -> list[TeamMember]:
    return member_repo.list_all()


@app.post("/team-members", response_model=TeamMember, status_code=201)
def create_team_member(payload: CreateTeamMemberRequest) -> TeamMember:
    member = TeamMember(name=payload.name, role=payload.role, email=payload.email)
    member_repo.add(member)
    return member


@app.get("/team-members/{member_id}", response_model=TeamMember)
def get_team_member(member_id: str) -> TeamMember:
    member = member_repo.get(member_id)
    if member is None:
        raise HTTPException(status_code=404, detail="Team member not found")
    return member


# ── Conflict checks and submissions ───────────────────────────────────


@app.post("/tasks/check", response_model=CheckResponse)
def check_task(payload: TaskRequest) -> CheckResponse:
    """Report conflicts for a candidate without creating anything."""
    conflicts = find_conflicts(_build_candidate(payload), task_repo.list_all())
    return CheckResponse(
        conflicts=describe_conflicts(conflicts),
        groups=group_by_assignee(conflicts),
    )


@app.post("/tasks/submissions", response_model=SubmissionResponse)
def submit_task(payload: TaskRequest, response: Response) -> SubmissionResponse:
    """Create the task, or hold it until the user resolves its conflicts."""
    candidate = _build_candidate(payload)
    workflow = _new_task_workflow()
    submission_repo.add(workflow)
    return _submit(workflow, candidate, response)


@app.get("/tasks/submissions", response_model=list[SubmissionResponse])
def list_pending_submissions() -> list[SubmissionResponse]:
    """Return submissions waiting for an override/cancel decision."""
    return [_to_response(w) for w in submission_repo.list_pending()]


@app.get("/tasks/submissions/{submission_id}", response_model=SubmissionResponse)
def get_submission(submission_id: str) -> SubmissionResponse:
    return _to_response(_get_submission(submission_id))


@app.post(
    "/tasks/submissions/{submission_id}/override", response_model=SubmissionResponse
)
def override_submission(submission_id: str) -> SubmissionResponse:
    """Commit the held candidate exactly as submitted, despite its conflicts."""
    workflow = _get_submission(submission_id)
    _run(workflow.decide, Decision.OVERRIDE)
    return _to_response(workflow)


@app.post(
    "/tasks/submissions/{submission_id}/cancel", response_model=SubmissionResponse
)
def cancel_submission(submission_id: str) -> SubmissionResponse:
    """Discard the held candidate; nothing is created."""
    workflow = _get_submission(submission_id)
    _run(workflow.decide, Decision.CANCEL)
    return _to_response(workflow)


# ── Tasks ─────────────────────────────────────────────────────────────


@app.get("/tasks", response_model=list[Task])
def list_tasks(on: date | None = Query(default=None, alias="date")) -> list[Task]:
    if on is not None:
        return task_repo.list_for_date(on)
    return task_repo.list_all()


@app.get("/tasks/{task_id}", response_model=Task)
def get_task(task_id: str) -> Task:
    return _get_task(task_id)


@app.get("/tasks/{task_id}/timeline", response_model=list[TimelineEntry])
def get_task_timeline(task_id: str) -> list[TimelineEntry]:
    _get_task(task_id)
    return timeline_repo.list_for_task(task_id)


@app.post("/tasks/{task_id}/reschedule", response_model=SubmissionResponse)
def reschedule_task(
    task_id: str, body: RescheduleRequest, response: Response
) -> SubmissionResponse:
    """Move a task to a new slot through the same conflict check as creation."""
    task = _get_task(task_id)
    window = task.window
    if body.start is not None or body.finish is not None:
        window = TimeWindow(start=body.start, finish=body.finish)
    candidate = CandidateTask(
        **{
            **task.model_dump(include=set(CandidateTask.model_fields)),
            "due_date": body.due_date,
            "window": window,
        }
    )

    workflow = _reschedule_workflow(task, body.reason)
    submission_repo.add(workflow)
    return _submit(workflow, candidate, response)
