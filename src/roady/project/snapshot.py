from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from roady.planning.models import ExecutionState, Plan, Task, utcnow
from roady.planning.status import TaskPriority, TaskStatus


@dataclass(slots=True)
class ProjectSnapshot:
    plan: Plan | None
    state: ExecutionState | None
    progress: float = 0.0
    unlocked_tasks: list[str] = field(default_factory=list)
    blocked_tasks: list[str] = field(default_factory=list)
    in_progress: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    verified: list[str] = field(default_factory=list)
    snapshot_time: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan.id if self.plan else None,
            "approval_status": self.plan.approval_status.value if self.plan else None,
            "total_tasks": len(self.plan.tasks) if self.plan else 0,
            "progress": round(self.progress, 2),
            "unlocked_tasks": list(self.unlocked_tasks),
            "blocked_tasks": list(self.blocked_tasks),
            "in_progress": list(self.in_progress),
            "completed": list(self.completed),
            "verified": list(self.verified),
            "snapshot_time": self.snapshot_time.isoformat(),
        }


@dataclass(slots=True)
class TaskSummary:
    id: str
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    owner: str
    depends_on: tuple[str, ...]
    is_blocked: bool
    is_unlocked: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority.value,
            "owner": self.owner,
            "depends_on": list(self.depends_on),
            "is_blocked": self.is_blocked,
            "is_unlocked": self.is_unlocked,
        }


def dependencies_complete(task: Task, state: ExecutionState) -> bool:
    return all(state.task_status(dep).is_complete() for dep in task.depends_on)


def is_unlocked(task: Task, state: ExecutionState) -> bool:
    """Pending with every dependency done or verified."""
    return state.task_status(task.id).is_pending() and dependencies_complete(task, state)


def build_snapshot(plan: Plan | None, state: ExecutionState | None) -> ProjectSnapshot:
    snapshot = ProjectSnapshot(plan=plan, state=state)
    if plan is None or state is None:
        return snapshot

    completed_count = 0
    for task in plan.tasks:
        status = state.task_status(task.id)
        if status is TaskStatus.BLOCKED:
            snapshot.blocked_tasks.append(task.id)
        elif status is TaskStatus.IN_PROGRESS:
            snapshot.in_progress.append(task.id)
        elif status is TaskStatus.DONE:
            snapshot.completed.append(task.id)
            completed_count += 1
        elif status is TaskStatus.VERIFIED:
            snapshot.verified.append(task.id)
            completed_count += 1
        elif dependencies_complete(task, state):
            snapshot.unlocked_tasks.append(task.id)

    if plan.tasks:
        snapshot.progress = completed_count / len(plan.tasks) * 100
    return snapshot


def summarize_tasks(plan: Plan, state: ExecutionState) -> list[TaskSummary]:
    summaries: list[TaskSummary] = []
    for task in plan.tasks:
        status = state.task_status(task.id)
        result = state.task_result(task.id)
        summaries.append(
            TaskSummary(
                id=task.id,
                title=task.title,
                description=task.description,
                status=status,
                priority=task.priority,
                owner=result.owner if result is not None else "",
                depends_on=task.depends_on,
                is_blocked=status.is_blocked(),
                is_unlocked=is_unlocked(task, state),
            )
        )
    return summaries
