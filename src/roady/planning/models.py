"""Plan and execution-state aggregates."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from roady.planning.dag import validate_dag
from roady.planning.status import ApprovalStatus, TaskPriority, TaskStatus


def utcnow() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: Any) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    estimate: str = ""
    depends_on: tuple[str, ...] = ()
    feature_id: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "priority", TaskPriority.parse(self.priority))
        object.__setattr__(self, "depends_on", tuple(self.depends_on))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "estimate": self.estimate,
            "depends_on": list(self.depends_on),
            "feature_id": self.feature_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        return cls(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            priority=TaskPriority.parse(data.get("priority")),
            estimate=str(data.get("estimate") or ""),
            depends_on=tuple(str(dep) for dep in data.get("depends_on") or []),
            feature_id=str(data.get("feature_id") or ""),
        )


@dataclass(slots=True)
class Plan:
    id: str
    spec_id: str = ""
    tasks: list[Task] = field(default_factory=list)
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    # Store revision this plan was loaded at; not part of the payload.
    revision: int = field(default=0, compare=False)

    def find_task(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def task_ids(self) -> list[str]:
        return [task.id for task in self.tasks]

    def validate_dag(self) -> None:
        validate_dag(self.tasks)

    def fingerprint(self) -> str:
        digest = hashlib.sha256()
        digest.update(self.id.encode("utf-8"))
        digest.update(self.spec_id.encode("utf-8"))
        for task in self.tasks:
            digest.update(task.id.encode("utf-8"))
        return digest.hexdigest()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "spec_id": self.spec_id,
            "tasks": [task.to_dict() for task in self.tasks],
            "approval_status": self.approval_status.value,
            "created_at": _to_iso(self.created_at),
            "updated_at": _to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Plan:
        tasks = data.get("tasks") or []
        return cls(
            id=str(data.get("id") or ""),
            spec_id=str(data.get("spec_id") or ""),
            tasks=[Task.from_dict(item) for item in tasks if isinstance(item, dict)],
            approval_status=ApprovalStatus.parse(data.get("approval_status")),
            created_at=_from_iso(data.get("created_at")) or utcnow(),
            updated_at=_from_iso(data.get("updated_at")) or utcnow(),
        )


@dataclass(slots=True)
class ExternalRef:
    id: str
    identifier: str = ""
    url: str = ""
    last_synced_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "identifier": self.identifier,
            "url": self.url,
            "last_synced_at": _to_iso(self.last_synced_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExternalRef:
        return cls(
            id=str(data.get("id") or ""),
            identifier=str(data.get("identifier") or ""),
            url=str(data.get("url") or ""),
            last_synced_at=_from_iso(data.get("last_synced_at")),
        )


@dataclass(slots=True)
class TaskResult:
    status: TaskStatus = TaskStatus.PENDING
    owner: str = ""
    evidence: list[str] = field(default_factory=list)
    external_refs: dict[str, ExternalRef] = field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    elapsed_minutes: int = 0
    rate_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status.value}
        if self.owner:
            payload["owner"] = self.owner
        if self.evidence:
            payload["evidence"] = list(self.evidence)
        if self.external_refs:
            payload["external_refs"] = {
                provider: ref.to_dict() for provider, ref in self.external_refs.items()
            }
        if self.started_at is not None:
            payload["started_at"] = _to_iso(self.started_at)
        if self.completed_at is not None:
            payload["completed_at"] = _to_iso(self.completed_at)
        if self.elapsed_minutes:
            payload["elapsed_minutes"] = self.elapsed_minutes
        if self.rate_id:
            payload["rate_id"] = self.rate_id
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskResult:
        refs = data.get("external_refs") or {}
        return cls(
            status=TaskStatus.parse(data.get("status")),
            owner=str(data.get("owner") or ""),
            evidence=[str(item) for item in data.get("evidence") or []],
            external_refs={
                str(provider): ExternalRef.from_dict(ref)
                for provider, ref in refs.items()
                if isinstance(ref, dict)
            },
            started_at=_from_iso(data.get("started_at")),
            completed_at=_from_iso(data.get("completed_at")),
            elapsed_minutes=int(data.get("elapsed_minutes") or 0),
            rate_id=str(data.get("rate_id") or ""),
        )


@dataclass(slots=True)
class ExecutionState:
    """Live progress keyed by task ID.

    Results may exist for IDs that are no longer in the plan; that progress is
    kept on purpose so a regenerated plan can pick it up again.
    """

    project_id: str
    task_states: dict[str, TaskResult] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=utcnow)
    revision: int = field(default=0, compare=False)

    def task_status(self, task_id: str) -> TaskStatus:
        result = self.task_states.get(task_id)
        return result.status if result is not None else TaskStatus.PENDING

    def task_result(self, task_id: str) -> TaskResult | None:
        return self.task_states.get(task_id)

    def ensure_task(self, task_id: str) -> TaskResult:
        result = self.task_states.get(task_id)
        if result is None:
            result = TaskResult(status=TaskStatus.PENDING)
            self.task_states[task_id] = result
        return result

    def _touch(self) -> None:
        self.updated_at = utcnow()

    def set_task_status(self, task_id: str, status: TaskStatus) -> None:
        self.ensure_task(task_id).status = status
        self._touch()

    def set_task_owner(self, task_id: str, owner: str) -> None:
        self.ensure_task(task_id).owner = owner
        self._touch()

    def set_rate_id(self, task_id: str, rate_id: str) -> None:
        self.ensure_task(task_id).rate_id = rate_id
        self._touch()

    def add_evidence(self, task_id: str, evidence: str) -> None:
        self.ensure_task(task_id).evidence.append(evidence)
        self._touch()

    def set_external_ref(self, task_id: str, provider: str, ref: ExternalRef) -> None:
        self.ensure_task(task_id).external_refs[provider] = ref
        self._touch()

    def mark_started(self, task_id: str, at: datetime | None = None) -> None:
        result = self.ensure_task(task_id)
        result.started_at = at or utcnow()
        result.completed_at = None
        self._touch()

    def mark_completed(self, task_id: str, at: datetime | None = None) -> None:
        result = self.ensure_task(task_id)
        finished = at or utcnow()
        result.completed_at = finished
        if result.started_at is None:
            result.elapsed_minutes = 0
        else:
            seconds = (finished - result.started_at).total_seconds()
            result.elapsed_minutes = max(0, int(seconds // 60))
        self._touch()

    def count_by_status(self, status: TaskStatus) -> int:
        return sum(1 for result in self.task_states.values() if result.status == status)

    def task_ids_by_status(self, status: TaskStatus) -> list[str]:
        return [
            task_id for task_id, result in self.task_states.items() if result.status == status
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "task_states": {
                task_id: result.to_dict() for task_id, result in self.task_states.items()
            },
            "updated_at": _to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionState:
        states = data.get("task_states") or {}
        return cls(
            project_id=str(data.get("project_id") or ""),
            task_states={
                str(task_id): TaskResult.from_dict(result)
                for task_id, result in states.items()
                if isinstance(result, dict)
            },
            updated_at=_from_iso(data.get("updated_at")) or utcnow(),
        )
