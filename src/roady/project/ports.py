"""Collaborator contracts the coordinator depends on."""

from __future__ import annotations

from typing import Protocol

from roady.planning.models import ExecutionState, Plan


class PlanRepository(Protocol):
    def load(self) -> Plan | None: ...

    def save(self, plan: Plan) -> None: ...


class StateRepository(Protocol):
    def load(self) -> ExecutionState | None: ...

    def save(self, state: ExecutionState) -> None: ...


class EventPublisher(Protocol):
    """Best-effort sink for coordinator events. Failures never reach callers."""

    def publish_plan_approved(self, plan_id: str, approver: str) -> None: ...

    def publish_task_started(self, task_id: str, owner: str, rate_id: str) -> None: ...

    def publish_task_completed(self, task_id: str, evidence: str) -> None: ...

    def publish_task_blocked(self, task_id: str, reason: str) -> None: ...

    def publish_task_unblocked(self, task_id: str) -> None: ...
