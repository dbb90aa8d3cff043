"""Atomic operations spanning the Plan and ExecutionState aggregates."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from roady.errors import (
    DependencyError,
    InvalidTransitionError,
    NoPlanError,
    NoStateError,
    OwnerRequiredError,
    PlanNotApprovedError,
    TaskNotFoundError,
)
from roady.planning.models import ExecutionState, ExternalRef, Plan, Task, utcnow
from roady.planning.reconciler import PlanReconciler, ReconcileOptions
from roady.planning.status import (
    ApprovalStatus,
    TaskEvent,
    TaskStateMachine,
    TaskStatus,
    TransitionGuard,
)
from roady.project.locking import ReadWriteLock
from roady.project.ports import EventPublisher, PlanRepository, StateRepository
from roady.project.snapshot import (
    ProjectSnapshot,
    TaskSummary,
    build_snapshot,
    is_unlocked,
    summarize_tasks,
)

logger = logging.getLogger("roady.coordinator")


class Coordinator:
    """Single authority for cross-aggregate mutations.

    Mutators hold the exclusive lock for their whole duration; queries share
    the read lock. Plan and state are saved one after the other without a
    transaction. If ``approve_plan`` fails between the two saves the plan
    stays approved, and calling ``approve_plan`` again seeds whatever task
    results are still missing.
    """

    def __init__(
        self,
        plan_repo: PlanRepository,
        state_repo: StateRepository,
        publisher: EventPublisher | None = None,
        *,
        guard: TransitionGuard | None = None,
        reconciler: PlanReconciler | None = None,
    ) -> None:
        self.plan_repo = plan_repo
        self.state_repo = state_repo
        self.publisher = publisher
        self.guard = guard
        self.reconciler = reconciler or PlanReconciler()
        self._lock = ReadWriteLock()

    def _publish(self, method: str, *args: Any) -> None:
        if self.publisher is None:
            return
        try:
            getattr(self.publisher, method)(*args)
        except Exception:
            logger.warning("Event publish %s failed; continuing", method, exc_info=True)

    def _require_plan(self) -> Plan:
        plan = self.plan_repo.load()
        if plan is None:
            raise NoPlanError()
        return plan

    def _require_state(self) -> ExecutionState:
        state = self.state_repo.load()
        if state is None:
            raise NoStateError()
        return state

    @staticmethod
    def _require_task(plan: Plan, task_id: str) -> Task:
        task = plan.find_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _fire(self, state: ExecutionState, task_id: str, event: TaskEvent) -> TaskStatus:
        machine = TaskStateMachine(state.task_status(task_id), task_id, guard=self.guard)
        return machine.fire(event)

    @staticmethod
    def _unlocked_task_ids(plan: Plan, state: ExecutionState) -> list[str]:
        return [task.id for task in plan.tasks if is_unlocked(task, state)]

    def reconcile_plan(self, proposed: Sequence[Task], spec_id: str = "") -> Plan:
        """Merge proposed tasks into the stored plan and persist the result.

        Nothing is written when the merged graph is invalid.
        """
        with self._lock.write_locked():
            existing = self.plan_repo.load()
            if not spec_id and existing is not None:
                spec_id = existing.spec_id
            plan = self.reconciler.reconcile(
                existing, proposed, ReconcileOptions(spec_id=spec_id)
            )
            self.plan_repo.save(plan)
            logger.info("Plan %s reconciled with %d tasks", plan.id, len(plan.tasks))
            return plan

    def _seed_state(self, plan: Plan, *, force_save: bool) -> int:
        state = self.state_repo.load()
        if state is None:
            state = ExecutionState(project_id=plan.id)
            force_save = True
        seeded = 0
        for task in plan.tasks:
            if task.id not in state.task_states:
                state.ensure_task(task.id)
                seeded += 1
        if seeded or force_save:
            state.updated_at = utcnow()
            self.state_repo.save(state)
        return seeded

    def approve_plan(self, approver: str) -> None:
        with self._lock.write_locked():
            plan = self._require_plan()
            if plan.approval_status.is_approved():
                # Repairs a previous call whose state save failed.
                seeded = self._seed_state(plan, force_save=False)
                if seeded:
                    logger.info("Plan %s already approved; seeded %d tasks", plan.id, seeded)
                return
            if not plan.approval_status.can_transition_to(ApprovalStatus.APPROVED):
                raise InvalidTransitionError(
                    f"cannot approve plan {plan.id} while it is {plan.approval_status}"
                )

            plan.approval_status = ApprovalStatus.APPROVED
            plan.updated_at = utcnow()
            self.plan_repo.save(plan)
            seeded = self._seed_state(plan, force_save=True)

            logger.info("Plan %s approved by %s; seeded %d tasks", plan.id, approver, seeded)
            self._publish("publish_plan_approved", plan.id, approver)

    def reject_plan(self, reviewer: str) -> None:
        with self._lock.write_locked():
            plan = self._require_plan()
            if plan.approval_status.is_rejected():
                return
            if not plan.approval_status.can_transition_to(ApprovalStatus.REJECTED):
                raise InvalidTransitionError(
                    f"cannot reject plan {plan.id} while it is {plan.approval_status}"
                )
            plan.approval_status = ApprovalStatus.REJECTED
            plan.updated_at = utcnow()
            self.plan_repo.save(plan)
            logger.info("Plan %s rejected by %s", plan.id, reviewer)

    def start_task(self, task_id: str, owner: str, rate_id: str = "") -> None:
        if not owner or not owner.strip():
            raise OwnerRequiredError()

        with self._lock.write_locked():
            plan = self._require_plan()
            if not plan.approval_status.is_approved():
                raise PlanNotApprovedError()
            task = self._require_task(plan, task_id)
            state = self._require_state()

            target = self._fire(state, task_id, TaskEvent.START)
            for dep_id in task.depends_on:
                dep_status = state.task_status(dep_id)
                if not dep_status.is_complete():
                    raise DependencyError(task_id, dep_id, str(dep_status))

            state.set_task_status(task_id, target)
            state.set_task_owner(task_id, owner)
            state.mark_started(task_id)
            if rate_id:
                state.set_rate_id(task_id, rate_id)
            self.state_repo.save(state)

            logger.info("Task %s started by %s", task_id, owner)
            self._publish("publish_task_started", task_id, owner, rate_id)

    def complete_task(self, task_id: str, evidence: str = "") -> list[str]:
        """Mark a task done and return the IDs of pending tasks it unlocked."""
        with self._lock.write_locked():
            plan = self._require_plan()
            self._require_task(plan, task_id)
            state = self._require_state()

            target = self._fire(state, task_id, TaskEvent.COMPLETE)
            state.set_task_status(task_id, target)
            state.mark_completed(task_id)
            if evidence:
                state.add_evidence(task_id, evidence)
            self.state_repo.save(state)

            logger.info("Task %s completed", task_id)
            self._publish("publish_task_completed", task_id, evidence)
            return self._unlocked_task_ids(plan, state)

    def block_task(self, task_id: str, reason: str = "") -> None:
        with self._lock.write_locked():
            state = self._require_state()
            target = self._fire(state, task_id, TaskEvent.BLOCK)
            state.set_task_status(task_id, target)
            self.state_repo.save(state)

            logger.info("Task %s blocked: %s", task_id, reason or "no reason given")
            self._publish("publish_task_blocked", task_id, reason)

    def unblock_task(self, task_id: str) -> None:
        with self._lock.write_locked():
            state = self._require_state()
            target = self._fire(state, task_id, TaskEvent.UNBLOCK)
            state.set_task_status(task_id, target)
            self.state_repo.save(state)

            logger.info("Task %s unblocked", task_id)
            self._publish("publish_task_unblocked", task_id)

    def verify_task(self, task_id: str, verifier: str = "") -> None:
        with self._lock.write_locked():
            state = self._require_state()
            target = self._fire(state, task_id, TaskEvent.VERIFY)
            state.set_task_status(task_id, target)
            self.state_repo.save(state)
            logger.info("Task %s verified by %s", task_id, verifier or "unknown")

    def stop_task(self, task_id: str) -> None:
        with self._lock.write_locked():
            state = self._require_state()
            target = self._fire(state, task_id, TaskEvent.STOP)
            state.set_task_status(task_id, target)
            self.state_repo.save(state)
            logger.info("Task %s stopped", task_id)

    def reopen_task(self, task_id: str) -> None:
        with self._lock.write_locked():
            state = self._require_state()
            target = self._fire(state, task_id, TaskEvent.REOPEN)
            state.set_task_status(task_id, target)
            self.state_repo.save(state)
            logger.info("Task %s reopened", task_id)

    def set_external_ref(self, task_id: str, provider: str, ref: ExternalRef) -> None:
        with self._lock.write_locked():
            state = self._require_state()
            state.set_external_ref(task_id, provider, ref)
            self.state_repo.save(state)
            logger.debug("Linked task %s to %s %s", task_id, provider, ref.identifier or ref.id)

    def get_plan(self) -> Plan | None:
        with self._lock.read_locked():
            return self.plan_repo.load()

    def get_state(self) -> ExecutionState | None:
        with self._lock.read_locked():
            return self.state_repo.load()

    def get_project_snapshot(self) -> ProjectSnapshot:
        with self._lock.read_locked():
            plan = self.plan_repo.load()
            state = self.state_repo.load()
            return build_snapshot(plan, state)

    def get_task_summaries(self) -> list[TaskSummary]:
        with self._lock.read_locked():
            plan = self._require_plan()
            state = self._require_state()
            return summarize_tasks(plan, state)

    def get_ready_tasks(self) -> list[TaskSummary]:
        return [summary for summary in self.get_task_summaries() if summary.is_unlocked]

    def get_blocked_tasks(self) -> list[TaskSummary]:
        return [summary for summary in self.get_task_summaries() if summary.is_blocked]

    def get_in_progress_tasks(self) -> list[TaskSummary]:
        return [
            summary for summary in self.get_task_summaries() if summary.status.is_in_progress()
        ]
