from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from roady.errors import CycleError, PlanValidationError
from roady.planning.models import Plan, Task, utcnow
from roady.planning.status import ApprovalStatus

logger = logging.getLogger("roady.planning")


@dataclass(slots=True)
class ReconcileOptions:
    spec_id: str = ""
    existing_id: str = ""
    created_at: datetime | None = None


def _is_well_formed(task: Task) -> bool:
    return bool(task.id) and bool(task.title)


class PlanReconciler:
    """Merges a freshly proposed task list into the previously persisted plan.

    Proposed tasks replace existing ones with the same ID wholesale. Existing
    tasks that were not proposed again are kept as orphans, in their original
    order. A proposed ID that repeats keeps its first position and its last
    definition. Entries without an ID or title are dropped from both sides. The
    result always comes back pending approval, and it is never returned if
    its dependency graph has a cycle.
    """

    def reconcile(
        self,
        existing: Plan | None,
        proposed: Sequence[Task],
        options: ReconcileOptions | None = None,
    ) -> Plan:
        opts = options or ReconcileOptions()
        plan_id = f"plan-{opts.spec_id}-{int(time.time())}"
        created_at = utcnow()
        remaining: dict[str, Task] = {}

        if existing is not None:
            plan_id = existing.id
            created_at = existing.created_at
            remaining = {task.id: task for task in existing.tasks}

        if opts.existing_id:
            plan_id = opts.existing_id
        if opts.created_at is not None:
            created_at = opts.created_at

        merged: dict[str, Task] = {}
        skipped = 0
        for task in proposed:
            if not _is_well_formed(task):
                skipped += 1
                continue
            remaining.pop(task.id, None)
            merged[task.id] = task

        orphans = [task for task in remaining.values() if _is_well_formed(task)]
        tasks = [*merged.values(), *orphans]

        plan = Plan(
            id=plan_id,
            spec_id=opts.spec_id,
            tasks=tasks,
            approval_status=ApprovalStatus.PENDING,
            created_at=created_at,
            updated_at=utcnow(),
            revision=existing.revision if existing is not None else 0,
        )
        try:
            plan.validate_dag()
        except CycleError as exc:
            raise CycleError(exc.task_id, f"invalid plan dependency graph: {exc}") from exc
        except PlanValidationError as exc:
            raise PlanValidationError(f"invalid plan dependency graph: {exc}") from exc

        logger.debug(
            "Reconciled plan %s: %d tasks (%d orphans, %d malformed skipped)",
            plan.id,
            len(tasks),
            len(orphans),
            skipped,
        )
        return plan

    @staticmethod
    def filter_valid_tasks(
        tasks: Iterable[Task],
        valid_task_ids: set[str],
        valid_feature_ids: set[str],
    ) -> list[Task]:
        return [
            task
            for task in tasks
            if task.id in valid_task_ids or task.feature_id in valid_feature_ids
        ]
