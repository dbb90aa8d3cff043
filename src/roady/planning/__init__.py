from roady.planning.dag import topological_order, validate_dag
from roady.planning.models import ExecutionState, ExternalRef, Plan, Task, TaskResult
from roady.planning.reconciler import PlanReconciler, ReconcileOptions
from roady.planning.status import (
    ApprovalStatus,
    TaskEvent,
    TaskPriority,
    TaskStateMachine,
    TaskStatus,
)

__all__ = [
    "ApprovalStatus",
    "ExecutionState",
    "ExternalRef",
    "Plan",
    "PlanReconciler",
    "ReconcileOptions",
    "Task",
    "TaskEvent",
    "TaskPriority",
    "TaskResult",
    "TaskStateMachine",
    "TaskStatus",
    "topological_order",
    "validate_dag",
]
