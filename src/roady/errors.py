from __future__ import annotations


class RoadyError(RuntimeError):
    """Base class for every error raised by roady."""


class PlanValidationError(RoadyError):
    """Raised when a plan's structure is invalid."""


class CycleError(PlanValidationError):
    """Raised when the task dependency graph contains a cycle."""

    def __init__(self, task_id: str, message: str | None = None) -> None:
        super().__init__(message or f"cycle detected involving task: {task_id}")
        self.task_id = task_id


class DuplicateTaskError(PlanValidationError):
    """Raised when two tasks in one plan share an ID."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"duplicate task id: {task_id}")
        self.task_id = task_id


class StateStoreError(RoadyError):
    """Raised when persisted state cannot be read or written."""


class ConflictError(StateStoreError):
    """Raised when a save is based on a revision that is no longer current."""


class CoordinationError(RoadyError):
    """Base class for errors surfaced by the coordinator."""


class NoPlanError(CoordinationError):
    def __init__(self, message: str = "no plan found") -> None:
        super().__init__(message)


class NoStateError(CoordinationError):
    def __init__(self, message: str = "no execution state found") -> None:
        super().__init__(message)


class PlanNotApprovedError(CoordinationError):
    def __init__(self, message: str = "plan is not approved") -> None:
        super().__init__(message)


class TaskNotFoundError(CoordinationError):
    def __init__(self, task_id: str = "") -> None:
        message = "task not found in plan"
        if task_id:
            message = f"{message}: {task_id}"
        super().__init__(message)
        self.task_id = task_id


class OwnerRequiredError(CoordinationError):
    def __init__(self, message: str = "owner required") -> None:
        super().__init__(message)


class DependenciesNotMetError(CoordinationError):
    """Raised when a task's dependencies are not complete."""


class InvalidTransitionError(CoordinationError):
    """Raised when a status transition is not allowed."""


class DependencyError(DependenciesNotMetError):
    """Names the first dependency that keeps a task from starting."""

    def __init__(self, task_id: str, dependency_id: str, status: str) -> None:
        super().__init__(
            f"task {task_id} blocked by dependency {dependency_id} (status: {status})"
        )
        self.task_id = task_id
        self.dependency_id = dependency_id
        self.status = status


class TransitionError(InvalidTransitionError):
    """Describes a rejected task transition."""

    def __init__(self, task_id: str, from_status: str, to_status: str, event: str) -> None:
        super().__init__(
            f"cannot transition task {task_id} from {from_status} to {to_status} via {event}"
        )
        self.task_id = task_id
        self.from_status = from_status
        self.to_status = to_status
        self.event = event
