"""Status value types and the fixed task/approval transition tables.

Every state identifier used anywhere in roady comes from these enums; the
task state machine below reads its states from ``TaskStatus`` directly.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import Enum

from roady.errors import InvalidTransitionError, TransitionError

TransitionGuard = Callable[[str, str], bool]


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"
    VERIFIED = "verified"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | TaskStatus | None) -> TaskStatus:
        # Older state files wrote an empty status for untouched tasks.
        if value is None or value == "":
            return cls.PENDING
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"invalid task status: {value}") from None

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    def _table(self) -> dict[TaskEvent, TaskStatus]:
        return _TASK_TRANSITIONS.get(self, {})

    def can_transition_with(self, event: str | TaskEvent) -> bool:
        try:
            parsed = TaskEvent(event)
        except ValueError:
            return False
        return parsed in self._table()

    def transition_with(self, event: str | TaskEvent) -> TaskStatus:
        if not self.can_transition_with(event):
            raise InvalidTransitionError(f"event '{event}' not allowed from status '{self}'")
        return self._table()[TaskEvent(event)]

    def can_transition_to(self, target: TaskStatus) -> bool:
        return target in self._table().values()

    def valid_events(self) -> list[TaskEvent]:
        return list(self._table())

    def valid_transitions(self) -> list[TaskStatus]:
        return list(dict.fromkeys(self._table().values()))

    def is_complete(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.VERIFIED)

    def is_final(self) -> bool:
        return self is TaskStatus.VERIFIED

    def is_pending(self) -> bool:
        return self is TaskStatus.PENDING

    def is_in_progress(self) -> bool:
        return self is TaskStatus.IN_PROGRESS

    def is_blocked(self) -> bool:
        return self is TaskStatus.BLOCKED

    def requires_owner(self) -> bool:
        return self is TaskStatus.IN_PROGRESS


class TaskEvent(str, Enum):
    START = "start"
    BLOCK = "block"
    COMPLETE = "complete"
    STOP = "stop"
    UNBLOCK = "unblock"
    REOPEN = "reopen"
    VERIFY = "verify"

    def __str__(self) -> str:
        return self.value

    @property
    def target(self) -> TaskStatus:
        """Status an event leads to whenever it is legal."""
        return _EVENT_TARGETS[self]


_TASK_TRANSITIONS: dict[TaskStatus, dict[TaskEvent, TaskStatus]] = {
    TaskStatus.PENDING: {
        TaskEvent.START: TaskStatus.IN_PROGRESS,
        TaskEvent.BLOCK: TaskStatus.BLOCKED,
    },
    TaskStatus.IN_PROGRESS: {
        TaskEvent.COMPLETE: TaskStatus.DONE,
        TaskEvent.BLOCK: TaskStatus.BLOCKED,
        TaskEvent.STOP: TaskStatus.PENDING,
    },
    TaskStatus.BLOCKED: {
        TaskEvent.UNBLOCK: TaskStatus.PENDING,
    },
    TaskStatus.DONE: {
        TaskEvent.REOPEN: TaskStatus.PENDING,
        TaskEvent.VERIFY: TaskStatus.VERIFIED,
    },
    TaskStatus.VERIFIED: {
        TaskEvent.REOPEN: TaskStatus.PENDING,
    },
}

_EVENT_TARGETS: dict[TaskEvent, TaskStatus] = {
    event: target for table in _TASK_TRANSITIONS.values() for event, target in table.items()
}


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | ApprovalStatus | None) -> ApprovalStatus:
        if value is None or value == "":
            return cls.PENDING
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"invalid approval status: {value}") from None

    @property
    def display_name(self) -> str:
        return self.value.title()

    def valid_transitions(self) -> list[ApprovalStatus]:
        if self is ApprovalStatus.PENDING:
            return [ApprovalStatus.APPROVED, ApprovalStatus.REJECTED]
        # Approved and rejected plans only go back to review.
        return [ApprovalStatus.PENDING]

    def can_transition_to(self, target: ApprovalStatus) -> bool:
        return target in self.valid_transitions()

    def is_pending(self) -> bool:
        return self is ApprovalStatus.PENDING

    def is_approved(self) -> bool:
        return self is ApprovalStatus.APPROVED

    def is_rejected(self) -> bool:
        return self is ApprovalStatus.REJECTED

    def is_final(self) -> bool:
        return self in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | TaskPriority | None) -> TaskPriority:
        if value is None or value == "":
            return cls.MEDIUM
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"invalid task priority: {value}") from None

    @property
    def order(self) -> int:
        return {TaskPriority.LOW: 1, TaskPriority.MEDIUM: 2, TaskPriority.HIGH: 3}[self]

    @staticmethod
    def highest(priorities: Iterable[TaskPriority]) -> TaskPriority:
        values = list(priorities)
        if not values:
            return TaskPriority.MEDIUM
        return max(values, key=lambda priority: priority.order)


class TaskStateMachine:
    """Per-task machine over the ``TaskStatus`` table with an optional policy guard."""

    STATES: tuple[TaskStatus, ...] = tuple(TaskStatus)

    def __init__(
        self,
        status: TaskStatus | str,
        task_id: str,
        guard: TransitionGuard | None = None,
    ) -> None:
        self.current = TaskStatus.parse(status)
        self.task_id = task_id
        self._guard = guard

    def can_fire(self, event: str | TaskEvent) -> bool:
        if not self.current.can_transition_with(event):
            return False
        if self._guard is None:
            return True
        return bool(self._guard(self.task_id, str(TaskEvent(event))))

    def fire(self, event: str | TaskEvent) -> TaskStatus:
        if not self.can_fire(event):
            try:
                target = str(TaskEvent(event).target)
            except ValueError:
                target = "unknown"
            raise TransitionError(
                task_id=self.task_id,
                from_status=str(self.current),
                to_status=target,
                event=str(event),
            )
        self.current = self.current.transition_with(event)
        return self.current

    def is_complete(self) -> bool:
        return self.current.is_complete()

    def is_final(self) -> bool:
        return self.current.is_final()
