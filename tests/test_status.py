import pytest

from roady.errors import InvalidTransitionError, TransitionError
from roady.planning.status import (
    ApprovalStatus,
    TaskEvent,
    TaskPriority,
    TaskStateMachine,
    TaskStatus,
)

LEGAL = {
    (TaskStatus.PENDING, TaskEvent.START): TaskStatus.IN_PROGRESS,
    (TaskStatus.PENDING, TaskEvent.BLOCK): TaskStatus.BLOCKED,
    (TaskStatus.IN_PROGRESS, TaskEvent.COMPLETE): TaskStatus.DONE,
    (TaskStatus.IN_PROGRESS, TaskEvent.BLOCK): TaskStatus.BLOCKED,
    (TaskStatus.IN_PROGRESS, TaskEvent.STOP): TaskStatus.PENDING,
    (TaskStatus.BLOCKED, TaskEvent.UNBLOCK): TaskStatus.PENDING,
    (TaskStatus.DONE, TaskEvent.REOPEN): TaskStatus.PENDING,
    (TaskStatus.DONE, TaskEvent.VERIFY): TaskStatus.VERIFIED,
    (TaskStatus.VERIFIED, TaskEvent.REOPEN): TaskStatus.PENDING,
}


@pytest.mark.parametrize("status", list(TaskStatus))
@pytest.mark.parametrize("event", list(TaskEvent))
def test_transition_table_is_exhaustive(status: TaskStatus, event: TaskEvent) -> None:
    expected = LEGAL.get((status, event))

    assert status.can_transition_with(event) is (expected is not None)
    if expected is None:
        with pytest.raises(InvalidTransitionError):
            status.transition_with(event)
    else:
        assert status.transition_with(event) is expected


def test_status_predicates() -> None:
    assert TaskStatus.DONE.is_complete()
    assert TaskStatus.VERIFIED.is_complete()
    assert not TaskStatus.IN_PROGRESS.is_complete()
    assert TaskStatus.VERIFIED.is_final()
    assert not TaskStatus.DONE.is_final()
    assert TaskStatus.IN_PROGRESS.requires_owner()
    assert not TaskStatus.PENDING.requires_owner()
    assert TaskStatus.IN_PROGRESS.display_name == "In Progress"


def test_valid_transitions_and_events() -> None:
    assert TaskStatus.PENDING.valid_events() == [TaskEvent.START, TaskEvent.BLOCK]
    assert TaskStatus.IN_PROGRESS.valid_transitions() == [
        TaskStatus.DONE,
        TaskStatus.BLOCKED,
        TaskStatus.PENDING,
    ]
    assert TaskStatus.BLOCKED.can_transition_to(TaskStatus.PENDING)
    assert not TaskStatus.BLOCKED.can_transition_to(TaskStatus.DONE)


def test_parse_accepts_empty_as_pending_and_rejects_unknown() -> None:
    assert TaskStatus.parse("") is TaskStatus.PENDING
    assert TaskStatus.parse(None) is TaskStatus.PENDING
    assert TaskStatus.parse("in_progress") is TaskStatus.IN_PROGRESS
    with pytest.raises(ValueError, match="invalid task status"):
        TaskStatus.parse("paused")


def test_unknown_event_is_not_allowed() -> None:
    assert not TaskStatus.PENDING.can_transition_with("teleport")
    with pytest.raises(InvalidTransitionError):
        TaskStatus.PENDING.transition_with("teleport")


def test_approval_transitions() -> None:
    assert ApprovalStatus.PENDING.can_transition_to(ApprovalStatus.APPROVED)
    assert ApprovalStatus.PENDING.can_transition_to(ApprovalStatus.REJECTED)
    assert ApprovalStatus.APPROVED.can_transition_to(ApprovalStatus.PENDING)
    assert not ApprovalStatus.APPROVED.can_transition_to(ApprovalStatus.REJECTED)
    assert not ApprovalStatus.REJECTED.can_transition_to(ApprovalStatus.APPROVED)
    assert ApprovalStatus.APPROVED.is_final()
    assert not ApprovalStatus.PENDING.is_final()
    assert ApprovalStatus.parse("") is ApprovalStatus.PENDING


def test_priority_parse_and_highest() -> None:
    assert TaskPriority.parse("") is TaskPriority.MEDIUM
    assert TaskPriority.highest([TaskPriority.LOW, TaskPriority.HIGH]) is TaskPriority.HIGH
    assert TaskPriority.highest([]) is TaskPriority.MEDIUM
    with pytest.raises(ValueError):
        TaskPriority.parse("urgent")


def test_state_machine_states_match_status_enum() -> None:
    assert set(TaskStateMachine.STATES) == set(TaskStatus)


def test_state_machine_fire_advances_current_status() -> None:
    machine = TaskStateMachine(TaskStatus.PENDING, "t1")

    assert machine.fire(TaskEvent.START) is TaskStatus.IN_PROGRESS
    assert machine.fire("complete") is TaskStatus.DONE
    assert machine.is_complete()
    assert not machine.is_final()


def test_state_machine_rejects_illegal_event_with_context() -> None:
    machine = TaskStateMachine(TaskStatus.DONE, "t1")

    with pytest.raises(TransitionError) as excinfo:
        machine.fire(TaskEvent.BLOCK)

    error = excinfo.value
    assert error.task_id == "t1"
    assert error.from_status == "done"
    assert error.to_status == "blocked"
    assert error.event == "block"
    assert machine.current is TaskStatus.DONE


def test_guard_veto_raises_transition_error() -> None:
    calls: list[tuple[str, str]] = []

    def guard(task_id: str, event: str) -> bool:
        calls.append((task_id, event))
        return False

    machine = TaskStateMachine(TaskStatus.PENDING, "t1", guard=guard)

    assert not machine.can_fire(TaskEvent.START)
    with pytest.raises(TransitionError):
        machine.fire(TaskEvent.START)
    assert calls[-1] == ("t1", "start")
    assert machine.current is TaskStatus.PENDING


def test_guard_is_not_consulted_for_illegal_events() -> None:
    calls: list[str] = []

    def guard(task_id: str, event: str) -> bool:
        calls.append(event)
        return True

    machine = TaskStateMachine(TaskStatus.PENDING, "t1", guard=guard)

    assert not machine.can_fire(TaskEvent.COMPLETE)
    assert calls == []
