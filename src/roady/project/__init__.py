from roady.project.coordinator import Coordinator
from roady.project.locking import ReadWriteLock
from roady.project.ports import EventPublisher, PlanRepository, StateRepository
from roady.project.snapshot import ProjectSnapshot, TaskSummary

__all__ = [
    "Coordinator",
    "EventPublisher",
    "PlanRepository",
    "ProjectSnapshot",
    "ReadWriteLock",
    "StateRepository",
    "TaskSummary",
]
