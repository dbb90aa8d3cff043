"""Project policy rules and the transition guard built from them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

from roady.planning.models import ExecutionState, Plan
from roady.planning.status import TaskEvent, TaskStatus, TransitionGuard
from roady.project.ports import PlanRepository, StateRepository

ViolationLevel = Literal["warning", "error"]

logger = logging.getLogger("roady.policy")


@dataclass(slots=True, frozen=True)
class Violation:
    rule_id: str
    message: str
    level: ViolationLevel = "error"


class Rule(Protocol):
    rule_id: str

    def validate(self, plan: Plan, state: ExecutionState) -> list[Violation]: ...


def _in_progress_count(plan: Plan, state: ExecutionState) -> int:
    return sum(1 for task in plan.tasks if state.task_status(task.id) is TaskStatus.IN_PROGRESS)


@dataclass(slots=True)
class MaxWIPRule:
    limit: int
    rule_id: str = "max-wip"

    @property
    def enabled(self) -> bool:
        return self.limit > 0

    def validate(self, plan: Plan, state: ExecutionState) -> list[Violation]:
        if not self.enabled:
            return []
        count = _in_progress_count(plan, state)
        if count <= self.limit:
            return []
        return [
            Violation(
                rule_id=self.rule_id,
                message=f"WIP limit exceeded: {count} tasks in progress (limit: {self.limit}).",
                level="warning",
            )
        ]

    def allows_start(self, plan: Plan, state: ExecutionState, task_id: str) -> bool:
        if not self.enabled:
            return True
        count = _in_progress_count(plan, state)
        if state.task_status(task_id) is TaskStatus.IN_PROGRESS:
            return count <= self.limit
        return count + 1 <= self.limit


@dataclass(slots=True)
class DependencyRule:
    rule_id: str = "dependency-check"

    def validate(self, plan: Plan, state: ExecutionState) -> list[Violation]:
        violations: list[Violation] = []
        for task in plan.tasks:
            if state.task_status(task.id) is not TaskStatus.IN_PROGRESS:
                continue
            for dep_id in task.depends_on:
                if not state.task_status(dep_id).is_complete():
                    violations.append(
                        Violation(
                            rule_id=self.rule_id,
                            message=(
                                f"Task '{task.id}' is in progress but depends on "
                                f"'{dep_id}' which is not complete."
                            ),
                        )
                    )
        return violations


class PolicySet:
    def __init__(self, rules: list[Rule] | None = None) -> None:
        self.rules: list[Rule] = list(rules or [])

    @classmethod
    def default(cls, max_wip: int = 0) -> PolicySet:
        return cls([MaxWIPRule(limit=max_wip), DependencyRule()])

    def validate(self, plan: Plan | None, state: ExecutionState | None) -> list[Violation]:
        if plan is None or state is None:
            return []
        violations: list[Violation] = []
        for rule in self.rules:
            violations.extend(rule.validate(plan, state))
        return violations

    def guard(self, plan_repo: PlanRepository, state_repo: StateRepository) -> TransitionGuard:
        """Build a coordinator guard that vetoes starts exceeding the WIP limit."""
        wip_rules = [rule for rule in self.rules if isinstance(rule, MaxWIPRule) and rule.enabled]

        def _guard(task_id: str, event: str) -> bool:
            if event != TaskEvent.START.value or not wip_rules:
                return True
            plan = plan_repo.load()
            state = state_repo.load()
            if plan is None or state is None:
                return True
            for rule in wip_rules:
                if not rule.allows_start(plan, state, task_id):
                    logger.info("Policy %s vetoed start of %s", rule.rule_id, task_id)
                    return False
            return True

        return _guard
