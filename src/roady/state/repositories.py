from __future__ import annotations

from typing import Any

from roady.planning.models import ExecutionState, Plan
from roady.state.store import JsonStateStore


def _load_payload(store: JsonStateStore, namespace: str) -> tuple[dict[str, Any], int] | None:
    if not store.exists(namespace):
        return None
    envelope = store.get_envelope(namespace)
    payload = envelope.get("data")
    if not isinstance(payload, dict) or not payload:
        return None
    return payload, int(envelope["revision"])


class FilePlanRepository:
    """Saves fail with ``ConflictError`` when the plan changed since it was loaded."""

    def __init__(self, store: JsonStateStore) -> None:
        self.store = store

    def load(self) -> Plan | None:
        loaded = _load_payload(self.store, "plan")
        if loaded is None:
            return None
        payload, revision = loaded
        plan = Plan.from_dict(payload)
        plan.revision = revision
        return plan

    def save(self, plan: Plan) -> None:
        plan.revision = self.store.set_json(
            "plan", plan.to_dict(), expected_revision=plan.revision
        )


class FileStateRepository:
    """Saves fail with ``ConflictError`` when the state changed since it was loaded."""

    def __init__(self, store: JsonStateStore) -> None:
        self.store = store

    def load(self) -> ExecutionState | None:
        loaded = _load_payload(self.store, "state")
        if loaded is None:
            return None
        payload, revision = loaded
        state = ExecutionState.from_dict(payload)
        state.revision = revision
        return state

    def save(self, state: ExecutionState) -> None:
        state.revision = self.store.set_json(
            "state", state.to_dict(), expected_revision=state.revision
        )
