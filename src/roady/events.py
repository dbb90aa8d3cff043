from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from roady.state.store import JsonStateStore

logger = logging.getLogger("roady.events")


class EventRecorder:
    """Publishes coordinator events by appending them to the store's event log."""

    def __init__(self, store: JsonStateStore, *, max_events: int = 200) -> None:
        self.store = store
        self.max_events = max(1, max_events)

    def _record(self, event: str, **payload: Any) -> None:
        record = {"event": event, "at": datetime.now(UTC).replace(microsecond=0).isoformat()}
        record.update(payload)

        def _updater(current: Any) -> dict[str, Any]:
            events = current.get("events", []) if isinstance(current, dict) else []
            if not isinstance(events, list):
                events = []
            events.append(record)
            return {"events": events[-self.max_events :]}

        self.store.update_json("events", _updater, default={"events": []})
        logger.debug("Recorded %s event", event)

    def events(self) -> list[dict[str, Any]]:
        payload = self.store.get_json("events", default={"events": []})
        if not isinstance(payload, dict):
            return []
        events = payload.get("events", [])
        return events if isinstance(events, list) else []

    def publish_plan_approved(self, plan_id: str, approver: str) -> None:
        self._record("plan.approved", plan_id=plan_id, approver=approver)

    def publish_task_started(self, task_id: str, owner: str, rate_id: str) -> None:
        self._record("task.started", task_id=task_id, owner=owner, rate_id=rate_id)

    def publish_task_completed(self, task_id: str, evidence: str) -> None:
        self._record("task.completed", task_id=task_id, evidence=evidence)

    def publish_task_blocked(self, task_id: str, reason: str) -> None:
        self._record("task.blocked", task_id=task_id, reason=reason)

    def publish_task_unblocked(self, task_id: str) -> None:
        self._record("task.unblocked", task_id=task_id)
