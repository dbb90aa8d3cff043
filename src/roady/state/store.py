from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from roady.errors import ConflictError, StateStoreError

logger = logging.getLogger("roady.state")


class JsonStateStore:
    """Versioned JSON envelopes, one file per namespace, under ``<root>/<directory>``."""

    NAMESPACES = {"plan", "state", "events"}
    SCHEMA_VERSION = 1

    def __init__(
        self,
        root: Path,
        *,
        directory: str = ".roady",
        lock_timeout_seconds: float = 3.0,
    ) -> None:
        self.root = root.resolve()
        self.state_dir = self.root / directory
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.lock_file = self.state_dir / ".lock"
        self.lock_timeout_seconds = lock_timeout_seconds

    @staticmethod
    def _utcnow_iso() -> str:
        return datetime.now(UTC).replace(microsecond=0).isoformat()

    @staticmethod
    def _validate_namespace(namespace: str) -> None:
        if namespace not in JsonStateStore.NAMESPACES:
            raise StateStoreError(f"Unsupported namespace: {namespace}")

    def path_for(self, namespace: str) -> Path:
        return self.state_dir / f"{namespace}.json"

    @contextmanager
    def _state_lock(self) -> Iterator[None]:
        start = time.monotonic()
        while True:
            try:
                fd = os.open(self.lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                os.write(fd, str(os.getpid()).encode("utf-8"))
                os.close(fd)
                break
            except FileExistsError as exc:
                if time.monotonic() - start > self.lock_timeout_seconds:
                    raise StateStoreError("Timed out waiting for state lock.") from exc
                time.sleep(0.02)

        try:
            yield
        finally:
            try:
                self.lock_file.unlink()
            except FileNotFoundError:
                pass

    def _read_raw_json(self, namespace: str) -> Any:
        path = self.path_for(namespace)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StateStoreError(f"Corrupt state file {path}: {exc}") from exc

    def _write_raw_json(self, namespace: str, payload: Any) -> None:
        path = self.path_for(namespace)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, path)

    def _normalize_envelope(self, raw_payload: Any, default: Any) -> dict[str, Any]:
        if (
            isinstance(raw_payload, dict)
            and "schema_version" in raw_payload
            and "data" in raw_payload
            and "revision" in raw_payload
        ):
            return {
                "schema_version": int(raw_payload.get("schema_version") or self.SCHEMA_VERSION),
                "revision": int(raw_payload.get("revision") or 0),
                "updated_at": raw_payload.get("updated_at") or self._utcnow_iso(),
                "data": raw_payload.get("data", default),
            }

        # Bare payloads predate the envelope format and count as revision 0.
        return {
            "schema_version": self.SCHEMA_VERSION,
            "revision": 0,
            "updated_at": self._utcnow_iso(),
            "data": default if raw_payload is None else raw_payload,
        }

    def exists(self, namespace: str) -> bool:
        self._validate_namespace(namespace)
        return self.path_for(namespace).exists()

    def get_envelope(self, namespace: str, default: Any | None = None) -> dict[str, Any]:
        self._validate_namespace(namespace)
        return self._normalize_envelope(self._read_raw_json(namespace), default)

    def get_json(self, namespace: str, default: Any | None = None) -> Any:
        return self.get_envelope(namespace, default=default).get("data")

    def set_json(self, namespace: str, data: Any, expected_revision: int | None = None) -> int:
        self._validate_namespace(namespace)
        with self._state_lock():
            current = self.get_envelope(namespace)
            current_revision = int(current.get("revision", 0))
            if expected_revision is not None and expected_revision != current_revision:
                raise ConflictError(
                    f"Concurrent state update detected for namespace '{namespace}' "
                    f"(expected revision {expected_revision}, found {current_revision})."
                )
            envelope = {
                "schema_version": self.SCHEMA_VERSION,
                "revision": current_revision + 1,
                "updated_at": self._utcnow_iso(),
                "data": data,
            }
            self._write_raw_json(namespace, envelope)
            logger.debug("Wrote %s revision %d", namespace, envelope["revision"])
            return envelope["revision"]

    def update_json(
        self,
        namespace: str,
        updater: Callable[[Any], Any],
        default: Any | None = None,
    ) -> Any:
        last_error: ConflictError | None = None
        for _ in range(4):
            current = self.get_envelope(namespace, default=default)
            updated = updater(current.get("data", default))
            try:
                self.set_json(namespace, updated, expected_revision=int(current["revision"]))
                return updated
            except ConflictError as exc:
                last_error = exc
                time.sleep(0.01)
        raise ConflictError(str(last_error) if last_error else "State update failed.")
