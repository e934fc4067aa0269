"""Durable snapshot and status cache on top of the key-value port."""

from __future__ import annotations

import json
from typing import Optional

from core.models import CheckResult, ItemState, Snapshot
from core.ports import KeyValueStore

SNAPSHOT_KEY = "products"
STATUS_KEY = "status"


class SnapshotStore:
    """Reads and writes the per-item baseline and the last check result."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def load(self) -> Snapshot:
        """Return the stored snapshot, or an empty one if none was written yet."""

        raw = self._store.get(SNAPSHOT_KEY)
        if not raw:
            return {}
        data = json.loads(raw)
        return {int(item_id): ItemState.from_dict(state) for item_id, state in data.items()}

    def save(self, snapshot: Snapshot) -> None:
        """Replace the stored snapshot wholesale."""

        data = {str(item_id): state.to_dict() for item_id, state in snapshot.items()}
        self._store.put(SNAPSHOT_KEY, json.dumps(data, separators=(",", ":")))

    def load_status(self) -> Optional[CheckResult]:
        raw = self._store.get(STATUS_KEY)
        if not raw:
            return None
        return CheckResult.from_dict(json.loads(raw))

    def save_status(self, result: CheckResult) -> None:
        self._store.put(STATUS_KEY, json.dumps(result.to_dict(), ensure_ascii=False))
