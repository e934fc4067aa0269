"""Opt-in cycle lease.

The key-value substrate has no transactions or compare-and-set, so this is a
best-effort guard: write a short-lived owner record, read it back, and only
proceed when we still own it. Two cycles that start within the same
read/write window can still both win.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable

from core.errors import CycleBusy
from core.ports import KeyValueStore

LOGGER = logging.getLogger(__name__)

LEASE_KEY = "lease"


class CycleLease:
    """Short-lived ownership record for the current poll cycle."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._clock = clock
        self._owner = uuid.uuid4().hex

    @property
    def owner(self) -> str:
        return self._owner

    def _current(self) -> dict:
        raw = self._store.get(LEASE_KEY)
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except ValueError:
            return {}

    def acquire(self) -> None:
        """Take the lease or raise CycleBusy if another live owner holds it."""

        now = self._clock()
        current = self._current()
        if current and current.get("owner") != self._owner and current.get("expires_at", 0) > now:
            raise CycleBusy(f"cycle lease held by {current.get('owner')}")

        self._store.put(LEASE_KEY, json.dumps({"owner": self._owner, "expires_at": now + self._ttl}))
        if self._current().get("owner") != self._owner:
            raise CycleBusy("lost the cycle lease race")
        LOGGER.debug("Cycle lease acquired by %s", self._owner)

    def release(self) -> None:
        """Drop the lease if we still own it."""

        if self._current().get("owner") == self._owner:
            self._store.delete(LEASE_KEY)
