"""One poll cycle: fetch, diff, persist, fan out.

The cycle enforces a strict order:
1) Take the optional cycle lease
2) Load the previous snapshot
3) Fetch the whole catalog (a first-page failure aborts with nothing written)
4) Detect changes
5) Persist the new snapshot and the status cache
6) Fan out, unless this was the cold-start cycle

Overlapping cycles are not excluded unless a lease is configured; the last
snapshot writer wins.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from core.detector import detect_changes
from core.fanout import FanOutEngine
from core.lease import CycleLease
from core.models import CheckResult
from core.ports import CatalogSource
from core.snapshot import SnapshotStore

LOGGER = logging.getLogger(__name__)


class PollCycle:
    """Orchestrates fetching, change detection, persistence and fan-out."""

    def __init__(
        self,
        catalog: CatalogSource,
        snapshots: SnapshotStore,
        fanout: FanOutEngine,
        lease: Optional[CycleLease] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._catalog = catalog
        self._snapshots = snapshots
        self._fanout = fanout
        self._lease = lease
        self._clock = clock

    async def run(self) -> CheckResult:
        """Run one cycle and return its status record."""

        if self._lease is not None:
            self._lease.acquire()
        try:
            return await self._run()
        finally:
            if self._lease is not None:
                self._lease.release()

    async def _run(self) -> CheckResult:
        previous = self._snapshots.load()
        fetched = await self._catalog.fetch_all()
        detection = detect_changes(fetched.items, previous)

        self._snapshots.save(detection.snapshot)
        result = CheckResult(
            timestamp=int(self._clock() * 1000),
            total_item_count=len(fetched.items),
            changes=tuple(detection.changes),
            lost_pages=fetched.lost_pages,
        )
        self._snapshots.save_status(result)

        if detection.cold_start:
            LOGGER.info("Cold start: seeded snapshot with %s items", len(detection.snapshot))
            return result

        LOGGER.info(
            "Check complete: items=%s, changes=%s, lost_pages=%s",
            result.total_item_count,
            len(result.changes),
            result.lost_pages,
        )
        await self._fanout.run(detection.changes, fetched.items)
        return result
