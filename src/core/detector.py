"""Change detection against the stored snapshot (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

from core.models import Change, ChangeKind, Item, ItemState, Snapshot


@dataclass(frozen=True)
class Detection:
    """Result of diffing one fetch against the previous snapshot."""

    snapshot: Snapshot
    changes: List[Change]
    cold_start: bool


def classify(item: Item, previous: Optional[ItemState]) -> Optional[ChangeKind]:
    """Classify one item's transition, in priority order new > restocked > updated."""

    if previous is None:
        return ChangeKind.NEW
    if not previous.has_stock and item.has_stock:
        return ChangeKind.RESTOCKED
    if previous.updated_at != item.updated_at:
        return ChangeKind.UPDATED
    return None


def detect_changes(items: Iterable[Item], previous: Mapping[int, ItemState]) -> Detection:
    """Diff fetched items against the previous snapshot.

    The returned snapshot holds exactly the fetched items and replaces the
    old one wholesale. An empty previous snapshot is a cold start: the
    baseline is seeded without emitting any change. Items that are out of
    stock never produce a change.
    """

    cold_start = not previous
    snapshot: Snapshot = {}
    changes: List[Change] = []

    for item in items:
        snapshot[item.id] = ItemState(has_stock=item.has_stock, updated_at=item.updated_at)
        if cold_start:
            continue

        kind = classify(item, previous.get(item.id))
        if kind is None or not item.has_stock:
            continue
        changes.append(Change(kind=kind, item=item, stock_text=item.stock_text))

    return Detection(snapshot=snapshot, changes=changes, cold_start=cold_start)
