"""Ports (interfaces) used by the core.

Ports define the minimal contracts for persistence, catalog and notification
adapters so that the core can be reused with different backends and driven
by in-memory fakes in tests.
"""

from __future__ import annotations

from typing import Iterator, Optional, Protocol

from core.models import Change, ChatSubscriber, FetchResult, Item, PushSubscriber


class KeyValueStore(Protocol):
    """Flat string-keyed durable store with list-by-prefix."""

    def get(self, key: str) -> Optional[str]:
        ...

    def put(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def list_by_prefix(self, prefix: str) -> Iterator[str]:
        ...


class CatalogSource(Protocol):
    """Reads the whole upstream catalog once per poll cycle."""

    async def fetch_all(self) -> FetchResult:
        ...


class PushNotifierPort(Protocol):
    """Web Push delivery; raises DeliveryError subclasses on failure."""

    async def send_change(self, subscriber: PushSubscriber, change: Change) -> None:
        ...

    async def send_price_alert(self, subscriber: PushSubscriber, item: Item) -> None:
        ...


class ChatNotifierPort(Protocol):
    """Chat delivery; raises DeliveryError subclasses on failure."""

    async def send_change(self, subscriber: ChatSubscriber, change: Change) -> None:
        ...

    async def send_price_alert(self, subscriber: ChatSubscriber, item: Item) -> None:
        ...
