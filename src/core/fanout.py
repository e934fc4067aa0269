"""Notification fan-out to every subscriber family.

This module is integration-agnostic. It only relies on the registry and the
notifier ports, so any push or chat transport can be plugged in.

Each subscriber goes through two independent passes:
1) Pass A: one notification per detected change that passes the filter
2) Pass B: price alerts for every in-stock matching item at or under the
   subscriber's threshold, deduplicated through ``notified_item_ids``

Delivery is sequential per subscriber so the dead-endpoint delete and the
dedupe-set write never race with another send to the same record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Iterable, Iterator, Optional, Sequence

from core.errors import DeliveryPermanentFailure, DeliveryTransientFailure
from core.matching import matches, within_price
from core.models import Change, Item
from core.ports import ChatNotifierPort, PushNotifierPort
from core.registry import Subscriber, SubscriptionRegistry

LOGGER = logging.getLogger(__name__)


@dataclass
class FanOutReport:
    """Counters for one fan-out run, used for the cycle log line."""

    sent: int = 0
    removed: int = 0
    failed: int = 0


class _SubscriberGone(Exception):
    """Internal signal: the record was deleted after a permanent failure."""


class FanOutEngine:
    """Dispatches change and price notifications to matching subscribers."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        push_notifier: Optional[PushNotifierPort] = None,
        chat_notifier: Optional[ChatNotifierPort] = None,
    ) -> None:
        self._registry = registry
        self._push_notifier = push_notifier
        self._chat_notifier = chat_notifier

    async def run(self, changes: Sequence[Change], items: Sequence[Item]) -> FanOutReport:
        """Run both passes for every subscriber of every configured family."""

        report = FanOutReport()
        # A family without a configured transport is skipped entirely.
        if self._chat_notifier is not None:
            await self._run_family(
                "chat", self._registry.iter_chat_subscribers(), self._chat_notifier, changes, items, report
            )
        if self._push_notifier is not None:
            await self._run_family(
                "push", self._registry.iter_push_subscribers(), self._push_notifier, changes, items, report
            )
        LOGGER.info(
            "Fan-out complete: sent=%s, removed=%s, failed=%s",
            report.sent,
            report.removed,
            report.failed,
        )
        return report

    async def _run_family(
        self,
        family: str,
        subscribers: Iterator[Subscriber],
        notifier,
        changes: Sequence[Change],
        items: Sequence[Item],
        report: FanOutReport,
    ) -> None:
        for subscriber in subscribers:
            try:
                await self._notify_changes(subscriber, notifier, changes, report)
                await self._notify_prices(subscriber, notifier, items, report)
            except _SubscriberGone:
                report.removed += 1
            except Exception:
                # One broken record must not stop delivery to the rest.
                LOGGER.exception("Error while notifying %s subscriber %s", family, _label(subscriber))

    async def _deliver(self, subscriber: Subscriber, sending: Awaitable[None], report: FanOutReport) -> None:
        """Await one send; raise _SubscriberGone when the endpoint is dead."""

        try:
            await sending
        except DeliveryPermanentFailure as exc:
            LOGGER.info(
                "Removing subscriber %s (permanent failure, status %s)",
                _label(subscriber),
                exc.status_code,
            )
            self._registry.delete(subscriber)
            raise _SubscriberGone() from exc
        except DeliveryTransientFailure as exc:
            LOGGER.warning("Delivery to %s failed (status %s): %s", _label(subscriber), exc.status_code, exc)
            report.failed += 1
            return
        report.sent += 1

    async def _notify_changes(
        self,
        subscriber: Subscriber,
        notifier,
        changes: Iterable[Change],
        report: FanOutReport,
    ) -> None:
        keyword_filter = subscriber.filter
        for change in changes:
            if not matches(change.item, keyword_filter):
                continue
            if not within_price(change.item, keyword_filter):
                continue
            await self._deliver(
                subscriber,
                notifier.send_change(subscriber, change),
                report,
            )

    async def _notify_prices(
        self,
        subscriber: Subscriber,
        notifier,
        items: Iterable[Item],
        report: FanOutReport,
    ) -> None:
        keyword_filter = subscriber.filter
        target_price = keyword_filter.target_price
        if target_price is None:
            return

        already_notified = keyword_filter.notified_item_ids
        working: set[int] = set()
        for item in items:
            if not item.has_stock or item.price > target_price:
                continue
            if not matches(item, keyword_filter):
                continue
            working.add(item.id)
            if item.id in already_notified:
                continue
            # A transient failure still enters the working set: the alert is
            # not resent on the next cycle.
            await self._deliver(
                subscriber,
                notifier.send_price_alert(subscriber, item),
                report,
            )

        # Items that left the set (price rise, out of stock, filter change)
        # drop out here, so a later drop back under the threshold alerts again.
        if working != set(already_notified):
            self._registry.upsert(replace(subscriber, filter=keyword_filter.with_notified(frozenset(working))))


def _label(subscriber: Subscriber) -> str:
    chat_id: Optional[int] = getattr(subscriber, "chat_id", None)
    if chat_id is not None:
        return f"chat {chat_id}"
    endpoint: str = getattr(subscriber, "endpoint", "")
    # Push endpoints embed a per-browser token; keep logs short.
    return f"push {endpoint[:48]}"
