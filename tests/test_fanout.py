from __future__ import annotations

import asyncio
from typing import Optional

from adapters.memory_storage import MemoryStorage
from core.errors import DeliveryPermanentFailure, DeliveryTransientFailure
from core.fanout import FanOutEngine
from core.models import Change, ChangeKind, ChatSubscriber, Item, KeywordFilter, PushSubscriber
from core.registry import SubscriptionRegistry


class FakeNotifier:
    def __init__(self, fail_with: Optional[dict[tuple[str, int], Exception]] = None) -> None:
        self.sent: list[tuple[str, object, int]] = []
        self._fail_with = fail_with or {}

    async def send_change(self, subscriber, change: Change) -> None:
        self._record("change", subscriber, change.item.id)

    async def send_price_alert(self, subscriber, item: Item) -> None:
        self._record("price", subscriber, item.id)

    def _record(self, kind: str, subscriber, item_id: int) -> None:
        error = self._fail_with.get((kind, item_id))
        if error is not None:
            raise error
        self.sent.append((kind, _identity(subscriber), item_id))


class ExplodingNotifier(FakeNotifier):
    async def send_change(self, subscriber, change: Change) -> None:
        if subscriber.chat_id == 1:
            raise RuntimeError("boom")
        await super().send_change(subscriber, change)


def _identity(subscriber) -> object:
    return getattr(subscriber, "chat_id", None) or getattr(subscriber, "endpoint", None)


def _item(item_id: int, *, price: float = 90, stock: int = 5, name: str = "Steam card") -> Item:
    return Item(
        id=item_id,
        name=name,
        description="",
        category="Games",
        price=price,
        discount=0,
        stock=stock,
        updated_at=1,
    )


def _change(item: Item, kind: ChangeKind = ChangeKind.NEW) -> Change:
    return Change(kind=kind, item=item, stock_text=item.stock_text)


def _chat(chat_id: int, **filter_kwargs) -> ChatSubscriber:
    return ChatSubscriber(filter=KeywordFilter(**filter_kwargs), chat_id=chat_id)


def _push(endpoint: str, **filter_kwargs) -> PushSubscriber:
    return PushSubscriber(
        filter=KeywordFilter(**filter_kwargs),
        endpoint=endpoint,
        keys={"p256dh": "pub", "auth": "secret"},
    )


def test_change_notifications_respect_filters_and_price() -> None:
    registry = SubscriptionRegistry(MemoryStorage())
    registry.upsert(_chat(1))
    registry.upsert(_chat(2, keywords=("netflix",)))
    registry.upsert(_chat(3, target_price=50))
    notifier = FakeNotifier()
    engine = FanOutEngine(registry, chat_notifier=notifier)

    item = _item(10, price=90)
    report = asyncio.run(engine.run([_change(item)], [item]))

    assert notifier.sent == [("change", 1, 10)]
    assert report.sent == 1


def test_push_permanent_failure_deletes_and_skips_price_pass() -> None:
    registry = SubscriptionRegistry(MemoryStorage())
    registry.upsert(_push("https://push.example.com/dead", target_price=100))
    item_a, item_b = _item(1), _item(2)
    notifier = FakeNotifier({("change", 1): DeliveryPermanentFailure("gone", 410)})
    engine = FanOutEngine(registry, push_notifier=notifier)

    report = asyncio.run(engine.run([_change(item_a), _change(item_b)], [item_a, item_b]))

    assert notifier.sent == []
    assert registry.get_push("https://push.example.com/dead") is None
    assert report.removed == 1


def test_chat_permanent_failure_in_price_pass_stops_writes() -> None:
    storage = MemoryStorage()
    registry = SubscriptionRegistry(storage)
    registry.upsert(_chat(5, target_price=100))
    items = [_item(1), _item(2), _item(3)]
    notifier = FakeNotifier({("price", 2): DeliveryPermanentFailure("blocked", 403)})
    engine = FanOutEngine(registry, chat_notifier=notifier)

    asyncio.run(engine.run([], items))

    assert notifier.sent == [("price", 5, 1)]
    assert "tg:5" not in storage.data


def test_transient_failure_keeps_subscriber() -> None:
    registry = SubscriptionRegistry(MemoryStorage())
    registry.upsert(_chat(5))
    item_a, item_b = _item(1), _item(2)
    notifier = FakeNotifier({("change", 1): DeliveryTransientFailure("flaky", 500)})
    engine = FanOutEngine(registry, chat_notifier=notifier)

    report = asyncio.run(engine.run([_change(item_a), _change(item_b)], [item_a, item_b]))

    assert notifier.sent == [("change", 5, 2)]
    assert registry.get_chat(5) is not None
    assert report.failed == 1


def test_errors_are_isolated_per_subscriber() -> None:
    registry = SubscriptionRegistry(MemoryStorage())
    registry.upsert(_chat(1))
    registry.upsert(_chat(2))
    notifier = ExplodingNotifier()
    engine = FanOutEngine(registry, chat_notifier=notifier)

    item = _item(10)
    asyncio.run(engine.run([_change(item)], [item]))

    assert notifier.sent == [("change", 2, 10)]


def test_price_alert_dedupe_cycle() -> None:
    registry = SubscriptionRegistry(MemoryStorage())
    registry.upsert(_chat(7, target_price=100))
    notifier = FakeNotifier()
    engine = FanOutEngine(registry, chat_notifier=notifier)

    asyncio.run(engine.run([], [_item(1, price=90)]))
    assert notifier.sent == [("price", 7, 1)]
    assert registry.get_chat(7).filter.notified_item_ids == frozenset({1})

    # Same price next cycle: no repeat.
    asyncio.run(engine.run([], [_item(1, price=90)]))
    assert len(notifier.sent) == 1

    # Price rises above the threshold: the id leaves the dedupe set.
    asyncio.run(engine.run([], [_item(1, price=150)]))
    assert len(notifier.sent) == 1
    assert registry.get_chat(7).filter.notified_item_ids == frozenset()

    # Price falls back under the threshold: a fresh alert.
    asyncio.run(engine.run([], [_item(1, price=95)]))
    assert notifier.sent == [("price", 7, 1), ("price", 7, 1)]


def test_price_pass_skips_out_of_stock_and_excluded_items() -> None:
    registry = SubscriptionRegistry(MemoryStorage())
    registry.upsert(_chat(7, target_price=100, exclude_keywords=("test",)))
    notifier = FakeNotifier()
    engine = FanOutEngine(registry, chat_notifier=notifier)

    items = [_item(1, stock=0), _item(2, name="test card"), _item(3, stock=-1)]
    asyncio.run(engine.run([], items))

    assert notifier.sent == [("price", 7, 3)]


def test_change_and_price_alert_both_fire_for_same_item() -> None:
    registry = SubscriptionRegistry(MemoryStorage())
    registry.upsert(_chat(7, target_price=100))
    notifier = FakeNotifier()
    engine = FanOutEngine(registry, chat_notifier=notifier)

    item = _item(1, price=90)
    asyncio.run(engine.run([_change(item, ChangeKind.RESTOCKED)], [item]))

    assert notifier.sent == [("change", 7, 1), ("price", 7, 1)]


def test_family_without_notifier_is_skipped() -> None:
    registry = SubscriptionRegistry(MemoryStorage())
    registry.upsert(_push("https://push.example.com/a"))
    registry.upsert(_chat(1))
    notifier = FakeNotifier()
    engine = FanOutEngine(registry, chat_notifier=notifier)

    item = _item(1)
    asyncio.run(engine.run([_change(item)], [item]))

    assert notifier.sent == [("change", 1, 1)]
