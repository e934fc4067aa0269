"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to the upstream catalog JSON or any transport-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


UNLIMITED_STOCK = -1


@dataclass(frozen=True)
class Item:
    """One catalog product as returned by a single poll."""

    id: int
    name: str
    description: str
    category: str
    price: float
    discount: float
    stock: int
    updated_at: int
    seller_name: str = ""
    available_stock: Optional[int] = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "Item":
        """Build an item from the upstream product JSON."""

        available = raw.get("availableStock")
        return cls(
            id=int(raw["id"]),
            name=raw.get("name") or "",
            description=raw.get("description") or "",
            category=raw.get("category_name") or "",
            price=float(raw.get("price") or 0),
            discount=float(raw.get("discount") or 0),
            stock=int(raw.get("stock") or 0),
            updated_at=int(raw.get("updated_at") or 0),
            seller_name=raw.get("seller_name") or "",
            available_stock=int(available) if available is not None else None,
        )

    @property
    def has_stock(self) -> bool:
        return self.stock == UNLIMITED_STOCK or self.stock > 0

    @property
    def stock_text(self) -> str:
        if self.stock == UNLIMITED_STOCK:
            return "unlimited"
        if self.available_stock is not None:
            return str(self.available_stock)
        return str(self.stock)

    @property
    def search_text(self) -> str:
        """Text that keyword filters are evaluated against."""

        return f"{self.name} {self.description} {self.category}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category_name": self.category,
            "price": self.price,
            "discount": self.discount,
            "stock": self.stock,
            "availableStock": self.available_stock,
            "updated_at": self.updated_at,
            "seller_name": self.seller_name,
        }


@dataclass(frozen=True)
class ItemState:
    """Last observed state of an item, used as the diff baseline."""

    has_stock: bool
    updated_at: int

    def to_dict(self) -> dict[str, Any]:
        return {"has_stock": self.has_stock, "updated_at": self.updated_at}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ItemState":
        return cls(has_stock=bool(raw["has_stock"]), updated_at=int(raw["updated_at"]))


Snapshot = dict[int, ItemState]


class ChangeKind(str, Enum):
    NEW = "new"
    RESTOCKED = "restocked"
    UPDATED = "updated"


@dataclass(frozen=True)
class Change:
    """A single detected transition worth notifying about."""

    kind: ChangeKind
    item: Item
    stock_text: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "item": self.item.to_dict(), "stock_text": self.stock_text}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Change":
        return cls(
            kind=ChangeKind(raw["kind"]),
            item=Item.from_api(raw["item"]),
            stock_text=raw["stock_text"],
        )


@dataclass(frozen=True)
class CheckResult:
    """Outcome of the last poll cycle, cached for status queries."""

    timestamp: int
    total_item_count: int
    changes: tuple[Change, ...] = ()
    lost_pages: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "total_item_count": self.total_item_count,
            "changes": [change.to_dict() for change in self.changes],
            "lost_pages": self.lost_pages,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "CheckResult":
        return cls(
            timestamp=int(raw.get("timestamp", 0)),
            total_item_count=int(raw.get("total_item_count", 0)),
            changes=tuple(Change.from_dict(entry) for entry in raw.get("changes", [])),
            lost_pages=int(raw.get("lost_pages", 0)),
        )


@dataclass(frozen=True)
class KeywordFilter:
    """Keyword/price criteria shared by every subscriber family.

    ``notified_item_ids`` only has meaning while ``target_price`` is set; it
    is the price-alert dedupe set.
    """

    keywords: tuple[str, ...] = ()
    exclude_keywords: tuple[str, ...] = ()
    target_price: Optional[float] = None
    notified_item_ids: frozenset[int] = field(default_factory=frozenset)

    def with_keywords(self, keywords: list[str]) -> "KeywordFilter":
        return replace(self, keywords=tuple(keywords))

    def with_exclude_keywords(self, exclude_keywords: list[str]) -> "KeywordFilter":
        return replace(self, exclude_keywords=tuple(exclude_keywords))

    def with_target_price(self, target_price: Optional[float]) -> "KeywordFilter":
        """Set or clear the price threshold, always emptying the dedupe set."""

        return replace(self, target_price=target_price, notified_item_ids=frozenset())

    def with_notified(self, item_ids: frozenset[int]) -> "KeywordFilter":
        return replace(self, notified_item_ids=frozenset(item_ids))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "keywords": list(self.keywords),
            "exclude_keywords": list(self.exclude_keywords),
        }
        if self.target_price is not None:
            data["target_price"] = self.target_price
            data["notified_item_ids"] = sorted(self.notified_item_ids)
        return data

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "KeywordFilter":
        target_price = raw.get("target_price")
        notified = (raw.get("notified_item_ids") or []) if target_price is not None else []
        return cls(
            keywords=tuple(raw.get("keywords") or []),
            exclude_keywords=tuple(raw.get("exclude_keywords") or []),
            target_price=float(target_price) if target_price is not None else None,
            notified_item_ids=frozenset(int(item_id) for item_id in notified),
        )


@dataclass(frozen=True)
class PushSubscriber:
    """Web Push endpoint registered by a browser."""

    filter: KeywordFilter
    endpoint: str
    keys: dict[str, str]
    expiration_time: Optional[int] = None

    @property
    def subscription_info(self) -> dict[str, Any]:
        """The browser PushSubscription JSON shape expected by the transport."""

        return {
            "endpoint": self.endpoint,
            "expirationTime": self.expiration_time,
            "keys": dict(self.keys),
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.filter.to_dict(), "subscription": self.subscription_info}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PushSubscriber":
        subscription = raw["subscription"]
        return cls(
            filter=KeywordFilter.from_dict(raw),
            endpoint=subscription["endpoint"],
            keys=dict(subscription.get("keys") or {}),
            expiration_time=subscription.get("expirationTime"),
        )


@dataclass(frozen=True)
class ChatSubscriber:
    """Telegram chat registered through bot commands."""

    filter: KeywordFilter
    chat_id: int

    def to_dict(self) -> dict[str, Any]:
        return {**self.filter.to_dict(), "chat_id": self.chat_id}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ChatSubscriber":
        return cls(filter=KeywordFilter.from_dict(raw), chat_id=int(raw["chat_id"]))


@dataclass(frozen=True)
class FetchResult:
    """Items from one full catalog fetch plus the count of pages lost."""

    items: list[Item]
    lost_pages: int = 0


def format_price(price: float) -> str:
    """Render a price without a trailing ``.0`` for whole amounts."""

    if float(price).is_integer():
        return str(int(price))
    return f"{price:g}"
