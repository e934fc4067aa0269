"""Subscription registry on top of the key-value port.

Two subscriber families live side by side under separate key prefixes.
Each record is read, mutated and written independently, so two different
subscribers never contend for the same key.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import replace
from typing import Any, Iterator, Optional, Union

from core.models import ChatSubscriber, KeywordFilter, PushSubscriber
from core.ports import KeyValueStore

LOGGER = logging.getLogger(__name__)

PUSH_PREFIX = "sub:"
CHAT_PREFIX = "tg:"

Subscriber = Union[PushSubscriber, ChatSubscriber]


def push_id(endpoint: str) -> str:
    """Stable record id derived from the push endpoint (the identity key)."""

    return hashlib.sha256(endpoint.encode("utf-8")).hexdigest()[:32]


def push_key(endpoint: str) -> str:
    return f"{PUSH_PREFIX}{push_id(endpoint)}"


def chat_key(chat_id: int) -> str:
    return f"{CHAT_PREFIX}{chat_id}"


def record_key(record: Subscriber) -> str:
    if isinstance(record, PushSubscriber):
        return push_key(record.endpoint)
    if isinstance(record, ChatSubscriber):
        return chat_key(record.chat_id)
    raise TypeError(f"Unsupported subscriber record: {type(record).__name__}")


class SubscriptionRegistry:
    """CRUD and listing for push and chat subscribers."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def _iter(self, prefix: str, decode) -> Iterator[Any]:
        # The key list is materialized first so deletions during iteration
        # cannot disturb the scan.
        for key in list(self._store.list_by_prefix(prefix)):
            raw = self._store.get(key)
            if raw is None:
                continue
            try:
                yield decode(json.loads(raw))
            except (ValueError, KeyError, TypeError):
                LOGGER.warning("Skipping undecodable subscriber record %s", key)

    def iter_push_subscribers(self) -> Iterator[PushSubscriber]:
        return self._iter(PUSH_PREFIX, PushSubscriber.from_dict)

    def iter_chat_subscribers(self) -> Iterator[ChatSubscriber]:
        return self._iter(CHAT_PREFIX, ChatSubscriber.from_dict)

    def _get(self, key: str, decode) -> Optional[Any]:
        raw = self._store.get(key)
        if raw is None:
            return None
        return decode(json.loads(raw))

    def get_push(self, endpoint: str) -> Optional[PushSubscriber]:
        return self._get(push_key(endpoint), PushSubscriber.from_dict)

    def get_chat(self, chat_id: int) -> Optional[ChatSubscriber]:
        return self._get(chat_key(chat_id), ChatSubscriber.from_dict)

    def upsert(self, record: Subscriber) -> None:
        self._store.put(record_key(record), json.dumps(record.to_dict(), ensure_ascii=False))

    def delete(self, record: Subscriber) -> None:
        self._store.delete(record_key(record))

    def delete_chat(self, chat_id: int) -> None:
        self._store.delete(chat_key(chat_id))

    def delete_push(self, endpoint: str) -> None:
        self._store.delete(push_key(endpoint))

    def register_push(
        self,
        subscription: dict[str, Any],
        keywords: Optional[list[str]] = None,
        exclude_keywords: Optional[list[str]] = None,
        target_price: Optional[float] = None,
    ) -> str:
        """Store a browser PushSubscription with its filter and return its id.

        Registering an endpoint that already exists replaces its record.
        """

        endpoint = subscription.get("endpoint")
        if not endpoint:
            raise ValueError("subscription.endpoint is required")
        record = PushSubscriber(
            filter=KeywordFilter(
                keywords=tuple(keywords or ()),
                exclude_keywords=tuple(exclude_keywords or ()),
                target_price=target_price,
            ),
            endpoint=endpoint,
            keys=dict(subscription.get("keys") or {}),
            expiration_time=subscription.get("expirationTime"),
        )
        self.upsert(record)
        LOGGER.info("Registered push subscriber %s", push_id(endpoint))
        return push_id(endpoint)

    def update_push(
        self,
        endpoint: str,
        keywords: Optional[list[str]] = None,
        exclude_keywords: Optional[list[str]] = None,
        target_price: Optional[float] = None,
    ) -> bool:
        """Replace the filter of an existing push subscriber.

        The dedupe set survives only when the price threshold is unchanged.
        Returns False when the endpoint is unknown.
        """

        record = self.get_push(endpoint)
        if record is None:
            return False
        current = record.filter
        updated = current.with_keywords(keywords or []).with_exclude_keywords(exclude_keywords or [])
        if target_price != current.target_price:
            updated = updated.with_target_price(target_price)
        self.upsert(replace(record, filter=updated))
        return True
