"""Web Push notification adapter.

Encrypts and delivers payloads with pywebpush using VAPID credentials.
404/410 from the push service mean the browser subscription is gone.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

import requests
from pywebpush import WebPushException, webpush

from adapters.notification_formatting import (
    DEFAULT_PRODUCT_URL,
    change_push_payload,
    price_alert_push_payload,
)
from core.errors import DeliveryPermanentFailure, DeliveryTransientFailure
from core.models import Change, Item, PushSubscriber

LOGGER = logging.getLogger(__name__)

PERMANENT_STATUSES = frozenset({404, 410})


class WebPushNotifier:
    """Notifier adapter that delivers encrypted Web Push messages."""

    def __init__(
        self,
        vapid_private_key: str,
        subject: str,
        *,
        ttl: int = 60,
        urgency: str = "high",
        url_template: str = DEFAULT_PRODUCT_URL,
        timeout: float = 10.0,
    ) -> None:
        self._vapid_private_key = vapid_private_key
        self._subject = subject
        self._ttl = ttl
        self._urgency = urgency
        self._url_template = url_template
        self._timeout = timeout

    def _send_blocking(self, subscriber: PushSubscriber, payload: dict[str, Any]) -> None:
        try:
            webpush(
                subscription_info=subscriber.subscription_info,
                data=json.dumps(payload, ensure_ascii=False),
                vapid_private_key=self._vapid_private_key,
                # pywebpush fills in aud/exp on the dict it receives.
                vapid_claims={"sub": self._subject},
                ttl=self._ttl,
                headers={"Urgency": self._urgency},
                timeout=self._timeout,
            )
        except WebPushException as exc:
            status: Optional[int] = exc.response.status_code if exc.response is not None else None
            if status in PERMANENT_STATUSES:
                raise DeliveryPermanentFailure(f"push subscription gone: {exc}", status) from exc
            raise DeliveryTransientFailure(f"push service error: {exc}", status) from exc
        except requests.RequestException as exc:
            raise DeliveryTransientFailure(f"push service unreachable: {exc}") from exc

    async def send(self, subscriber: PushSubscriber, payload: dict[str, Any]) -> None:
        """Deliver one payload without blocking the event loop."""

        # pywebpush is synchronous; a worker thread keeps the cycle async.
        await asyncio.to_thread(self._send_blocking, subscriber, payload)

    async def send_change(self, subscriber: PushSubscriber, change: Change) -> None:
        await self.send(subscriber, change_push_payload(change, self._url_template))

    async def send_price_alert(self, subscriber: PushSubscriber, item: Item) -> None:
        target_price = subscriber.filter.target_price
        if target_price is None:
            raise ValueError("price alert requires a target price")
        await self.send(subscriber, price_alert_push_payload(item, target_price, self._url_template))
