"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so notifications can be routed to every
subscribed chat. Status codes are mapped onto the core delivery errors:
400 (chat invalid) and 403 (bot blocked) are permanent, anything else that
is not a success is transient.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from adapters.notification_formatting import (
    DEFAULT_PRODUCT_URL,
    format_change_html,
    format_price_alert_html,
)
from core.errors import DeliveryPermanentFailure, DeliveryTransientFailure
from core.models import Change, ChatSubscriber, Item

LOGGER = logging.getLogger(__name__)

PERMANENT_STATUSES = frozenset({400, 403})


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        *,
        url_template: str = DEFAULT_PRODUCT_URL,
        timeout: float = 10.0,
        session: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._bot_token = bot_token
        self._url_template = url_template
        self._session = session or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._session.aclose()

    def _endpoint(self, method: str) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/{method}"

    async def send_text(self, chat_id: int, text: str) -> None:
        """Send one HTML message, raising a DeliveryError subclass on failure."""

        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            response = await self._session.post(self._endpoint("sendMessage"), json=payload)
        except httpx.HTTPError as exc:
            raise DeliveryTransientFailure(f"Bot API unreachable: {exc}") from exc

        if response.is_success:
            return
        message = f"Bot API error {response.status_code}: {response.text[:200]}"
        if response.status_code in PERMANENT_STATUSES:
            raise DeliveryPermanentFailure(message, response.status_code)
        raise DeliveryTransientFailure(message, response.status_code)

    async def send_change(self, subscriber: ChatSubscriber, change: Change) -> None:
        await self.send_text(subscriber.chat_id, format_change_html(change, self._url_template))

    async def send_price_alert(self, subscriber: ChatSubscriber, item: Item) -> None:
        target_price = subscriber.filter.target_price
        if target_price is None:
            raise ValueError("price alert requires a target price")
        await self.send_text(subscriber.chat_id, format_price_alert_html(item, target_price, self._url_template))

    async def get_updates(self, offset: Optional[int], timeout: int = 30) -> list[dict[str, Any]]:
        """Long-poll the Bot API for inbound updates."""

        params: dict[str, Any] = {"timeout": timeout, "allowed_updates": '["message"]'}
        if offset is not None:
            params["offset"] = offset
        response = await self._session.get(
            self._endpoint("getUpdates"),
            params=params,
            timeout=timeout + 10,
        )
        response.raise_for_status()
        body = response.json()
        if not body.get("ok"):
            LOGGER.warning("getUpdates returned not ok: %s", body.get("description"))
            return []
        return body.get("result", [])
