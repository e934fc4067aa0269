"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from typing import Any

from core.models import Change, ChangeKind, Item, format_price

DEFAULT_PRODUCT_URL = "https://ldst0re.qzz.io/product/{id}"

KIND_LABELS = {
    ChangeKind.NEW: "🆕 New item",
    ChangeKind.RESTOCKED: "📦 Restocked",
    ChangeKind.UPDATED: "🔄 Updated",
}
PRICE_ALERT_LABEL = "💰 Price alert"


def product_url(item: Item, template: str = DEFAULT_PRODUCT_URL) -> str:
    return template.format(id=item.id)


def format_change_html(change: Change, url_template: str = DEFAULT_PRODUCT_URL) -> str:
    """Create the HTML chat message for a detected change."""

    item = change.item
    parts = [
        KIND_LABELS[change.kind],
        f"<b>{html.escape(item.name)}</b>",
        f"💰 {format_price(item.price)} | 📦 Stock: {html.escape(change.stock_text)}",
        html.escape(product_url(item, url_template)),
    ]
    return "\n".join(parts)


def format_price_alert_html(item: Item, target_price: float, url_template: str = DEFAULT_PRODUCT_URL) -> str:
    """Create the HTML chat message for a price-threshold alert."""

    parts = [
        PRICE_ALERT_LABEL,
        f"<b>{html.escape(item.name)}</b>",
        f"Current price: {format_price(item.price)} ≤ {format_price(target_price)}",
        f"📦 Stock: {html.escape(item.stock_text)}",
        html.escape(product_url(item, url_template)),
    ]
    return "\n".join(parts)


def change_push_payload(change: Change, url_template: str = DEFAULT_PRODUCT_URL) -> dict[str, Any]:
    """Create the Web Push payload for a detected change."""

    item = change.item
    return {
        "title": KIND_LABELS[change.kind],
        "body": f"{item.name} | {format_price(item.price)} | Stock: {change.stock_text}",
        "url": product_url(item, url_template),
    }


def price_alert_push_payload(
    item: Item, target_price: float, url_template: str = DEFAULT_PRODUCT_URL
) -> dict[str, Any]:
    """Create the Web Push payload for a price-threshold alert."""

    return {
        "title": PRICE_ALERT_LABEL,
        "body": (
            f"{item.name} | {format_price(item.price)} ≤ {format_price(target_price)}"
            f" | Stock: {item.stock_text}"
        ),
        "url": product_url(item, url_template),
    }
