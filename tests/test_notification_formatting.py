from __future__ import annotations

from adapters.notification_formatting import (
    change_push_payload,
    format_change_html,
    format_price_alert_html,
    price_alert_push_payload,
)
from core.models import Change, ChangeKind, Item


def _item(*, price: float = 12.5, stock: int = 3) -> Item:
    return Item(
        id=314,
        name="Google Voice & number",
        description="",
        category="Accounts",
        price=price,
        discount=0,
        stock=stock,
        updated_at=1,
    )


def test_change_html_escapes_and_links() -> None:
    change = Change(kind=ChangeKind.NEW, item=_item(), stock_text="3")
    message = format_change_html(change, "https://shop.example.com/p/{id}")

    assert message.splitlines()[0] == "🆕 New item"
    assert "<b>Google Voice &amp; number</b>" in message
    assert "💰 12.5 | 📦 Stock: 3" in message
    assert message.endswith("https://shop.example.com/p/314")


def test_price_alert_html_shows_whole_prices_without_decimals() -> None:
    message = format_price_alert_html(_item(price=90.0, stock=-1), 100.0)

    assert "Current price: 90 ≤ 100" in message
    assert "📦 Stock: unlimited" in message


def test_push_payloads() -> None:
    change = Change(kind=ChangeKind.UPDATED, item=_item(), stock_text="3")

    assert change_push_payload(change, "https://shop.example.com/p/{id}") == {
        "title": "🔄 Updated",
        "body": "Google Voice & number | 12.5 | Stock: 3",
        "url": "https://shop.example.com/p/314",
    }
    alert = price_alert_push_payload(_item(), 20)
    assert alert["title"] == "💰 Price alert"
    assert alert["body"] == "Google Voice & number | 12.5 ≤ 20 | Stock: 3"
