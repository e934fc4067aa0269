"""Chat command interpreter.

Turns bot commands into subscription registry mutations and returns the
reply text. Sending the reply is left to the caller so this module stays
free of any transport.
"""

from __future__ import annotations

import html
import logging
import math
from dataclasses import replace
from typing import Callable, Optional

from core.models import ChatSubscriber, KeywordFilter, format_price
from core.registry import SubscriptionRegistry

LOGGER = logging.getLogger(__name__)

HELP_TEXT = (
    "Available commands:\n"
    "/subscribe kw1 kw2 - notify only for items matching any keyword\n"
    "/exclude kw1 kw2 - never notify for items containing these keywords\n"
    "/setprice N - alert when a matching in-stock item costs N or less\n"
    "/delprice - remove the price alert\n"
    "/status - show current settings\n"
    "/unsubscribe - stop all notifications"
)
NOT_SUBSCRIBED = "Not subscribed. Send /start to subscribe."


def parse_command(text: str) -> tuple[str, list[str]]:
    """Split a message into a lowercase command and its arguments.

    ``/cmd@botname`` is treated as ``/cmd`` so commands work in group chats.
    """

    parts = text.strip().split()
    if not parts:
        return "", []
    command = parts[0].split("@", 1)[0].lower()
    return command, parts[1:]


def parse_price(raw: str) -> Optional[float]:
    """Return a positive finite price, or None if the argument is not one."""

    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def _quote(keywords) -> str:
    # Replies are sent with HTML parse mode.
    return html.escape(", ".join(keywords))


class CommandInterpreter:
    """Applies chat commands to the subscription registry."""

    def __init__(self, registry: SubscriptionRegistry) -> None:
        self._registry = registry
        self._handlers: dict[str, Callable[[int, list[str]], str]] = {
            "/start": self._start,
            "/subscribe": self._subscribe,
            "/exclude": self._exclude,
            "/setprice": self._set_price,
            "/delprice": self._clear_price,
            "/status": self._status,
            "/unsubscribe": self._unsubscribe,
            "/help": self._help,
        }

    def handle(self, chat_id: int, text: str) -> Optional[str]:
        """Apply one inbound message and return the reply, or None to stay silent."""

        command, args = parse_command(text)
        handler = self._handlers.get(command)
        if handler is None:
            return None
        LOGGER.info("Chat %s: %s", chat_id, command)
        return handler(chat_id, args)

    def _load_or_new(self, chat_id: int) -> ChatSubscriber:
        record = self._registry.get_chat(chat_id)
        if record is None:
            return ChatSubscriber(filter=KeywordFilter(), chat_id=chat_id)
        return record

    def _start(self, chat_id: int, args: list[str]) -> str:
        if self._registry.get_chat(chat_id) is None:
            self._registry.upsert(ChatSubscriber(filter=KeywordFilter(), chat_id=chat_id))
        return "Subscribed to catalog updates.\nCurrent setting: all items.\n\n" + HELP_TEXT

    def _subscribe(self, chat_id: int, args: list[str]) -> str:
        if not args:
            return "Usage: /subscribe steam giftcard\nSeparate keywords with spaces."
        record = self._load_or_new(chat_id)
        self._registry.upsert(replace(record, filter=record.filter.with_keywords(args)))
        return f"Keywords updated: {_quote(args)}"

    def _exclude(self, chat_id: int, args: list[str]) -> str:
        if not args:
            return "Usage: /exclude test pro\nSeparate keywords with spaces."
        record = self._load_or_new(chat_id)
        self._registry.upsert(replace(record, filter=record.filter.with_exclude_keywords(args)))
        return f"Exclude keywords updated: {_quote(args)}"

    def _set_price(self, chat_id: int, args: list[str]) -> str:
        price = parse_price(args[0]) if args else None
        if price is None:
            return "Usage: /setprice 100\nYou will be alerted when a matching item costs this much or less."
        record = self._load_or_new(chat_id)
        self._registry.upsert(replace(record, filter=record.filter.with_target_price(price)))
        return f"Price alert set: matching items at or below {format_price(price)}"

    def _clear_price(self, chat_id: int, args: list[str]) -> str:
        record = self._registry.get_chat(chat_id)
        if record is None:
            return NOT_SUBSCRIBED
        self._registry.upsert(replace(record, filter=record.filter.with_target_price(None)))
        return "Price alert removed."

    def _status(self, chat_id: int, args: list[str]) -> str:
        record = self._registry.get_chat(chat_id)
        if record is None:
            return NOT_SUBSCRIBED
        keyword_filter = record.filter
        keywords = _quote(keyword_filter.keywords) or "all (not set)"
        excludes = _quote(keyword_filter.exclude_keywords) or "none"
        if keyword_filter.target_price is None:
            price = "not set"
        else:
            price = format_price(keyword_filter.target_price)
        return f"Current settings\nKeywords: {keywords}\nExclude: {excludes}\nPrice alert: {price}"

    def _unsubscribe(self, chat_id: int, args: list[str]) -> str:
        self._registry.delete_chat(chat_id)
        return "Unsubscribed. Send /start to subscribe again."

    def _help(self, chat_id: int, args: list[str]) -> str:
        return HELP_TEXT
