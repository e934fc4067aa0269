"""Application entry point for the storewatch monitor."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Callable, Optional

from art import tprint

import settings
from adapters.catalog_client import HttpCatalogSource
from adapters.memory_storage import MemoryStorage
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_bot_notifier import TelegramBotNotifier
from adapters.webpush_notifier import WebPushNotifier
from core.commands import CommandInterpreter
from core.cycle import PollCycle
from core.errors import CycleBusy, DeliveryError, TokenRejected, UpstreamError
from core.fanout import FanOutEngine
from core.lease import CycleLease
from core.models import CheckResult
from core.ports import KeyValueStore
from core.registry import SubscriptionRegistry
from core.snapshot import SnapshotStore
from core.tokens import TokenStore

NAME = "STOREWATCH"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


# Bot API URLs carry the token in the path: /bot<id>:<secret>/method.
_BOT_URL_TOKEN = re.compile(r"(/bot)\d+:[\w-]+")
# Bearer values appear in exception reprs of failed catalog requests.
_BEARER_VALUE = re.compile(r"(Bearer )[\w.-]+")


class _RedactingFormatter(logging.Formatter):
    """Masks configured secret values and any token embedded in request URLs."""

    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        message = _BOT_URL_TOKEN.sub(r"\1***", message)
        return _BEARER_VALUE.sub(r"\1***", message)


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    names = redact_cfg.get(
        "patterns",
        ["API_TOKEN", "TELEGRAM_BOT_TOKEN", "VAPID_PRIVATE_KEY"],
    )
    values = []
    for name in names:
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", True):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/storewatch.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    # httpx logs one INFO line per request; "http_level" tunes it separately.
    http_level_name = str(config.get("http_level", level_name)).upper()
    logging.getLogger("httpx").setLevel(getattr(logging, http_level_name, level))
    logging.basicConfig(level=level, handlers=handlers)


def _build_store() -> KeyValueStore:
    if settings.STORAGE_BACKEND == "memory":
        return MemoryStorage()
    if settings.STORAGE_BACKEND == "sqlite":
        storage = SQLiteStorage(settings.STORAGE_PATH)
        storage.init_db()
        return storage
    raise RuntimeError("storage.backend must be 'sqlite' or 'memory'")


@dataclass
class _Runtime:
    store: KeyValueStore
    registry: SubscriptionRegistry
    catalog: HttpCatalogSource
    chat_notifier: Optional[TelegramBotNotifier]
    push_notifier: Optional[WebPushNotifier]
    cycle: PollCycle

    async def close(self) -> None:
        await self.catalog.close()
        if self.chat_notifier is not None:
            await self.chat_notifier.close()


def _build_catalog(token_provider: Callable[[], Optional[str]] = lambda: None) -> HttpCatalogSource:
    return HttpCatalogSource(
        settings.CATALOG_URL,
        page_size=settings.CATALOG_PAGE_SIZE,
        token_provider=token_provider,
        extra_headers=settings.CATALOG_HEADERS,
        timeout=settings.CATALOG_TIMEOUT_SECONDS,
    )


def _build_runtime() -> _Runtime:
    logger = logging.getLogger(__name__)
    store = _build_store()
    registry = SubscriptionRegistry(store)

    # A token stored at runtime wins over the environment default.
    tokens = TokenStore(store)
    catalog = _build_catalog(lambda: tokens.get() or settings.API_TOKEN)

    # Each channel is enabled only when its credentials are configured, which
    # keeps the core fan-out independent from delivery details.
    chat_notifier = None
    if settings.TELEGRAM_BOT_TOKEN:
        chat_notifier = TelegramBotNotifier(settings.TELEGRAM_BOT_TOKEN, url_template=settings.PRODUCT_URL)
    push_notifier = None
    if settings.VAPID_PUBLIC_KEY and settings.VAPID_PRIVATE_KEY:
        push_notifier = WebPushNotifier(
            settings.VAPID_PRIVATE_KEY,
            settings.PUSH_SUBJECT,
            ttl=settings.PUSH_TTL,
            url_template=settings.PRODUCT_URL,
        )
    logger.info(
        "Channels: chat=%s, push=%s",
        "on" if chat_notifier else "off",
        "on" if push_notifier else "off",
    )

    lease = None
    if settings.CYCLE_LEASE_SECONDS > 0:
        lease = CycleLease(store, settings.CYCLE_LEASE_SECONDS)

    cycle = PollCycle(
        catalog=catalog,
        snapshots=SnapshotStore(store),
        fanout=FanOutEngine(registry, push_notifier=push_notifier, chat_notifier=chat_notifier),
        lease=lease,
    )
    return _Runtime(store, registry, catalog, chat_notifier, push_notifier, cycle)


def _format_status(result: Optional[CheckResult]) -> str:
    if result is None:
        return "No check has completed yet."
    when = datetime.fromtimestamp(result.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
    lines = [
        f"Last check: {when}",
        f"Items: {result.total_item_count}",
        f"Changes: {len(result.changes)}",
    ]
    if result.lost_pages:
        lines.append(f"Lost pages: {result.lost_pages}")
    for change in result.changes:
        lines.append(f"  [{change.kind.value}] #{change.item.id} {change.item.name} (stock {change.stock_text})")
    return "\n".join(lines)


async def _run_once(runtime: _Runtime) -> Optional[CheckResult]:
    logger = logging.getLogger(__name__)
    try:
        return await runtime.cycle.run()
    except CycleBusy as exc:
        logger.info("Skipping cycle: %s", exc)
    except UpstreamError as exc:
        # Previous snapshot and status stay untouched; the next tick retries.
        logger.error("Catalog fetch failed: %s", exc)
    return None


async def _run_forever(runtime: _Runtime) -> None:
    logger = logging.getLogger(__name__)
    logger.info("Polling every %s seconds", settings.INTERVAL_SECONDS)
    try:
        while True:
            try:
                await _run_once(runtime)
            except Exception:
                logger.exception("Error while running poll cycle")
            await asyncio.sleep(settings.INTERVAL_SECONDS)
    finally:
        await runtime.close()


async def _check(runtime: _Runtime) -> int:
    """Run one cycle and return the process exit code."""

    try:
        result = await runtime.cycle.run()
    except (CycleBusy, UpstreamError) as exc:
        print(f"Check failed: {exc}")
        return 1
    finally:
        await runtime.close()
    print(_format_status(result))
    return 0


async def _bot_loop(runtime: _Runtime) -> None:
    logger = logging.getLogger(__name__)
    notifier = runtime.chat_notifier
    if notifier is None:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is required for the bot command")
    interpreter = CommandInterpreter(runtime.registry)
    offset: Optional[int] = None
    logger.info("Bot connected. Listening for commands...")
    try:
        while True:
            try:
                updates = await notifier.get_updates(offset)
            except Exception:
                logger.exception("Error while polling bot updates")
                await asyncio.sleep(5)
                continue
            for update in updates:
                offset = int(update["update_id"]) + 1
                message = update.get("message") or {}
                text = message.get("text")
                chat_id = (message.get("chat") or {}).get("id")
                if not text or chat_id is None:
                    continue
                try:
                    reply = interpreter.handle(int(chat_id), text)
                    if reply:
                        await notifier.send_text(int(chat_id), reply)
                except DeliveryError as exc:
                    logger.warning("Reply to chat %s failed: %s", chat_id, exc)
                except Exception:
                    logger.exception("Error while handling command from chat %s", chat_id)
    finally:
        await runtime.close()


def _push_add(args: argparse.Namespace) -> None:
    with open(args.subscription_file, "r", encoding="utf-8") as handle:
        subscription = json.load(handle)
    registry = SubscriptionRegistry(_build_store())
    record_id = registry.register_push(
        subscription,
        keywords=args.keywords,
        exclude_keywords=args.exclude,
        target_price=args.price,
    )
    print(f"Registered push subscriber {record_id}")


def _push_update(args: argparse.Namespace) -> None:
    registry = SubscriptionRegistry(_build_store())
    updated = registry.update_push(
        args.endpoint,
        keywords=args.keywords,
        exclude_keywords=args.exclude,
        target_price=args.price,
    )
    if not updated:
        raise SystemExit("Push subscriber not found")
    print("Updated push subscriber")


def _push_remove(args: argparse.Namespace) -> None:
    SubscriptionRegistry(_build_store()).delete_push(args.endpoint)
    print("Removed push subscriber")


def _format_expiry(exp: int) -> str:
    if not exp:
        return "unknown"
    return datetime.fromtimestamp(exp).strftime("%Y-%m-%d %H:%M:%S")


async def _token_set(tokens: TokenStore, token: str) -> None:
    catalog = _build_catalog()
    try:
        before, after = await catalog.validate_token(token)
    finally:
        await catalog.close()
    expiry = tokens.ensure_outlives_current(token)
    tokens.save(token)
    print(f"Catalog token stored: {before} -> {after} items, expires {_format_expiry(expiry)}")


def _token(args: argparse.Namespace) -> None:
    tokens = TokenStore(_build_store())
    if args.action == "set":
        if not args.value:
            raise SystemExit("token set requires a value")
        try:
            asyncio.run(_token_set(tokens, args.value))
        except TokenRejected as exc:
            raise SystemExit(f"Token rejected: {exc}") from exc
    elif args.action == "show":
        expiry = tokens.expiry()
        if expiry is None:
            print("No catalog token stored")
        else:
            print(f"Catalog token stored, expires {_format_expiry(expiry)}")
    else:
        tokens.clear()
        print("Catalog token removed")


def _status() -> None:
    print(_format_status(SnapshotStore(_build_store()).load_status()))


def _positive_price(raw: str) -> float:
    value = float(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError("price must be greater than 0")
    return value


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="storewatch")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Poll the catalog on a fixed interval")
    subparsers.add_parser("check", help="Run a single poll cycle")
    subparsers.add_parser("status", help="Show the last check result")
    subparsers.add_parser("bot", help="Answer Telegram bot commands")

    push_add = subparsers.add_parser("push-add", help="Register a Web Push subscription")
    push_add.add_argument("subscription_file", help="PushSubscription JSON from the browser")
    push_add.add_argument("--keywords", nargs="*", default=[])
    push_add.add_argument("--exclude", nargs="*", default=[])
    push_add.add_argument("--price", type=_positive_price, default=None)

    push_update = subparsers.add_parser("push-update", help="Replace the filter of a Web Push subscription")
    push_update.add_argument("endpoint")
    push_update.add_argument("--keywords", nargs="*", default=[])
    push_update.add_argument("--exclude", nargs="*", default=[])
    push_update.add_argument("--price", type=_positive_price, default=None)

    push_remove = subparsers.add_parser("push-remove", help="Remove a Web Push subscription")
    push_remove.add_argument("endpoint")

    token = subparsers.add_parser("token", help="Manage the catalog bearer token")
    token.add_argument("action", choices=["set", "show", "clear"])
    token.add_argument("value", nargs="?")

    args = parser.parse_args(argv)
    _configure_logging()

    if args.command == "status":
        _status()
        return
    if args.command == "push-add":
        _push_add(args)
        return
    if args.command == "push-update":
        _push_update(args)
        return
    if args.command == "push-remove":
        _push_remove(args)
        return
    if args.command == "token":
        _token(args)
        return

    _print_banner()
    runtime = _build_runtime()
    if args.command == "check":
        code = asyncio.run(_check(runtime))
        if code:
            raise SystemExit(code)
        return
    if args.command == "bot":
        asyncio.run(_bot_loop(runtime))
        return
    asyncio.run(_run_forever(runtime))


if __name__ == "__main__":
    main()
