"""Static configuration for storewatch.

All user-editable settings (catalog, schedule, storage, push, logging) live in
a single JSON file for quick edits without touching Python. Secrets come from
the environment (or a .env file) and never from config.json.
"""

import json
import os

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# config.json sits next to the project by default; STOREWATCH_CONFIG overrides it.
CONFIG_PATH = os.getenv("STOREWATCH_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Upstream catalog endpoint and paging.
_catalog = _CONFIG.get("catalog", {})
CATALOG_URL = _catalog.get("base_url", "https://api2.ldspro.qzz.io/api/shop/products")
CATALOG_PAGE_SIZE = int(_catalog.get("page_size", 50))
CATALOG_TIMEOUT_SECONDS = float(_catalog.get("timeout_seconds", 30))
# Extra request headers some storefronts require (origin, referer).
CATALOG_HEADERS = dict(_catalog.get("headers", {}))
# Link template used in notifications; "{id}" is replaced with the item id.
PRODUCT_URL = _catalog.get("product_url", "https://ldst0re.qzz.io/product/{id}")

# Poll schedule for the "run" command.
INTERVAL_SECONDS = int(_CONFIG.get("interval_seconds", 60))

# Cycle lease: 0 keeps overlapping cycles unguarded (the default behavior).
CYCLE_LEASE_SECONDS = int(_CONFIG.get("cycle_lease_seconds", 0))

# Storage backend: "sqlite" persists to STORAGE_PATH, "memory" is for dry runs.
_storage = _CONFIG.get("storage", {})
STORAGE_BACKEND = _storage.get("backend", "sqlite")
STORAGE_PATH = _resolve_path(_storage.get("path", "data/storewatch.db"))

# Web Push settings; delivery is enabled only when VAPID keys are present.
_push = _CONFIG.get("push", {})
PUSH_SUBJECT = _push.get("subject", "mailto:storewatch@example.com")
PUSH_TTL = int(_push.get("ttl", 60))

# Secrets.
API_TOKEN = os.getenv("API_TOKEN")
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
VAPID_PUBLIC_KEY = os.getenv("VAPID_PUBLIC_KEY")
VAPID_PRIVATE_KEY = os.getenv("VAPID_PRIVATE_KEY")

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
