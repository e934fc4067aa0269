"""Stored catalog bearer token.

The token is a JWT issued by the storefront. Only its ``exp`` claim is read,
without signature verification, to keep the longest-lived token stored.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Optional

from core.errors import TokenRejected
from core.ports import KeyValueStore

LOGGER = logging.getLogger(__name__)

TOKEN_KEY = "api_token"


def token_expiry(token: str) -> int:
    """Return the ``exp`` claim in epoch seconds, or 0 if it cannot be read."""

    try:
        segment = token.split(".")[1]
        payload = json.loads(base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4)))
        return int(payload.get("exp") or 0)
    except (IndexError, AttributeError, TypeError, ValueError):
        return 0


class TokenStore:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def get(self) -> Optional[str]:
        return self._store.get(TOKEN_KEY)

    def expiry(self) -> Optional[int]:
        """Expiry of the stored token; None when no token is stored."""

        token = self.get()
        if not token:
            return None
        return token_expiry(token)

    def ensure_outlives_current(self, token: str) -> int:
        """Raise TokenRejected unless ``token`` expires after the stored one."""

        new_exp = token_expiry(token)
        current = self.get()
        if current:
            old_exp = token_expiry(current)
            if new_exp <= old_exp:
                raise TokenRejected(f"new token expires at {new_exp}, not after the stored token ({old_exp})")
        return new_exp

    def save(self, token: str) -> None:
        self._store.put(TOKEN_KEY, token)
        LOGGER.info("Catalog token stored")

    def clear(self) -> None:
        self._store.delete(TOKEN_KEY)
        LOGGER.info("Catalog token removed")
