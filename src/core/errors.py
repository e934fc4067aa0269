"""Error taxonomy shared by the core and the adapters."""

from __future__ import annotations

from typing import Optional


class StorewatchError(Exception):
    """Base class for all storewatch errors."""


class UpstreamError(StorewatchError):
    """The catalog could not be read (first page failed or reported failure)."""


class PartialPageLoss(StorewatchError):
    """A non-first catalog page failed; its items are missing from this cycle."""

    def __init__(self, page: int, reason: str) -> None:
        super().__init__(f"page {page}: {reason}")
        self.page = page
        self.reason = reason


class DeliveryError(StorewatchError):
    """A notification could not be delivered."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DeliveryPermanentFailure(DeliveryError):
    """The transport reports the target address as gone for good."""


class DeliveryTransientFailure(DeliveryError):
    """Any other delivery failure; left for the next cycle."""


class CycleBusy(StorewatchError):
    """Another poll cycle currently holds the cycle lease."""


class TokenRejected(StorewatchError):
    """A catalog token failed validation and was not stored."""
