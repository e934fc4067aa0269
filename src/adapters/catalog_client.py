"""Upstream catalog adapter.

Implements the core CatalogSource port over the marketplace's paginated
product list endpoint.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import httpx

from core.errors import PartialPageLoss, TokenRejected, UpstreamError
from core.models import FetchResult, Item

LOGGER = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "accept": "application/json",
    "content-type": "application/json",
    "user-agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
}


class HttpCatalogSource:
    """Fetches every catalog page; page 1 is mandatory, the rest best-effort."""

    def __init__(
        self,
        base_url: str,
        *,
        page_size: int = 50,
        token_provider: Callable[[], Optional[str]] = lambda: None,
        extra_headers: Optional[dict[str, str]] = None,
        timeout: float = 30.0,
        session: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url
        self._page_size = page_size
        self._token_provider = token_provider
        self._extra_headers = dict(extra_headers or {})
        self._session = session or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._session.aclose()

    def _headers(self, token: Optional[str] = None) -> dict[str, str]:
        headers = {**DEFAULT_HEADERS, **self._extra_headers}
        if token:
            headers["authorization"] = f"Bearer {token}"
        return headers

    def _params(self, page: int) -> dict[str, Any]:
        return {
            "pageSize": self._page_size,
            "sortBy": "updated_at",
            "sortOrder": "DESC",
            "page": page,
        }

    async def fetch_page(self, page: int, headers: dict[str, str]) -> dict[str, Any]:
        """Return the ``data`` object of one page or raise UpstreamError."""

        try:
            response = await self._session.get(self._base_url, params=self._params(page), headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(f"HTTP {exc.response.status_code} for page {page}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"request for page {page} failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamError(f"page {page} is not valid JSON") from exc

        if not isinstance(body, dict) or body.get("success") is not True:
            raise UpstreamError(f"catalog reported failure for page {page}")
        data = body.get("data")
        if not isinstance(data, dict):
            raise UpstreamError(f"page {page} has no data object")
        return data

    async def _fetch_extra_page(self, page: int, headers: dict[str, str]) -> list[Item]:
        try:
            data = await self.fetch_page(page, headers)
            return _parse_items(data)
        except (UpstreamError, AttributeError, KeyError, TypeError, ValueError) as exc:
            raise PartialPageLoss(page, str(exc)) from exc

    async def fetch_all(self) -> FetchResult:
        """Fetch page 1, then pages 2..N concurrently, and concatenate the items."""

        # Read per cycle so a token stored at runtime is picked up.
        headers = self._headers(self._token_provider())
        first = await self.fetch_page(1, headers)
        try:
            total_pages = int(first.get("pagination", {}).get("totalPages", 1))
            items = _parse_items(first)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise UpstreamError(f"page 1 is malformed: {exc}") from exc

        results = await asyncio.gather(
            *(self._fetch_extra_page(page, headers) for page in range(2, total_pages + 1)),
            return_exceptions=True,
        )

        lost_pages = 0
        for result in results:
            if isinstance(result, PartialPageLoss):
                # Logged apart from genuine upstream absence, which is silent.
                LOGGER.warning("Partial page loss on %s", result)
                lost_pages += 1
                continue
            if isinstance(result, BaseException):
                raise result
            items.extend(result)

        LOGGER.info("Fetched %s items from %s pages (%s lost)", len(items), total_pages, lost_pages)
        return FetchResult(items=items, lost_pages=lost_pages)

    async def validate_token(self, token: str) -> tuple[int, int]:
        """Check that ``token`` unlocks more of the catalog than no token.

        Returns the anonymous and authenticated item totals, or raises
        TokenRejected when the authenticated request fails or sees no more.
        """

        try:
            before = _total(await self.fetch_page(1, self._headers()))
        except UpstreamError as exc:
            LOGGER.warning("Anonymous catalog request failed: %s", exc)
            before = 0

        try:
            after = _total(await self.fetch_page(1, self._headers(token)))
        except UpstreamError as exc:
            raise TokenRejected(f"request with token failed: {exc}") from exc

        if after <= before:
            raise TokenRejected(f"token does not widen the catalog ({before} -> {after})")
        LOGGER.info("Token widens the catalog from %s to %s items", before, after)
        return before, after


def _total(data: dict[str, Any]) -> int:
    try:
        return int((data.get("pagination") or {}).get("total", 0))
    except (AttributeError, TypeError, ValueError) as exc:
        raise UpstreamError(f"pagination total is malformed: {exc}") from exc


def _parse_items(data: dict[str, Any]) -> list[Item]:
    raw_items = data.get("items")
    if raw_items is None:
        raw_items = data.get("products", [])
    return [Item.from_api(raw) for raw in raw_items]
