from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from adapters.catalog_client import HttpCatalogSource
from core.errors import TokenRejected, UpstreamError

BASE_URL = "https://catalog.example.com/api/shop/products"


def _product(item_id: int) -> dict:
    return {
        "id": item_id,
        "name": f"Product {item_id}",
        "description": "",
        "category_name": "Cat",
        "price": 10,
        "discount": 1,
        "stock": 3,
        "updated_at": 1000 + item_id,
    }


def _page(items: list[dict], total_pages: int) -> dict:
    return {"success": True, "data": {"pagination": {"totalPages": total_pages}, "items": items}}


def _fetch(handler, token: "str | None" = None):
    async def _run():
        async with httpx.AsyncClient() as session:
            source = HttpCatalogSource(BASE_URL, page_size=2, token_provider=lambda: token, session=session)
            return await source.fetch_all()

    with respx.mock(assert_all_called=False) as router:
        route = router.get(BASE_URL).mock(side_effect=handler)
        return asyncio.run(_run()), route


def test_fetches_all_pages_and_concatenates() -> None:
    pages = {
        "1": _page([_product(1), _product(2)], 3),
        "2": _page([_product(3), _product(4)], 3),
        "3": _page([_product(5)], 3),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=pages[request.url.params["page"]])

    result, route = _fetch(handler)

    assert sorted(item.id for item in result.items) == [1, 2, 3, 4, 5]
    assert result.lost_pages == 0
    assert route.call_count == 3
    first = route.calls[0].request
    assert first.url.params["page"] == "1"
    assert first.url.params["pageSize"] == "2"
    assert first.url.params["sortBy"] == "updated_at"


def test_bearer_token_is_forwarded() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer jwt-token"
        return httpx.Response(200, json=_page([_product(1)], 1))

    result, _ = _fetch(handler, token="jwt-token")

    assert [item.id for item in result.items] == [1]


def test_failed_later_page_is_counted_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        page = request.url.params["page"]
        if page == "1":
            return httpx.Response(200, json=_page([_product(1)], 3))
        if page == "2":
            return httpx.Response(502, text="bad gateway")
        return httpx.Response(200, json={"success": False})

    result, _ = _fetch(handler)

    assert [item.id for item in result.items] == [1]
    assert result.lost_pages == 2


def test_first_page_http_error_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    with pytest.raises(UpstreamError):
        _fetch(handler)


def test_first_page_failure_flag_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "data": None})

    with pytest.raises(UpstreamError):
        _fetch(handler)


def test_missing_success_flag_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"pagination": {"totalPages": 1}, "items": []}})

    with pytest.raises(UpstreamError):
        _fetch(handler)


def test_products_key_is_accepted() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = {"success": True, "data": {"pagination": {"totalPages": 1}, "products": [_product(9)]}}
        return httpx.Response(200, json=body)

    result, _ = _fetch(handler)

    assert [item.id for item in result.items] == [9]


def _validate(handler, token: str):
    async def _run():
        async with httpx.AsyncClient() as session:
            source = HttpCatalogSource(BASE_URL, session=session)
            return await source.validate_token(token)

    with respx.mock(assert_all_called=False) as router:
        router.get(BASE_URL).mock(side_effect=handler)
        return asyncio.run(_run())


def _totals(anonymous: int, authenticated: int):
    def handler(request: httpx.Request) -> httpx.Response:
        total = authenticated if "authorization" in request.headers else anonymous
        return httpx.Response(200, json={"success": True, "data": {"pagination": {"total": total, "totalPages": 1}, "items": []}})

    return handler


def test_token_that_widens_catalog_is_accepted() -> None:
    assert _validate(_totals(10, 25), "jwt-token") == (10, 25)


def test_token_that_does_not_widen_catalog_is_rejected() -> None:
    with pytest.raises(TokenRejected):
        _validate(_totals(10, 10), "jwt-token")


def test_token_request_failure_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "authorization" in request.headers:
            return httpx.Response(401)
        return _totals(10, 0)(request)

    with pytest.raises(TokenRejected):
        _validate(handler, "jwt-token")


def test_anonymous_failure_counts_as_zero() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "authorization" not in request.headers:
            return httpx.Response(503)
        return _totals(0, 4)(request)

    assert _validate(handler, "jwt-token") == (0, 4)
