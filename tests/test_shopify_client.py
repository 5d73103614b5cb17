from typing import Any

import pytest
import requests
from checkout_orders.errors import ShopifyAPIError
from checkout_orders.shopify_client import ShopifyClient


class FakeResponse:
    def __init__(self, status_code: int, body: Any = None, text: str = "", next_url: str | None = None) -> None:
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._body = body or {}
        self.text = text
        self.links = {"next": {"url": next_url, "rel": "next"}} if next_url else {}

    def json(self) -> Any:
        return self._body


class RecordingSession(requests.Session):
    def __init__(self, responses: list[FakeResponse]) -> None:
        super().__init__()
        self.responses = responses
        self.requests: list[tuple[str, str, dict]] = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        return self.responses.pop(0)


def _client(config, *responses: FakeResponse) -> tuple[ShopifyClient, RecordingSession]:
    session = RecordingSession(list(responses))
    return ShopifyClient(config, session=session), session


def test_headers_and_base_url(config) -> None:
    client, session = _client(config)

    assert client.base_url == "https://test-store.myshopify.com/admin/api/2024-10"
    assert session.headers["X-Shopify-Access-Token"] == "shpat_test"
    assert session.headers["Content-Type"] == "application/json"


def test_search_customers(config) -> None:
    client, session = _client(config, FakeResponse(200, {"customers": [{"id": 7}]}))

    customers = client.search_customers("jamie@example.com")

    method, url, kwargs = session.requests[0]
    assert (method, url) == ("GET", "https://test-store.myshopify.com/admin/api/2024-10/customers/search.json")
    assert kwargs["params"] == {"query": "email:jamie@example.com"}
    assert customers == [{"id": 7}]


def test_update_customer_sends_id_in_body(config) -> None:
    client, session = _client(config, FakeResponse(200, {"customer": {"id": 7}}))

    client.update_customer(7, {"phone": "512-555-0100"})

    method, url, kwargs = session.requests[0]
    assert method == "PUT"
    assert url.endswith("/customers/7.json")
    assert kwargs["json"] == {"customer": {"id": 7, "phone": "512-555-0100"}}


def test_create_order_returns_the_order(config) -> None:
    client, session = _client(config, FakeResponse(201, {"order": {"id": 9000, "order_number": 1001}}))

    order = client.create_order({"order": {"line_items": []}})

    method, url, kwargs = session.requests[0]
    assert (method, url.rsplit("/", 1)[1]) == ("POST", "orders.json")
    assert kwargs["json"] == {"order": {"line_items": []}}
    assert order == {"id": 9000, "order_number": 1001}


def test_list_orders_params(config) -> None:
    client, session = _client(config, FakeResponse(200, {"orders": [{"id": 1}, {"id": 2}]}))

    orders = client.list_orders("2025-06-14T00:00:00+00:00")

    assert session.requests[0][2]["params"] == {
        "status": "any",
        "created_at_min": "2025-06-14T00:00:00+00:00",
        "limit": 250,
    }
    assert len(orders) == 2


def test_error_response_raises_with_status_and_body(config) -> None:
    client, _ = _client(config, FakeResponse(422, text='{"errors": "Invalid"}'))

    with pytest.raises(ShopifyAPIError) as exc_info:
        client.create_order({"order": {}})

    assert exc_info.value.status_code == 422
    assert exc_info.value.body == '{"errors": "Invalid"}'


def test_list_orders_follows_next_page_links(config) -> None:
    next_url = "https://test-store.myshopify.com/admin/api/2024-10/orders.json?limit=250&page_info=abc123"
    client, session = _client(
        config,
        FakeResponse(200, {"orders": [{"id": n} for n in range(250)]}, next_url=next_url),
        FakeResponse(200, {"orders": [{"id": 250}, {"id": 251}]}),
    )

    orders = client.list_orders("2025-06-14T00:00:00+00:00")

    assert len(orders) == 252
    assert orders[-1] == {"id": 251}
    assert len(session.requests) == 2
    _, second_url, second_kwargs = session.requests[1]
    assert second_url == next_url
    assert second_kwargs["params"] is None
