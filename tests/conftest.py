"""Shared fixtures: a fake order system behind httpx.MockTransport."""

import json

import httpx
import pytest

from mums_server.cart import CartStore, ColorVariants
from mums_server.config import DEFAULT_COLOR_VARIANTS, StoreConfig
from mums_server.models import Product
from mums_server.sheets_client import SheetsClient
from mums_server.storage import LocalStorage

API_URL = "https://sheets.example.test/exec"

CATALOG = [
    {
        "id": "MUM1",
        "title": "9 inch Mum",
        "price": 12,
        "description": "Classic garden mum",
        "image_url": "",
        "available": "TRUE",
    },
    {"id": "APPLE", "title": "Apple Basket", "price": "25.00", "available": True},
    {"id": "TRICOLOR", "title": "Tricolor Mum", "price": "30", "available": "true"},
    {"id": "OLD", "title": "Retired Mum", "price": "8", "available": "FALSE"},
]


class FakeSheets:
    """Scriptable stand-in for the spreadsheet web app."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, list] = {
            "products": [{"products": CATALOG}],
            "settings": [{"settings": {"welcome_title": "Fall Mum Sale", "venmo_handle": "@Pack182"}}],
            "scouts": [{"scouts": ["Alex", "Sam"]}],
            "order": [{"success": True, "orderId": "ORD-1001"}],
            "volunteer": [{"success": True}],
            "submitHelper": [{"success": True}],
        }

    def queue(self, path, *responses):
        """Replace the responses for ``path``; the last one repeats."""
        self.responses[path] = list(responses)

    def calls(self, path):
        return [r for r in self.requests if r.url.params.get("path") == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.params.get("path")
        queue = self.responses.get(path)
        if not queue:
            return httpx.Response(404, json={"error": "unknown path"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return httpx.Response(response.status_code, content=response.content)
        return httpx.Response(200, content=json.dumps(response))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_sheets():
    return FakeSheets()


@pytest.fixture
def client(fake_sheets):
    sheets = SheetsClient(API_URL, retry_delay=0, transport=fake_sheets.transport, sleep=lambda s: None)
    yield sheets
    sheets.close()


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "storage.json"))


@pytest.fixture
def products():
    return [Product.model_validate(row) for row in CATALOG]


@pytest.fixture
def cart(storage, products):
    store = CartStore(storage, ColorVariants(DEFAULT_COLOR_VARIANTS))
    store.set_catalog(products)
    return store


@pytest.fixture
def config(tmp_path):
    return StoreConfig(
        api_url=API_URL,
        storage_file=str(tmp_path / "storefront.json"),
        retry_delay=0,
        test_order_delay=0,
    )
