"""Pytest fixtures for vastralaya tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext

from vastralaya import passwords
from vastralaya.config import Settings
from vastralaya.kv_store import JsonFileStore
from vastralaya.models import Address, CustomerPrincipal, LineItem
from vastralaya.orders import OrderService
from vastralaya.services import build_services

RETAILER_EMAIL = "owner@vastralaya.test"
RETAILER_PASSWORD = "initial-secret"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Keep PBKDF2 cheap in tests."""
    monkeypatch.setattr(
        passwords,
        "_context",
        CryptContext(schemes=["pbkdf2_sha256"], pbkdf2_sha256__rounds=1000),
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir):
    return Settings(
        data_dir=temp_dir / "data",
        retailer_email=RETAILER_EMAIL,
        retailer_initial_password=RETAILER_PASSWORD,
    )


@pytest.fixture
def store(settings):
    return JsonFileStore(settings.data_dir)


@pytest.fixture
def services(settings, store):
    return build_services(settings, store=store)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def order_service(store, settings, clock):
    return OrderService(store, settings, clock=clock)


@pytest.fixture
def retailer(settings):
    return settings.retailer


@pytest.fixture
def alice():
    return CustomerPrincipal(id="cust-alice", email="alice@example.com", name="Alice", phone="9000000001")


@pytest.fixture
def bob():
    return CustomerPrincipal(id="cust-bob", email="bob@example.com", name="Bob")


@pytest.fixture
def address():
    return Address(
        street="12 MG Road", city="Bengaluru", state="Karnataka", pincode="560001", country="India"
    )


@pytest.fixture
def items():
    """Two lines totalling 2900 before shipping."""
    return [
        LineItem(product_id="product:1_shirt", name="Silk Shirt", price=1200, quantity=2, category="Shirts"),
        LineItem(product_id="product:2_scarf", name="Cotton Scarf", price=500, quantity=1, category="Accessories"),
    ]


# --- API fixtures ---


ADDRESS_PAYLOAD = {
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
    "country": "India",
}

ITEMS_PAYLOAD = [
    {"id": "product:1_shirt", "name": "Silk Shirt", "price": 1200, "quantity": 2, "category": "Shirts"},
    {"id": "product:2_scarf", "name": "Cotton Scarf", "price": 500, "quantity": 1, "category": "Accessories"},
]


@pytest.fixture
def client(settings):
    """Test client over a fresh data directory with local identities."""
    from vastralaya.api import create_app

    return TestClient(create_app(settings))


def _customer_headers(client: TestClient, email: str, name: str) -> dict[str, str]:
    client.post("/api/signup", json={"email": email, "password": "hunter22", "name": name})
    response = client.post("/api/login", json={"email": email, "password": "hunter22"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['accessToken']}"}


@pytest.fixture
def customer_headers(client):
    return _customer_headers(client, "alice@example.com", "Alice")


@pytest.fixture
def other_customer_headers(client):
    return _customer_headers(client, "bob@example.com", "Bob")


@pytest.fixture
def retailer_headers(client):
    response = client.post(
        "/api/retailer/login", json={"email": RETAILER_EMAIL, "password": RETAILER_PASSWORD}
    )
    assert response.status_code == 200
    return {"X-Session-Token": response.json()["sessionToken"]}


@pytest.fixture
def placed_order(client, customer_headers):
    """An order placed through the API by the default customer."""
    response = client.post(
        "/api/orders",
        json={"items": ITEMS_PAYLOAD, "shippingAddress": ADDRESS_PAYLOAD, "totalAmount": 3000},
        headers=customer_headers,
    )
    assert response.status_code == 201
    return response.json()["order"]


@pytest.fixture
def address_payload():
    return dict(ADDRESS_PAYLOAD)


@pytest.fixture
def items_payload():
    return [dict(item) for item in ITEMS_PAYLOAD]
