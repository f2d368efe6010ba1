"""Shared fixtures: a fresh SQLite file per test and registered users."""
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from repair24_api.app.core.config import settings
from repair24_api.app.main import app


ADDRESS = "12 Main St, Springfield, IL 62701, USA"


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_url", str(tmp_path / "repair24_test.db"))
    monkeypatch.setattr(settings, "super_admin_static_token", "")
    monkeypatch.setattr(settings, "google_maps_api_key", "")
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_dummy")
    monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_test_secret")
    monkeypatch.setattr(settings, "notification_retention", 50)
    # Entering the context runs the startup event, which migrates the database
    with TestClient(app) as test_client:
        yield test_client


def register(client, email, role="client", password="secret123", **profile):
    """Register and log in a user; returns its id and auth headers."""
    body = {"email": email, "password": password, "full_name": email.split("@")[0].title(), "role": role, **profile}
    response = client.post("/api/v1/users/", json=body)
    assert response.status_code == 201, response.text
    user = response.json()
    login = client.post("/api/v1/users/login", json={"email": email, "password": password})
    assert login.status_code == 200, login.text
    token = login.json()["access_token"]
    return SimpleNamespace(id=user["id"], role_id=user["role_id"], headers={"Authorization": f"Bearer {token}"})


def request_payload(**overrides):
    payload = {
        "service_types": ["plumbing"],
        "description": "Burst pipe under the kitchen sink",
        "urgency_level": "emergency",
        "location": {"formatted_address": ADDRESS, "coordinates": {"lat": 39.7817, "lng": -89.6501}},
        "customer": {"full_name": "Jane Doe", "email": "jane@example.com", "phone": "+1 555 0100"},
    }
    payload.update(overrides)
    return payload


def create_request(client, headers=None, **overrides):
    response = client.post("/api/v1/service-requests/", json=request_payload(**overrides), headers=headers or {})
    assert response.status_code == 201, response.text
    return response.json()


def submit_quote(client, contractor, request_id, amount, **extra):
    body = {"request_id": request_id, "amount": amount, "description": f"Fix for ${amount}", **extra}
    return client.post("/api/v1/quotes/", json=body, headers=contractor.headers)


def notifications_of(client, user, **params):
    response = client.get("/api/v1/notifications/", params=params, headers=user.headers)
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def admin(client):
    # The first account on an empty database becomes the super administrator
    return register(client, "admin@repair24.test")


@pytest.fixture
def customer(client, admin):
    return register(client, "customer@example.com")


@pytest.fixture
def other_customer(client, admin):
    return register(client, "neighbour@example.com")


@pytest.fixture
def contractor_a(client, admin):
    return register(
        client, "alice@plumbers.test", role="contractor",
        services_offered=["plumbing"], address="1 Pipe Rd, Springfield, IL 62702, USA",
        latitude=39.80, longitude=-89.64,
    )


@pytest.fixture
def contractor_b(client, admin):
    return register(
        client, "bob@fixit.test", role="contractor",
        services_offered=["plumbing", "hvac"], address="9 Duct Ave, Decatur, IL 62521, USA",
        latitude=39.84, longitude=-88.95,
    )


@pytest.fixture
def accepted_request(client, customer, contractor_a, contractor_b):
    """A request quoted by both contractors with A's $200 quote accepted."""
    request = create_request(client, customer.headers)
    assert submit_quote(client, contractor_a, request["id"], 200).status_code == 201
    assert submit_quote(client, contractor_b, request["id"], 250).status_code == 201
    response = client.patch(
        "/api/v1/quotes/",
        json={"request_id": request["id"], "quote_index": 0, "status": "accepted"},
        headers=customer.headers,
    )
    assert response.status_code == 200, response.text
    return response.json()
