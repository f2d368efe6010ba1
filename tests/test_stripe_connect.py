"""Stripe Connect onboarding for contractors, with the SDK stubbed out."""
import pytest
import stripe

from repair24_api.app.core.config import settings
from repair24_api.app.services.stripe_connect_service import StripeConnectService


def _account(**values):
    account = {"id": "acct_123", "object": "account", "charges_enabled": False, "payouts_enabled": False}
    account.update(values)
    return stripe.Account.construct_from(account, "sk_test_dummy")


@pytest.fixture
def connect_calls(monkeypatch):
    calls = {"create": [], "link": [], "login": []}

    def create_account(cls, contractor):
        calls["create"].append(contractor["email"])
        return _account()

    def create_account_link(cls, account_id):
        calls["link"].append(account_id)
        return stripe.AccountLink.construct_from(
            {"object": "account_link", "url": f"https://connect.stripe.com/setup/e/{account_id}/abc"}, "sk_test_dummy"
        )

    def retrieve_account(cls, account_id):
        return _account(
            id=account_id,
            charges_enabled=True,
            details_submitted=True,
            country="US",
            default_currency="usd",
            requirements={"currently_due": ["external_account"], "eventually_due": [], "disabled_reason": None},
        )

    def create_login_link(cls, account_id):
        calls["login"].append(account_id)
        return stripe.LoginLink.construct_from(
            {"object": "login_link", "url": "https://connect.stripe.com/express/xyz"}, "sk_test_dummy"
        )

    monkeypatch.setattr(StripeConnectService, "_create_account", classmethod(create_account))
    monkeypatch.setattr(StripeConnectService, "_create_account_link", classmethod(create_account_link))
    monkeypatch.setattr(StripeConnectService, "_retrieve_account", classmethod(retrieve_account))
    monkeypatch.setattr(StripeConnectService, "_create_login_link", classmethod(create_login_link))
    return calls


def _url(contractor, action):
    return f"/api/v1/contractors/{contractor.id}/stripe/{action}"


def test_connect_creates_account_once(client, contractor_a, connect_calls):
    response = client.post(_url(contractor_a, "connect"), headers=contractor_a.headers)
    assert response.status_code == 200, response.text
    assert response.json() == {
        "account_id": "acct_123",
        "account_link_url": "https://connect.stripe.com/setup/e/acct_123/abc",
    }
    # A second call only issues a new onboarding link
    again = client.post(_url(contractor_a, "connect"), headers=contractor_a.headers)
    assert again.json()["account_id"] == "acct_123"
    assert connect_calls["create"] == ["alice@plumbers.test"]
    assert connect_calls["link"] == ["acct_123", "acct_123"]


def test_account_status(client, admin, contractor_a, connect_calls):
    client.post(_url(contractor_a, "connect"), headers=contractor_a.headers)
    response = client.get(_url(contractor_a, "status"), headers=admin.headers)
    assert response.status_code == 200
    data = response.json()
    assert data["account_id"] == "acct_123"
    assert data["charges_enabled"] is True
    assert data["payouts_enabled"] is False
    assert data["currently_due"] == ["external_account"]
    assert data["disabled_reason"] is None
    assert data["country"] == "US"


def test_login_link(client, contractor_a, connect_calls):
    client.post(_url(contractor_a, "connect"), headers=contractor_a.headers)
    response = client.post(_url(contractor_a, "login-link"), headers=contractor_a.headers)
    assert response.status_code == 200
    assert response.json() == {"url": "https://connect.stripe.com/express/xyz"}
    assert connect_calls["login"] == ["acct_123"]


def test_status_without_account(client, contractor_a, connect_calls):
    response = client.get(_url(contractor_a, "status"), headers=contractor_a.headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Contractor has not connected a Stripe account"
    assert client.post(_url(contractor_a, "login-link"), headers=contractor_a.headers).status_code == 400


def test_only_the_contractor_or_staff(client, customer, contractor_a, contractor_b, connect_calls):
    assert client.post(_url(contractor_a, "connect"), headers=contractor_b.headers).status_code == 403
    assert client.post(_url(contractor_a, "connect"), headers=customer.headers).status_code == 403
    assert connect_calls["create"] == []


def test_customers_have_no_stripe_account(client, admin, customer, connect_calls):
    assert client.post(_url(customer, "connect"), headers=admin.headers).status_code == 404


def test_stripe_errors_are_a_bad_gateway(client, contractor_a, monkeypatch):
    def refused(cls, contractor):
        raise stripe.InvalidRequestError("Connect is not enabled for this platform.", None)

    monkeypatch.setattr(StripeConnectService, "_create_account", classmethod(refused))
    response = client.post(_url(contractor_a, "connect"), headers=contractor_a.headers)
    assert response.status_code == 502
    assert "Connect is not enabled" in response.json()["detail"]


def test_unconfigured_stripe(client, contractor_a, monkeypatch):
    monkeypatch.setattr(settings, "stripe_secret_key", "")
    response = client.post(_url(contractor_a, "connect"), headers=contractor_a.headers)
    assert response.status_code == 502
    assert response.json()["detail"] == "Stripe is not configured"
