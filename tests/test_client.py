"""Requests-based API client and its polling helpers."""
import json

import requests

from repair24_client import MAX_BACKOFF, Repair24API


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.content = json.dumps(payload).encode("utf-8") if payload is not None else b""
        self.text = self.content.decode("utf-8")
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """Replays queued responses and records the calls made."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "params": params, "json": json, "headers": headers})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _api(*responses):
    session = FakeSession(*responses)
    return Repair24API("http://api.test/api/v1/", session=session), session


def test_login_stores_token_for_later_calls():
    api, session = _api(FakeResponse(payload={"access_token": "tok", "token_type": "bearer"}), FakeResponse(payload={"id": 1}))
    api.login("jane@example.com", "secret123")
    data, error = api.me()
    assert error is None
    assert data == {"id": 1}
    assert session.calls[0]["url"] == "http://api.test/api/v1/users/login"
    assert session.calls[1]["headers"] == {"Authorization": "Bearer tok"}


def test_error_detail_is_returned():
    api, _ = _api(FakeResponse(502, {"detail": "Your card was declined."}))
    data, error = api.capture_payment(3, "pi_123")
    assert data is None
    assert error == {"status_code": 502, "message": "Your card was declined."}


def test_connection_errors_are_reported():
    api, _ = _api(requests.ConnectionError("refused"))
    data, error = api.list_service_requests()
    assert data == []
    assert error["status_code"] is None
    assert "refused" in error["message"]


def test_empty_body_on_success():
    api, session = _api(FakeResponse(204))
    assert api.delete_notification("notif-1") == (None, None)
    assert session.calls[0]["method"] == "DELETE"


def test_accept_quote_sends_status_and_version():
    api, session = _api(FakeResponse(payload={"id": 3}))
    api.accept_quote(3, 1, expected_version=4)
    assert session.calls[0]["method"] == "PATCH"
    assert session.calls[0]["json"] == {"request_id": 3, "quote_index": 1, "status": "accepted", "expected_version": 4}


def test_poll_notifications_reports_only_new_ones():
    first = {"notifications": [{"id": "a"}, {"id": "b"}]}
    second = {"notifications": [{"id": "b"}, {"id": "c"}]}
    api, session = _api(FakeResponse(payload=first), FakeResponse(payload=second))
    batches, sleeps = [], []
    api.poll_notifications(batches.append, interval=30, max_polls=2, sleep=sleeps.append)
    assert [[n["id"] for n in batch] for batch in batches] == [["a", "b"], ["c"]]
    assert sleeps == [30]
    assert session.calls[0]["params"]["unread_only"] == "true"


def test_poll_backs_off_on_errors_and_resets():
    api, _ = _api(
        FakeResponse(503, {"detail": "down"}),
        FakeResponse(503, {"detail": "down"}),
        FakeResponse(payload=[{"index": 0, "status": "pending"}]),
        FakeResponse(payload=[{"index": 0, "status": "accepted"}, {"index": 1, "status": "pending"}]),
    )
    changes, sleeps = [], []
    api.poll_quotes(5, changes.append, interval=30, max_polls=4, sleep=sleeps.append)
    assert 1 <= sleeps[0] < 2
    assert 2 <= sleeps[1] < 3
    assert sleeps[2] == 30
    assert api.retry_attempts == 0
    assert changes == [
        [{"index": 0, "status": "pending"}],
        [{"index": 0, "status": "accepted"}, {"index": 1, "status": "pending"}],
    ]


def test_backoff_is_capped():
    api, _ = _api()
    api.retry_attempts = 20
    assert MAX_BACKOFF <= api._backoff_delay() < MAX_BACKOFF + 1


def test_stripe_onboarding_link():
    link = {"account_id": "acct_123", "account_link_url": "https://connect.stripe.com/setup/e/acct_123/abc"}
    api, session = _api(FakeResponse(payload=link))
    data, error = api.connect_stripe_account(7)
    assert error is None
    assert data["account_link_url"].startswith("https://connect.stripe.com/")
    assert session.calls[0]["method"] == "POST"
    assert session.calls[0]["url"] == "http://api.test/api/v1/contractors/7/stripe/connect"
