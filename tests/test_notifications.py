"""Notification store: creation, reading, retention and ownership."""
from repair24_api.app.core.config import settings

from conftest import notifications_of


def _send(client, admin, user, title="Heads up", **extra):
    body = {"user_id": user.id, "type": "system_update", "title": title, "message": "Scheduled maintenance", **extra}
    response = client.post("/api/v1/notifications/", json=body, headers=admin.headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_in_app_notifications_are_sent_immediately(client, admin, customer):
    notification = _send(client, admin, customer)
    assert notification["id"].startswith("notif-")
    assert notification["status"] == "sent"
    assert notification["channels"] == ["in_app"]
    assert notification["sent_channels"] == ["in_app"]
    assert notification["read"] is False
    assert notification["priority"] == "normal"


def test_other_channels_stay_pending(client, admin, customer):
    notification = _send(client, admin, customer, channels=["in_app", "email"])
    assert notification["status"] == "pending"
    assert notification["sent_channels"] == ["in_app"]


def test_only_staff_create_notifications(client, customer, other_customer):
    body = {"user_id": other_customer.id, "type": "system_update", "title": "Hi", "message": "Hello"}
    assert client.post("/api/v1/notifications/", json=body, headers=customer.headers).status_code == 403


def test_notification_for_unknown_user_is_not_found(client, admin):
    body = {"user_id": 9999, "type": "system_update", "title": "Hi", "message": "Hello"}
    response = client.post("/api/v1/notifications/", json=body, headers=admin.headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "User 9999 not found"


def test_title_length_is_limited(client, admin, customer):
    body = {"user_id": customer.id, "type": "system_update", "title": "x" * 201, "message": "m"}
    assert client.post("/api/v1/notifications/", json=body, headers=admin.headers).status_code == 422


def test_list_is_newest_first_with_unread_count(client, admin, customer):
    for i in range(3):
        _send(client, admin, customer, title=f"n{i}")
    data = notifications_of(client, customer)
    assert [n["title"] for n in data["notifications"]] == ["n2", "n1", "n0"]
    assert data["unread_count"] == 3
    assert data["total"] == 3

    page = notifications_of(client, customer, limit=2, page=2)
    assert [n["title"] for n in page["notifications"]] == ["n0"]
    assert page["unread_count"] == 3


def test_mark_read_and_unread_only(client, admin, customer):
    first = _send(client, admin, customer, title="first")
    _send(client, admin, customer, title="second")
    response = client.patch(f"/api/v1/notifications/{first['id']}", json={"read": True}, headers=customer.headers)
    assert response.status_code == 200
    assert response.json()["read"] is True

    unread = notifications_of(client, customer, unread_only=True)
    assert [n["title"] for n in unread["notifications"]] == ["second"]
    assert unread["unread_count"] == 1


def test_mark_all_read(client, admin, customer, other_customer):
    _send(client, admin, customer)
    _send(client, admin, customer)
    _send(client, admin, other_customer)
    response = client.post("/api/v1/notifications/mark-all-read", headers=customer.headers)
    assert response.json() == {"updated": 2}
    assert notifications_of(client, customer)["unread_count"] == 0
    assert notifications_of(client, other_customer)["unread_count"] == 1


def test_users_cannot_touch_other_users_notifications(client, admin, customer, other_customer):
    notification = _send(client, admin, customer)
    url = f"/api/v1/notifications/{notification['id']}"
    assert client.patch(url, json={"read": True}, headers=other_customer.headers).status_code == 404
    assert client.delete(url, headers=other_customer.headers).status_code == 404
    # A user_id filter from a non-admin is ignored
    assert notifications_of(client, other_customer, user_id=customer.id)["total"] == 0


def test_admin_can_read_any_users_notifications(client, admin, customer, other_customer):
    _send(client, admin, customer)
    _send(client, admin, other_customer)
    assert notifications_of(client, admin, user_id=customer.id)["total"] == 1
    assert notifications_of(client, admin)["total"] == 2
    assert notifications_of(client, customer)["total"] == 1


def test_delete(client, admin, customer):
    notification = _send(client, admin, customer)
    url = f"/api/v1/notifications/{notification['id']}"
    assert client.delete(url, headers=customer.headers).status_code == 204
    assert client.delete(url, headers=customer.headers).status_code == 404
    assert notifications_of(client, customer)["total"] == 0


def test_only_newest_notifications_are_kept(client, admin, customer, monkeypatch):
    monkeypatch.setattr(settings, "notification_retention", 3)
    for i in range(5):
        _send(client, admin, customer, title=f"n{i}")
    data = notifications_of(client, customer)
    assert data["total"] == 3
    assert [n["title"] for n in data["notifications"]] == ["n4", "n3", "n2"]
