"""Quote submission and acceptance."""
import asyncio
import sqlite3

import pytest

from repair24_api.app.core.db import get_connection
from repair24_api.app.core.errors import ConflictError
from repair24_api.app.services.quote_service import QuoteService
from repair24_api.app.services.service_request_service import advance_version

from conftest import create_request, notifications_of, submit_quote


def _decide(client, user, request_id, index, status, **extra):
    body = {"request_id": request_id, "quote_index": index, "status": status, **extra}
    return client.patch("/api/v1/quotes/", json=body, headers=user.headers)


def _jobs_of(client, contractor):
    response = client.get(f"/api/v1/contractors/{contractor.id}/jobs", headers=contractor.headers)
    assert response.status_code == 200, response.text
    return response.json()["jobs"]


def test_submit_quote_appends_pending_quote_and_assigns_request(client, customer, contractor_a):
    request = create_request(client, customer.headers)
    response = submit_quote(client, contractor_a, request["id"], 200, warranty="90 days", materials=["valve"])
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["status"] == "assigned"
    assert data["version"] == request["version"] + 1
    [quote] = data["quotes"]
    assert quote["index"] == 0
    assert quote["contractor_id"] == contractor_a.id
    assert quote["status"] == "pending"
    assert quote["materials"] == ["valve"]

    received = notifications_of(client, customer)["notifications"]
    assert [n["type"] for n in received] == ["quote_received"]
    assert received[0]["amount"] == 200


def test_duplicate_quote_is_a_conflict(client, customer, contractor_a):
    request = create_request(client, customer.headers)
    assert submit_quote(client, contractor_a, request["id"], 200).status_code == 201
    response = submit_quote(client, contractor_a, request["id"], 180)
    assert response.status_code == 409
    assert len(client.get(f"/api/v1/service-requests/{request['id']}/quotes", headers=customer.headers).json()) == 1


def test_quote_on_unknown_request_is_not_found(client, contractor_a):
    assert submit_quote(client, contractor_a, 999, 200).status_code == 404


def test_quote_on_cancelled_request_is_rejected(client, customer, contractor_a):
    request = create_request(client, customer.headers)
    cancel = client.patch(
        f"/api/v1/service-requests/{request['id']}/status", json={"status": "cancelled"}, headers=customer.headers
    )
    assert cancel.status_code == 200
    response = submit_quote(client, contractor_a, request["id"], 200)
    assert response.status_code == 400
    assert "cancelled" in response.json()["detail"]


def test_clients_cannot_submit_quotes(client, customer, other_customer):
    request = create_request(client, customer.headers)
    assert submit_quote(client, other_customer, request["id"], 200).status_code == 403


def test_admin_must_name_the_contractor(client, admin, customer, contractor_a):
    request = create_request(client, customer.headers)
    assert submit_quote(client, admin, request["id"], 200).status_code == 400
    response = submit_quote(client, admin, request["id"], 200, contractor_id=contractor_a.id)
    assert response.status_code == 201
    assert response.json()["quotes"][0]["contractor_id"] == contractor_a.id


def test_accepting_a_quote_rejects_the_others(client, customer, contractor_a, contractor_b, accepted_request):
    quotes = accepted_request["quotes"]
    assert [q["status"] for q in quotes] == ["accepted", "rejected"]
    assert accepted_request["assigned_contractor_id"] == contractor_a.id
    assert accepted_request["status"] == "assigned"

    jobs = client.get(f"/api/v1/contractors/{contractor_a.id}/jobs", headers=contractor_a.headers).json()
    assert jobs["total"] == 1
    job = jobs["jobs"][0]
    assert job["service_request_id"] == accepted_request["id"]
    assert job["amount"] == 200
    assert job["service"] == "plumbing"
    assert job["status"] == "assigned"
    assert job["payment_status"] == "pending"

    winner_types = {n["type"] for n in notifications_of(client, contractor_a)["notifications"]}
    assert winner_types == {"quote_accepted", "job_assigned"}
    loser = notifications_of(client, contractor_b)["notifications"]
    assert [n["type"] for n in loser] == ["quote_rejected"]
    assert client.get(f"/api/v1/contractors/{contractor_b.id}/jobs", headers=contractor_b.headers).json()["total"] == 0


def test_switching_acceptance_moves_the_assignment(client, customer, contractor_a, contractor_b, accepted_request):
    response = _decide(client, customer, accepted_request["id"], 1, "accepted")
    assert response.status_code == 200
    data = response.json()
    assert [q["status"] for q in data["quotes"]] == ["rejected", "accepted"]
    assert data["assigned_contractor_id"] == contractor_b.id
    assert sum(q["status"] == "accepted" for q in data["quotes"]) == 1

    [stale] = _jobs_of(client, contractor_a)
    assert stale["status"] == "cancelled"
    [live] = _jobs_of(client, contractor_b)
    assert live["status"] == "assigned"
    assert live["service_request_id"] == accepted_request["id"]

    url = f"/api/v1/contractors/{contractor_a.id}/jobs/{stale['id']}"
    assert client.patch(url, json={"status": "completed"}, headers=contractor_a.headers).status_code == 400


def test_switching_back_opens_a_new_job(client, customer, contractor_a, contractor_b, accepted_request):
    _decide(client, customer, accepted_request["id"], 1, "accepted")
    _decide(client, customer, accepted_request["id"], 0, "accepted")
    statuses = sorted(job["status"] for job in _jobs_of(client, contractor_a))
    assert statuses == ["assigned", "cancelled"]
    assert [job["status"] for job in _jobs_of(client, contractor_b)] == ["cancelled"]


def test_completed_job_of_replaced_contractor_is_not_paid(client, admin, customer, contractor_a, contractor_b, accepted_request):
    [job] = _jobs_of(client, contractor_a)
    url = f"/api/v1/contractors/{contractor_a.id}/jobs/{job['id']}"
    assert client.patch(url, json={"status": "completed"}, headers=contractor_a.headers).json()["payment_status"] == "held"

    _decide(client, customer, accepted_request["id"], 1, "accepted")
    response = client.post(f"{url}/release-payment", headers=admin.headers)
    assert response.status_code == 409
    assert response.json()["detail"] == f"Job {job['id']} was cancelled"


def test_rejecting_touches_only_one_quote(client, customer, contractor_a, contractor_b):
    request = create_request(client, customer.headers)
    submit_quote(client, contractor_a, request["id"], 200)
    submit_quote(client, contractor_b, request["id"], 250)
    response = _decide(client, customer, request["id"], 1, "rejected")
    assert response.status_code == 200
    assert [q["status"] for q in response.json()["quotes"]] == ["pending", "rejected"]
    assert response.json()["assigned_contractor_id"] is None
    assert [n["type"] for n in notifications_of(client, contractor_b)["notifications"]] == ["quote_rejected"]
    assert notifications_of(client, contractor_a)["total"] == 0


def test_invalid_quote_status_is_a_bad_request(client, customer, contractor_a):
    request = create_request(client, customer.headers)
    submit_quote(client, contractor_a, request["id"], 200)
    response = _decide(client, customer, request["id"], 0, "maybe")
    assert response.status_code == 400
    assert response.json()["detail"] == "Status must be pending, accepted, or rejected"


def test_unknown_quote_index_is_not_found(client, customer, contractor_a):
    request = create_request(client, customer.headers)
    submit_quote(client, contractor_a, request["id"], 200)
    assert _decide(client, customer, request["id"], 5, "accepted").status_code == 404
    assert _decide(client, customer, 999, 0, "accepted").status_code == 404


def test_only_the_customer_decides(client, customer, other_customer, contractor_a):
    request = create_request(client, customer.headers)
    submit_quote(client, contractor_a, request["id"], 200)
    assert _decide(client, other_customer, request["id"], 0, "accepted").status_code == 403
    assert _decide(client, contractor_a, request["id"], 0, "accepted").status_code == 403


def test_stale_expected_version_is_a_conflict(client, customer, contractor_a, contractor_b):
    request = create_request(client, customer.headers)
    submit_quote(client, contractor_a, request["id"], 200)
    seen = submit_quote(client, contractor_b, request["id"], 250).json()

    first = _decide(client, customer, request["id"], 0, "accepted", expected_version=seen["version"])
    assert first.status_code == 200
    # A second tab still holding the old version tries to accept the other quote
    second = _decide(client, customer, request["id"], 1, "accepted", expected_version=seen["version"])
    assert second.status_code == 409

    current = client.get(f"/api/v1/service-requests/{request['id']}", headers=customer.headers).json()
    assert [q["status"] for q in current["quotes"]] == ["accepted", "rejected"]
    assert current["assigned_contractor_id"] == contractor_a.id


def test_advance_version_refuses_a_stale_writer(client, customer):
    request = create_request(client, customer.headers)
    conn = get_connection()
    try:
        advance_version(conn, request["id"], request["version"], status="assigned")
        conn.commit()
        with pytest.raises(ConflictError):
            advance_version(conn, request["id"], request["version"], status="cancelled")
        conn.rollback()
        row = conn.execute("SELECT status, version FROM service_requests WHERE id = ?", (request["id"],)).fetchone()
    finally:
        conn.close()
    assert row["status"] == "assigned"
    assert row["version"] == request["version"] + 1


def test_unique_index_blocks_duplicate_quote_rows(client, customer, contractor_a):
    request = create_request(client, customer.headers)
    submit_quote(client, contractor_a, request["id"], 200)
    conn = get_connection()
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO quotes (request_id, position, contractor_id, amount, description) VALUES (?, 1, ?, 10, 'x')",
                (request["id"], contractor_a.id),
            )
    finally:
        conn.close()


def test_list_quotes_service_returns_submission_order(client, customer, contractor_a, contractor_b):
    request = create_request(client, customer.headers)
    submit_quote(client, contractor_b, request["id"], 250)
    submit_quote(client, contractor_a, request["id"], 200)
    quotes = asyncio.run(QuoteService.list_quotes(request["id"]))
    assert [(q.index, q.contractor_id) for q in quotes] == [(0, contractor_b.id), (1, contractor_a.id)]
