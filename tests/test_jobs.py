"""Contractor jobs, payouts and stats."""
from conftest import notifications_of


def _job_body(**overrides):
    body = {
        "client_name": "Sam Client",
        "client_phone": "+1 555 0199",
        "service": "hvac",
        "description": "Furnace will not ignite",
        "address": "4 Elm St, Springfield, IL 62704, USA",
        "amount": 150.0,
    }
    body.update(overrides)
    return body


def _create_job(client, admin, contractor, **overrides):
    response = client.post(
        f"/api/v1/contractors/{contractor.id}/jobs", json=_job_body(**overrides), headers=admin.headers
    )
    assert response.status_code == 201, response.text
    return response.json()


def _patch(client, contractor, job_id, **body):
    return client.patch(f"/api/v1/contractors/{contractor.id}/jobs/{job_id}", json=body, headers=contractor.headers)


def test_create_job_notifies_contractor(client, admin, contractor_b):
    job = _create_job(client, admin, contractor_b)
    assert job["id"].startswith("job-")
    assert job["status"] == "assigned"
    assert job["payment_status"] == "pending"
    [notification] = notifications_of(client, contractor_b)["notifications"]
    assert notification["type"] == "job_assigned"
    assert notification["priority"] == "high"
    assert notification["data"] == {"job_id": job["id"]}


def test_only_staff_create_jobs(client, contractor_b):
    response = client.post(f"/api/v1/contractors/{contractor_b.id}/jobs", json=_job_body(), headers=contractor_b.headers)
    assert response.status_code == 403


def test_job_for_unknown_contractor(client, admin):
    response = client.post("/api/v1/contractors/999/jobs", json=_job_body(), headers=admin.headers)
    assert response.status_code == 404


def test_status_changes_stamp_timestamps(client, admin, contractor_b):
    job = _create_job(client, admin, contractor_b)
    accepted = _patch(client, contractor_b, job["id"], status="accepted").json()
    assert accepted["accepted_at"] is not None
    started = _patch(client, contractor_b, job["id"], status="in_progress", notes="On site").json()
    assert started["started_at"] is not None
    assert started["notes"] == "On site"
    completed = _patch(client, contractor_b, job["id"], status="completed").json()
    assert completed["completed_at"] is not None
    assert completed["payment_status"] == "held"


def test_completed_jobs_cannot_change_status(client, admin, contractor_b):
    job = _create_job(client, admin, contractor_b)
    _patch(client, contractor_b, job["id"], status="completed")
    response = _patch(client, contractor_b, job["id"], status="in_progress")
    assert response.status_code == 400


def test_release_requires_held_payout(client, admin, contractor_b):
    job = _create_job(client, admin, contractor_b)
    url = f"/api/v1/contractors/{contractor_b.id}/jobs/{job['id']}/release-payment"
    assert client.post(url, headers=admin.headers).status_code == 409

    _patch(client, contractor_b, job["id"], status="completed")
    response = client.post(url, headers=admin.headers)
    assert response.status_code == 200
    assert response.json()["payment_status"] == "released"
    assert client.post(url, headers=admin.headers).status_code == 409

    types = [n["type"] for n in notifications_of(client, contractor_b)["notifications"]]
    assert types[0] == "payment_released"


def test_release_unknown_job(client, admin, contractor_b):
    url = f"/api/v1/contractors/{contractor_b.id}/jobs/job-missing/release-payment"
    assert client.post(url, headers=admin.headers).status_code == 404


def test_contractors_cannot_release_their_own_payout(client, admin, contractor_b):
    job = _create_job(client, admin, contractor_b)
    _patch(client, contractor_b, job["id"], status="completed")
    url = f"/api/v1/contractors/{contractor_b.id}/jobs/{job['id']}/release-payment"
    assert client.post(url, headers=contractor_b.headers).status_code == 403


def test_list_jobs_filters_and_counts(client, admin, contractor_b):
    first = _create_job(client, admin, contractor_b, amount=100)
    _create_job(client, admin, contractor_b, amount=200)
    _patch(client, contractor_b, first["id"], status="completed")

    everything = client.get(f"/api/v1/contractors/{contractor_b.id}/jobs", headers=contractor_b.headers).json()
    assert everything["total"] == 2
    assert everything["jobs"][0]["amount"] == 200
    assert everything["stats"]["assigned"] == 1
    assert everything["stats"]["completed"] == 1
    assert everything["stats"]["total"] == 2

    completed = client.get(
        f"/api/v1/contractors/{contractor_b.id}/jobs", params={"status": "completed"}, headers=contractor_b.headers
    ).json()
    assert [j["id"] for j in completed["jobs"]] == [first["id"]]
    assert completed["stats"]["total"] == 2


def test_contractors_only_see_their_own_jobs(client, admin, contractor_a, contractor_b):
    job = _create_job(client, admin, contractor_b)
    assert client.get(f"/api/v1/contractors/{contractor_b.id}/jobs", headers=contractor_a.headers).status_code == 403
    assert client.get(
        f"/api/v1/contractors/{contractor_a.id}/jobs/{job['id']}", headers=contractor_a.headers
    ).status_code == 404
    assert client.get(f"/api/v1/contractors/{contractor_b.id}/jobs", headers=admin.headers).status_code == 200


def test_contractor_stats(client, admin, contractor_b):
    released = _create_job(client, admin, contractor_b, amount=150)
    held = _create_job(client, admin, contractor_b, amount=80)
    _create_job(client, admin, contractor_b, amount=500)
    _patch(client, contractor_b, released["id"], status="completed")
    client.post(f"/api/v1/contractors/{contractor_b.id}/jobs/{released['id']}/release-payment", headers=admin.headers)
    _patch(client, contractor_b, held["id"], status="completed")

    stats = client.get(f"/api/v1/contractors/{contractor_b.id}/stats", headers=contractor_b.headers).json()
    assert stats == {
        "total_jobs": 3,
        "completed_jobs": 2,
        "total_earnings": 150.0,
        "held_payments": 80.0,
        "this_month_earnings": 150.0,
    }


def test_completing_a_request_job_notifies_the_customer(client, customer, contractor_a, accepted_request):
    jobs = client.get(f"/api/v1/contractors/{contractor_a.id}/jobs", headers=contractor_a.headers).json()["jobs"]
    response = _patch(client, contractor_a, jobs[0]["id"], status="completed")
    assert response.status_code == 200
    latest = notifications_of(client, customer)["notifications"][0]
    assert latest["type"] == "job_completed"
    assert latest["service_request_id"] == accepted_request["id"]
