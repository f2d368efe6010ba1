"""Customer request flow store and route guard."""
import json

import pytest

from request_flow import HOME_ROUTE, RequestFlowStore, guard_route


SPRINGFIELD = {"lat": 39.7817, "lng": -89.6501}


class FakeClient:
    def __init__(self, result=None, error=None):
        self.token = None
        self.result = result if result is not None else {"id": 7, "request_code": "REQ-00007"}
        self.error = error
        self.payloads = []

    def create_service_request(self, payload):
        self.payloads.append(payload)
        if self.error:
            return None, self.error
        return self.result, None


@pytest.fixture
def store(tmp_path):
    return RequestFlowStore(str(tmp_path / "flow.json"))


def _fill_basics(store):
    store.set_selected_services([{"id": "plumbing", "name": "Plumbing"}])
    store.set_location(SPRINGFIELD)
    store.set_formatted_address("12 Main St, Springfield, IL 62701, USA")


def test_defaults(store):
    assert store.state.current_step == "service"
    assert store.state.request_status == "idle"
    assert store.state.selected_services == []
    assert store.has_essential_data() is False


def test_state_survives_a_restart(store, tmp_path):
    _fill_basics(store)
    store.go_to_step("details")
    reloaded = RequestFlowStore(str(tmp_path / "flow.json"))
    assert reloaded.state.selected_services == ["plumbing"]
    assert reloaded.state.location == SPRINGFIELD
    assert reloaded.state.current_step == "details"


def test_corrupt_state_file_starts_fresh(tmp_path):
    path = tmp_path / "flow.json"
    path.write_text("{not json")
    assert RequestFlowStore(str(path)).state.current_step == "service"


def test_unknown_step_or_status(store):
    with pytest.raises(ValueError):
        store.go_to_step("checkout")
    with pytest.raises(ValueError):
        store.set_request_status("done")


def test_essential_data_depends_on_step(store):
    _fill_basics(store)
    store.go_to_step("details")
    assert store.has_essential_data() is True
    store.go_to_step("payment")
    assert store.has_essential_data() is False
    store.set_request_id(7)
    assert store.has_essential_data() is True


@pytest.mark.parametrize("path", ["/request-service/dashboard", "/confirmation", "/dashboard/7"])
def test_free_routes_always_pass(store, path):
    assert guard_route(path, store) is None


def test_details_needs_services_and_location(store):
    assert guard_route("/request-service/details", store) == HOME_ROUTE
    _fill_basics(store)
    assert guard_route("/request-service/details", store) is None


@pytest.mark.parametrize("path", ["/request-service/find-contractor", "/request-service/payment", "/tracking"])
def test_later_steps_need_a_request_id(store, path):
    _fill_basics(store)
    assert guard_route(path, store) == HOME_ROUTE
    store.set_request_id(7)
    assert guard_route(path, store) is None


def test_unguarded_routes_pass(store):
    assert guard_route("/about", store) is None


def test_login_keeps_request_data_and_logout_clears_it(store):
    _fill_basics(store)
    store.set_request_id(7)
    store.login("jane@example.com", "tok", "Jane")
    assert store.state.is_authenticated is True
    assert store.state.request_id == 7

    store.logout()
    assert store.state.is_authenticated is False
    assert store.state.user_token is None
    assert store.state.request_id is None
    assert store.state.selected_services == []
    assert store.state.current_step == "service"


def test_reset_service_and_location_keeps_the_rest(store):
    _fill_basics(store)
    store.update_form_data({"phone": "+1 555 0100"})
    store.reset_service_and_location()
    assert store.state.selected_services == []
    assert store.state.location is None
    assert store.state.formatted_address == ""
    assert store.state.form_data == {"phone": "+1 555 0100"}


def test_submit_requires_services_location_and_address(store):
    client = FakeClient()
    assert store.submit_service_request(client, {}) is False
    assert client.payloads == []
    assert store.state.request_status == "idle"


def test_submit_builds_payload_and_stores_request_id(store, tmp_path):
    _fill_basics(store)
    store.login("jane@example.com", "tok", "Jane")
    client = FakeClient()
    form = {"first_name": "Jane", "last_name": "Doe", "email": "other@example.com", "phone": "+1 555 0100", "description": "Leak"}
    assert store.submit_service_request(client, form) is True

    [payload] = client.payloads
    assert payload["service_types"] == ["plumbing"]
    assert payload["urgency_level"] == "emergency"
    assert payload["location"]["coordinates"] == SPRINGFIELD
    assert payload["customer"] == {
        "full_name": "Jane Doe",
        "email": "jane@example.com",
        "phone": "+1 555 0100",
        "preferred_contact": "email",
    }
    assert client.token == "tok"
    assert store.state.request_id == 7
    assert store.state.request_status == "success"
    saved = json.loads((tmp_path / "flow.json").read_text())
    assert saved["request_id"] == 7


def test_failed_submit_sets_error(store):
    _fill_basics(store)
    client = FakeClient(error={"status_code": 422, "message": "invalid"})
    assert store.submit_service_request(client, {"first_name": "Jane"}) is False
    assert store.state.request_status == "error"
    assert store.state.request_id is None
