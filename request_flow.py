"""Customer request flow state and route guard.

The customer walks through a series of steps (pick services, pick a
location, describe the problem, confirm, find a contractor, pay, track
progress).  :class:`RequestFlowStore` keeps what has been collected so
far and writes it to a JSON file after every change, so an interrupted
session can pick up where it left off.

:func:`guard_route` decides whether a path may be shown with the
current state: pages further down the flow need the data gathered by
the earlier ones and otherwise send the customer back to ``/``.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

from repair24_client import Repair24API


logger = logging.getLogger(__name__)

STEPS = (
    "service",
    "location",
    "details",
    "confirmation",
    "find-contractor",
    "payment",
    "tracking",
    "dashboard",
)
REQUEST_STATUSES = ("idle", "submitting", "success", "error")

# Paths are matched by substring so "/request-service/payment" counts as "/payment".
FREE_ACCESS_ROUTES = ("/dashboard", "/confirmation")
ROUTES_REQUIRING_BASIC_CONTEXT = ("/details",)
ROUTES_REQUIRING_CONTEXT = ("/find-contractor", "/payment", "/tracking")

HOME_ROUTE = "/"


@dataclass
class RequestFlowState:
    """Everything the flow has collected.

    ``location`` is ``{"lat": ..., "lng": ...}``; ``selected_services``
    holds service type ids such as ``"plumbing"``.
    """

    request_id: Optional[int] = None
    selected_services: List[str] = field(default_factory=list)
    location: Optional[Dict[str, float]] = None
    formatted_address: str = ""
    form_data: Dict[str, Any] = field(default_factory=dict)
    request_status: str = "idle"
    selected_contractor: Optional[Dict[str, Any]] = None
    current_step: str = "service"
    user_email: Optional[str] = None
    user_token: Optional[str] = None
    user_name: Optional[str] = None
    is_authenticated: bool = False


_REQUEST_FIELDS = {
    "request_id": None,
    "selected_services": list,
    "location": None,
    "formatted_address": "",
    "form_data": dict,
    "request_status": "idle",
    "selected_contractor": None,
    "current_step": "service",
}


class RequestFlowStore:
    """Persistent holder of a :class:`RequestFlowState`.

    Args:
        path: JSON file the state is saved to.  ``None`` keeps the
            state in memory only.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self.state = self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def _load(self) -> RequestFlowState:
        if not self.path or not os.path.exists(self.path):
            return RequestFlowState()
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read request flow state from %s: %s", self.path, exc)
            return RequestFlowState()
        known = {f.name for f in fields(RequestFlowState)}
        return RequestFlowState(**{k: v for k, v in raw.items() if k in known})

    def _save(self) -> None:
        if not self.path:
            return
        with open(self.path, "w", encoding="utf-8") as fh:
            json.dump(asdict(self.state), fh, indent=2)

    def _set(self, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(self.state, name, value)
        self._save()

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------
    def set_request_id(self, request_id: Optional[int]) -> None:
        self._set(request_id=request_id)

    def set_selected_services(self, services: List[Any]) -> None:
        """Accept ids or ``{"id": ...}`` dictionaries."""
        ids = [s["id"] if isinstance(s, dict) else s for s in services]
        self._set(selected_services=ids)

    def set_location(self, location: Optional[Dict[str, float]]) -> None:
        self._set(location=location)

    def set_formatted_address(self, address: str) -> None:
        self._set(formatted_address=address)

    def update_form_data(self, data: Dict[str, Any]) -> None:
        self._set(form_data={**self.state.form_data, **data})

    def set_request_status(self, status: str) -> None:
        if status not in REQUEST_STATUSES:
            raise ValueError(f"Unknown request status: {status}")
        self._set(request_status=status)

    def set_selected_contractor(self, contractor: Optional[Dict[str, Any]]) -> None:
        self._set(selected_contractor=contractor)

    def go_to_step(self, step: str) -> None:
        """Jump to any step; the flow does not restrict the order."""
        if step not in STEPS:
            raise ValueError(f"Unknown step: {step}")
        self._set(current_step=step)

    # ------------------------------------------------------------------
    # Compound actions
    # ------------------------------------------------------------------
    def reset_context(self) -> None:
        """Forget the request in progress; authentication is kept."""
        self._set(**{name: default() if callable(default) else default for name, default in _REQUEST_FIELDS.items()})

    def reset_service_and_location(self) -> None:
        self._set(selected_services=[], location=None, formatted_address="")

    def login(self, email: str, token: str, name: Optional[str] = None) -> None:
        """Record a login without losing the request being filled in."""
        self._set(user_email=email, user_token=token, user_name=name, is_authenticated=True)

    def logout(self) -> None:
        self.reset_context()
        self._set(user_email=None, user_token=None, user_name=None, is_authenticated=False)

    def has_essential_data(self, require_request_id: Optional[bool] = None) -> bool:
        """Whether enough has been collected for the current step.

        Services and a location are always needed.  A request id is
        needed too, except on the ``details`` step where the request is
        still being written.  ``require_request_id`` overrides the step.
        """
        if require_request_id is None:
            require_request_id = self.state.current_step != "details"
        has_basics = bool(self.state.selected_services) and self.state.location is not None
        if not require_request_id:
            return has_basics
        return has_basics and self.state.request_id is not None

    def submit_service_request(self, client: Repair24API, form_data: Dict[str, Any]) -> bool:
        """Send the collected request to the API.

        ``form_data`` may contain ``first_name``, ``last_name``,
        ``email``, ``phone``, ``description`` and ``urgency``.  Returns
        ``True`` and stores the new request id on success; on failure
        the request status becomes ``error`` and ``False`` is returned.
        """
        state = self.state
        if not state.selected_services or state.location is None or not state.formatted_address:
            logger.error("Missing required data for submitting service request")
            return False
        self.update_form_data(form_data)
        self.set_request_status("submitting")
        data = self.state.form_data
        full_name = f"{data.get('first_name', '')} {data.get('last_name', '')}".strip()
        payload = {
            "service_types": list(state.selected_services),
            "description": data.get("description") or "",
            "urgency_level": data.get("urgency") or "emergency",
            "location": {
                "formatted_address": state.formatted_address,
                "coordinates": {"lat": state.location["lat"], "lng": state.location["lng"]},
            },
            "customer": {
                "full_name": full_name or state.user_name or "Customer",
                "email": state.user_email or data.get("email") or "",
                "phone": data.get("phone") or "",
                "preferred_contact": "email",
            },
        }
        if client.token is None and state.user_token:
            client.token = state.user_token
        result, error = client.create_service_request(payload)
        if error:
            logger.error("Service request submission failed: %s", error.get("message"))
            self.set_request_status("error")
            return False
        self._set(request_id=result.get("id"), request_status="success")
        logger.info("Service request %s submitted", result.get("request_code"))
        return True


def guard_route(path: str, store: RequestFlowStore) -> Optional[str]:
    """Return the redirect target for ``path``, or ``None`` to allow it.

    Free routes always pass, ``/details`` needs services and a location
    and the later steps additionally need a submitted request.
    """
    if any(route in path for route in FREE_ACCESS_ROUTES):
        return None
    if any(route in path for route in ROUTES_REQUIRING_BASIC_CONTEXT):
        return None if store.has_essential_data(require_request_id=False) else HOME_ROUTE
    if any(route in path for route in ROUTES_REQUIRING_CONTEXT):
        return None if store.has_essential_data(require_request_id=True) else HOME_ROUTE
    return None
