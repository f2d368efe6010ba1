"""Emergency Repair24 API client.

A thin wrapper around the Repair24 REST API built on ``requests``.
Every operation returns a tuple ``(data, error)``: on success ``data``
holds the decoded JSON and ``error`` is ``None``; on failure ``data`` is
``None`` (or an empty list for collection calls) and ``error`` is a
dictionary with ``status_code`` and ``message``.  The message is the
API's ``detail`` field, so a refused card capture surfaces Stripe's own
explanation.

Browsers poll the API for new notifications and quotes every 30
seconds; :meth:`Repair24API.poll_notifications` and
:meth:`Repair24API.poll_quotes` do the same for scripts and bots, with
exponential backoff while the API is unreachable.

Example::

    api = Repair24API("http://localhost:8000/api/v1")
    api.login("jane@example.com", "secret123")
    request, error = api.create_service_request({...})
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import requests


logger = logging.getLogger(__name__)

Result = Tuple[Optional[Any], Optional[Dict[str, Any]]]

DEFAULT_POLL_INTERVAL = 30.0
MAX_BACKOFF = 60.0


class Repair24API:
    """Client for the Repair24 REST API.

    Args:
        base_url: API root including the version prefix, e.g.
            ``http://localhost:8000/api/v1``.
        token: Bearer token.  Set automatically by :meth:`login`.
        session: Optional ``requests.Session`` to reuse (handy in tests).
        timeout: Per‑request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 15,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.retry_attempts = 0

    # ------------------------------------------------------------------
    # HTTP helper
    # ------------------------------------------------------------------
    def _request(
        self, method: str, path: str, *, params: Dict[str, Any] | None = None,
        json_body: Any | None = None
    ) -> Result:
        """Perform an HTTP request to the API.

        Args:
            method: HTTP method (``GET``, ``POST``, ``PATCH``, ``DELETE``).
            path: Path relative to :attr:`base_url` (e.g. ``/quotes/``).
            params: Query parameters.
            json_body: JSON body for POST/PATCH.
        Returns:
            A tuple ``(data, error)`` as described in the module docstring.
        """
        url = f"{self.base_url}{path}"
        headers: Dict[str, str] = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            logger.debug("Sending %s request to %s", method, url)
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            if response.content:
                return response.json(), None
            return None, None
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            message = ""
            if exc.response is not None:
                try:
                    err_json = exc.response.json()
                    message = err_json.get("detail") or err_json.get("message") or str(err_json)
                except ValueError:
                    message = exc.response.text
            if not message:
                message = str(exc)
            logger.error("API request failed (%s): %s", status, message)
            return None, {"status_code": status, "message": message}
        except requests.RequestException as exc:
            logger.error("API request failed: %s", exc)
            return None, {"status_code": None, "message": str(exc)}

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def register_user(
        self, email: str, password: str, full_name: Optional[str] = None, role: str = "client", **profile: Any
    ) -> Result:
        """Register a client or contractor.

        ``profile`` may carry ``phone``, ``services_offered``, ``address``,
        ``latitude`` and ``longitude``.
        """
        body = {"email": email, "password": password, "full_name": full_name, "role": role, **profile}
        return self._request("POST", "/users/", json_body=body)

    def login(self, email: str, password: str) -> Result:
        """Obtain a token and keep it for later calls."""
        data, error = self._request("POST", "/users/login", json_body={"email": email, "password": password})
        if data:
            self.token = data.get("access_token")
        return data, error

    def logout(self) -> None:
        self.token = None

    def me(self) -> Result:
        return self._request("GET", "/users/me")

    # ------------------------------------------------------------------
    # Service requests and quotes
    # ------------------------------------------------------------------
    def create_service_request(self, payload: Dict[str, Any]) -> Result:
        return self._request("POST", "/service-requests/", json_body=payload)

    def get_service_request(self, request_id: int) -> Result:
        return self._request("GET", f"/service-requests/{request_id}")

    def list_service_requests(self, status: Optional[str] = None) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        params = {"status": status} if status else None
        data, error = self._request("GET", "/service-requests/", params=params)
        return data or [], error

    def update_request_status(self, request_id: int, status: str) -> Result:
        return self._request("PATCH", f"/service-requests/{request_id}/status", json_body={"status": status})

    def list_quotes(self, request_id: int) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        data, error = self._request("GET", f"/service-requests/{request_id}/quotes")
        return data or [], error

    def submit_quote(
        self, request_id: int, amount: float, description: str, contractor_id: Optional[int] = None, **extra: Any
    ) -> Result:
        """Quote on a request.  ``extra`` may hold ``estimated_duration``, ``warranty``, ``materials``."""
        body = {"request_id": request_id, "amount": amount, "description": description, **extra}
        if contractor_id is not None:
            body["contractor_id"] = contractor_id
        return self._request("POST", "/quotes/", json_body=body)

    def update_quote_status(
        self, request_id: int, quote_index: int, status: str, expected_version: Optional[int] = None
    ) -> Result:
        body: Dict[str, Any] = {"request_id": request_id, "quote_index": quote_index, "status": status}
        if expected_version is not None:
            body["expected_version"] = expected_version
        return self._request("PATCH", "/quotes/", json_body=body)

    def accept_quote(self, request_id: int, quote_index: int, expected_version: Optional[int] = None) -> Result:
        return self.update_quote_status(request_id, quote_index, "accepted", expected_version)

    def reject_quote(self, request_id: int, quote_index: int, expected_version: Optional[int] = None) -> Result:
        return self.update_quote_status(request_id, quote_index, "rejected", expected_version)

    # ------------------------------------------------------------------
    # Contractors and jobs
    # ------------------------------------------------------------------
    def search_contractors(
        self, services: Iterable[str], lat: float, lng: float, radius_km: Optional[float] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        params: Dict[str, Any] = {"services": list(services), "lat": lat, "lng": lng}
        if radius_km is not None:
            params["radius_km"] = radius_km
        data, error = self._request("GET", "/contractors/search", params=params)
        return data or [], error

    def list_jobs(self, contractor_id: int, status: Optional[str] = None) -> Result:
        params = {"status": status} if status else None
        return self._request("GET", f"/contractors/{contractor_id}/jobs", params=params)

    def create_job(self, contractor_id: int, job: Dict[str, Any]) -> Result:
        return self._request("POST", f"/contractors/{contractor_id}/jobs", json_body=job)

    def update_job(
        self, contractor_id: int, job_id: str, status: Optional[str] = None, notes: Optional[str] = None
    ) -> Result:
        body = {k: v for k, v in {"status": status, "notes": notes}.items() if v is not None}
        return self._request("PATCH", f"/contractors/{contractor_id}/jobs/{job_id}", json_body=body)

    def release_payment(self, contractor_id: int, job_id: str) -> Result:
        return self._request("POST", f"/contractors/{contractor_id}/jobs/{job_id}/release-payment")

    def contractor_stats(self, contractor_id: int) -> Result:
        return self._request("GET", f"/contractors/{contractor_id}/stats")

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def list_notifications(self, unread_only: bool = False, limit: int = 20, page: int = 1) -> Result:
        params = {"unread_only": str(unread_only).lower(), "limit": limit, "page": page}
        return self._request("GET", "/notifications/", params=params)

    def mark_notification_read(self, notification_id: str, read: bool = True) -> Result:
        return self._request("PATCH", f"/notifications/{notification_id}", json_body={"read": read})

    def mark_all_notifications_read(self) -> Result:
        return self._request("POST", "/notifications/mark-all-read")

    def delete_notification(self, notification_id: str) -> Result:
        return self._request("DELETE", f"/notifications/{notification_id}")

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------
    def create_payment_intent(self, service_request_id: int, amount: float, **extra: Any) -> Result:
        body = {"service_request_id": service_request_id, "amount": amount, **extra}
        return self._request("POST", "/payments/create-intent", json_body=body)

    def capture_payment(self, service_request_id: int, payment_intent_id: str) -> Result:
        body = {"service_request_id": service_request_id, "payment_intent_id": payment_intent_id}
        return self._request("POST", "/payments/capture", json_body=body)

    def sync_payment(self, service_request_id: int) -> Result:
        return self._request("POST", f"/payments/{service_request_id}/sync")

    def connect_stripe_account(self, contractor_id: int) -> Result:
        """Start or resume Stripe onboarding; open ``account_link_url`` in a browser."""
        return self._request("POST", f"/contractors/{contractor_id}/stripe/connect")

    def stripe_account_status(self, contractor_id: int) -> Result:
        return self._request("GET", f"/contractors/{contractor_id}/stripe/status")

    def stripe_login_link(self, contractor_id: int) -> Result:
        return self._request("POST", f"/contractors/{contractor_id}/stripe/login-link")

    def health(self) -> Result:
        return self._request("GET", "/health")

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    def _backoff_delay(self) -> float:
        """Exponentially increasing delay with jitter, capped at a minute."""
        self.retry_attempts += 1
        return min(2 ** (self.retry_attempts - 1), MAX_BACKOFF) + random.random()

    def _poll(
        self,
        fetch: Callable[[], Result],
        handle: Callable[[Any], None],
        interval: float,
        max_polls: Optional[int],
        sleep: Callable[[float], None],
    ) -> None:
        polls = 0
        while max_polls is None or polls < max_polls:
            polls += 1
            data, error = fetch()
            if error:
                delay = self._backoff_delay()
                logger.warning("Poll failure #%d, sleeping %.1fs before retry", self.retry_attempts, delay)
            else:
                self.retry_attempts = 0
                handle(data)
                delay = interval
            if max_polls is None or polls < max_polls:
                sleep(delay)

    def poll_notifications(
        self,
        on_new: Callable[[List[Dict[str, Any]]], None],
        interval: float = DEFAULT_POLL_INTERVAL,
        max_polls: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Call ``on_new`` with notifications not seen in earlier polls.

        The first poll reports every unread notification.  Runs forever
        unless ``max_polls`` is given.
        """
        seen: set = set()

        def handle(data: Any) -> None:
            fresh = [n for n in (data or {}).get("notifications", []) if n["id"] not in seen]
            seen.update(n["id"] for n in fresh)
            if fresh:
                on_new(fresh)

        self._poll(lambda: self.list_notifications(unread_only=True), handle, interval, max_polls, sleep)

    def poll_quotes(
        self,
        request_id: int,
        on_change: Callable[[List[Dict[str, Any]]], None],
        interval: float = DEFAULT_POLL_INTERVAL,
        max_polls: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Call ``on_change`` with quotes that are new or changed status."""
        known: Dict[int, str] = {}

        def handle(data: Any) -> None:
            changed = [q for q in data or [] if known.get(q["index"]) != q["status"]]
            known.update((q["index"], q["status"]) for q in changed)
            if changed:
                on_change(changed)

        self._poll(lambda: self.list_quotes(request_id), handle, interval, max_polls, sleep)
