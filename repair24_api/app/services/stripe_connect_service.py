"""
Stripe Connect onboarding for contractors.

Each contractor gets a Stripe Express account so released payouts can
be transferred to them.  The account id is stored on the user row;
onboarding and dashboard access go through short‑lived links that
Stripe hosts.
"""

import json
import logging
import sqlite3
from typing import Any

import stripe

from ..core.config import settings
from ..core.db import ROLE_CONTRACTOR, get_connection, utcnow_iso
from ..core.errors import NotFoundError, PaymentProviderError
from ..schemas.payment import ConnectAccountLink, ConnectAccountStatus, ConnectLoginLink
from .audit_service import AuditService
from .payment_service import PaymentService, provider_field


logger = logging.getLogger(__name__)


def _load_contractor(conn: sqlite3.Connection, contractor_id: int) -> sqlite3.Row:
    row = conn.execute(
        "SELECT id, email, full_name, phone, role_id, services_offered, stripe_account_id FROM users WHERE id = ?",
        (contractor_id,),
    ).fetchone()
    if not row or row["role_id"] != ROLE_CONTRACTOR:
        raise NotFoundError(f"Contractor {contractor_id} not found")
    return row


class StripeConnectService:
    """Create Express accounts and the links contractors use to manage them."""

    @classmethod
    def _create_account(cls, contractor: sqlite3.Row) -> Any:
        PaymentService._configure()
        name = contractor["full_name"] or contractor["email"]
        services = ", ".join(json.loads(contractor["services_offered"])) if contractor["services_offered"] else ""
        return stripe.Account.create(
            type="express",
            country="US",
            email=contractor["email"],
            capabilities={"card_payments": {"requested": True}, "transfers": {"requested": True}},
            business_type="individual",
            business_profile={
                "name": name,
                "product_description": f"Professional services: {services or 'general repairs'}",
                "support_email": contractor["email"],
                "support_phone": contractor["phone"],
            },
            settings={"payouts": {"schedule": {"interval": "weekly", "weekly_anchor": "friday"}}},
            metadata={"contractor_id": str(contractor["id"])},
        )

    @classmethod
    def _create_account_link(cls, account_id: str) -> Any:
        PaymentService._configure()
        profile_url = f"{settings.app_url.rstrip('/')}/contractor/dashboard/profile"
        return stripe.AccountLink.create(
            account=account_id,
            refresh_url=f"{profile_url}?stripe_refresh=true",
            return_url=f"{profile_url}?stripe_success=true",
            type="account_onboarding",
        )

    @classmethod
    def _retrieve_account(cls, account_id: str) -> Any:
        PaymentService._configure()
        return stripe.Account.retrieve(account_id)

    @classmethod
    def _create_login_link(cls, account_id: str) -> Any:
        PaymentService._configure()
        return stripe.Account.create_login_link(account_id)

    @classmethod
    def _account_id(cls, contractor_id: int) -> str:
        conn = get_connection()
        try:
            contractor = _load_contractor(conn, contractor_id)
        finally:
            conn.close()
        if not contractor["stripe_account_id"]:
            raise ValueError("Contractor has not connected a Stripe account")
        return contractor["stripe_account_id"]

    @classmethod
    async def connect_account(cls, contractor_id: int) -> ConnectAccountLink:
        """Return an onboarding link, creating the Express account on first use.

        A contractor who already has an account gets a fresh link for
        it; no second account is created.
        """
        conn = get_connection()
        try:
            contractor = _load_contractor(conn, contractor_id)
            account_id = contractor["stripe_account_id"]
            try:
                if not account_id:
                    account_id = cls._create_account(contractor)["id"]
                    conn.execute(
                        "UPDATE users SET stripe_account_id = ?, updated_at = ? WHERE id = ?",
                        (account_id, utcnow_iso(), contractor_id),
                    )
                    conn.commit()
                    logger.info("Stripe account %s created for contractor %s", account_id, contractor_id)
                    await AuditService.record(
                        contractor_id, "connect_account", "user", contractor_id, {"stripe_account_id": account_id}
                    )
                link = cls._create_account_link(account_id)
            except stripe.StripeError as e:
                message = PaymentService._provider_message(e)
                logger.error("Stripe onboarding for contractor %s failed: %s", contractor_id, message)
                raise PaymentProviderError(message) from e
        finally:
            conn.close()
        return ConnectAccountLink(account_id=account_id, account_link_url=link["url"])

    @classmethod
    async def account_status(cls, contractor_id: int) -> ConnectAccountStatus:
        """Verification and payout state of the contractor's account."""
        account_id = cls._account_id(contractor_id)
        try:
            account = cls._retrieve_account(account_id)
        except stripe.StripeError as e:
            message = PaymentService._provider_message(e)
            logger.error("Retrieving Stripe account %s failed: %s", account_id, message)
            raise PaymentProviderError(message) from e
        requirements = provider_field(account, "requirements", {})
        return ConnectAccountStatus(
            account_id=account["id"],
            charges_enabled=provider_field(account, "charges_enabled", False),
            payouts_enabled=provider_field(account, "payouts_enabled", False),
            details_submitted=provider_field(account, "details_submitted", False),
            currently_due=list(provider_field(requirements, "currently_due", [])),
            eventually_due=list(provider_field(requirements, "eventually_due", [])),
            past_due=list(provider_field(requirements, "past_due", [])),
            pending_verification=list(provider_field(requirements, "pending_verification", [])),
            disabled_reason=provider_field(requirements, "disabled_reason"),
            country=provider_field(account, "country"),
            default_currency=provider_field(account, "default_currency"),
        )

    @classmethod
    async def login_link(cls, contractor_id: int) -> ConnectLoginLink:
        """Single‑use link to the contractor's Stripe Express dashboard."""
        account_id = cls._account_id(contractor_id)
        try:
            link = cls._create_login_link(account_id)
        except stripe.StripeError as e:
            message = PaymentService._provider_message(e)
            logger.error("Creating login link for %s failed: %s", account_id, message)
            raise PaymentProviderError(message) from e
        return ConnectLoginLink(url=link["url"])
