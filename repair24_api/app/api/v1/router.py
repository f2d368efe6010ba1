"""
Top‑level router for version 1 of the API.

This router aggregates the domain routers (service requests, quotes,
jobs, notifications, payments, users) under a unified prefix.  When a
new domain is introduced, include its router here.
"""

from fastapi import APIRouter

from .endpoints import (
    audit,
    contractors,
    info,
    jobs,
    notifications,
    payments,
    quotes,
    service_requests,
    stripe_accounts,
    users,
)

router = APIRouter()

router.include_router(service_requests.router, prefix="/service-requests", tags=["service-requests"])
router.include_router(quotes.router, prefix="/quotes", tags=["quotes"])
# Contractor search, jobs and Stripe accounts share the /contractors prefix
router.include_router(contractors.router, prefix="/contractors", tags=["contractors"])
router.include_router(jobs.router, prefix="/contractors", tags=["jobs"])
router.include_router(stripe_accounts.router, prefix="/contractors", tags=["stripe-connect"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
router.include_router(payments.router, prefix="/payments", tags=["payments"])
router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(audit.router, prefix="/audit", tags=["audit"])
# The health check lives at the API root: /api/v1/health
router.include_router(info.router, tags=["info"])
