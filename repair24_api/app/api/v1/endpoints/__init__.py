"""
Endpoint subpackage for API v1.

Each module defines an APIRouter for one domain (service requests,
quotes, jobs, notifications, payments, users).  The routers are
aggregated in ``router.py``.
"""
