"""
Application package initializer.

The marketplace backend is organised by domain: service requests,
quotes, contractor jobs, notifications, payments and users.  Each
domain has a service class in ``services`` holding the business rules
and a router in ``api/v1/endpoints`` exposing them over HTTP.
"""

from .main import app  # noqa: F401
