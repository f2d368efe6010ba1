"""
Service layer.

Each service encapsulates the business rules of one domain and talks
to SQLite through ``core.db``.  Endpoints only translate HTTP to
service calls and service errors to HTTP status codes.
"""
