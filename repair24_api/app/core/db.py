"""
SQLite database integration and simple migration system.

This module provides functions for obtaining a database connection
(``get_connection``), applying migrations on application start
(``init_db``) and a cursor context manager.  Applied migration versions
are stored in the ``migrations`` table and new migrations are executed
in order.
"""

import os
import secrets
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from .config import settings


ROLE_SUPER_ADMIN = 1
ROLE_ADMIN = 2
ROLE_CLIENT = 3
ROLE_CONTRACTOR = 4

ADMIN_ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN)


def utcnow_iso() -> str:
    """Current UTC time as an ISO string, the format timestamps are stored in."""
    return datetime.utcnow().isoformat()


def generate_id(prefix: str) -> str:
    """Build a text primary key such as ``job-1718000000000-k3j9x2m1q``."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


def get_database_path() -> str:
    """Compute the path to the SQLite database file.

    If ``settings.database_url`` is an absolute path, use it directly.
    Otherwise resolve it relative to the package root.
    """
    db_url = settings.database_url
    if os.path.isabs(db_url):
        return db_url
    base_dir = Path(__file__).resolve().parent.parent.parent  # repair24_api/
    return str((base_dir / db_url).resolve())


def get_connection() -> sqlite3.Connection:
    """Create and return a new SQLite connection.

    Rows are returned as ``sqlite3.Row`` so columns can be accessed by
    name.  Timestamps are stored as ISO strings and parsed by the
    pydantic schemas, not by SQLite converters.
    """
    conn = sqlite3.connect(get_database_path(), timeout=10)
    conn.row_factory = sqlite3.Row
    # Foreign keys are off by default in SQLite and must be enabled per
    # connection.
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_cursor() -> Iterator[sqlite3.Cursor]:
    """Context manager that yields a cursor, commits and closes the connection."""
    conn = get_connection()
    try:
        yield conn.cursor()
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: users, service requests and their quotes
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS roles (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL UNIQUE
        );

        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL UNIQUE,
            full_name TEXT,
            phone TEXT,
            password TEXT,
            role_id INTEGER NOT NULL,
            services_offered TEXT,
            address TEXT,
            latitude REAL,
            longitude REAL,
            disabled INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(role_id) REFERENCES roles(id)
        );

        CREATE TABLE IF NOT EXISTS service_requests (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            request_code TEXT NOT NULL,
            title TEXT NOT NULL,
            service_types TEXT NOT NULL,
            description TEXT NOT NULL,
            urgency_level TEXT NOT NULL DEFAULT 'medium',
            status TEXT NOT NULL DEFAULT 'pending',
            formatted_address TEXT NOT NULL,
            latitude REAL NOT NULL,
            longitude REAL NOT NULL,
            city TEXT,
            state TEXT,
            zip_code TEXT,
            customer_id INTEGER,
            customer_name TEXT NOT NULL,
            customer_email TEXT NOT NULL,
            customer_phone TEXT NOT NULL,
            preferred_contact TEXT NOT NULL DEFAULT 'phone',
            preferred_datetime TIMESTAMP,
            assigned_contractor_id INTEGER,
            payment_status TEXT NOT NULL DEFAULT 'not_initiated',
            payment_intent_id TEXT,
            version INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(customer_id) REFERENCES users(id) ON DELETE SET NULL,
            FOREIGN KEY(assigned_contractor_id) REFERENCES users(id) ON DELETE SET NULL
        );

        CREATE TABLE IF NOT EXISTS quotes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            request_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            contractor_id INTEGER NOT NULL,
            amount REAL NOT NULL,
            description TEXT NOT NULL,
            estimated_duration TEXT,
            warranty TEXT,
            materials TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(request_id) REFERENCES service_requests(id) ON DELETE CASCADE,
            FOREIGN KEY(contractor_id) REFERENCES users(id) ON DELETE CASCADE
        );

        -- One quote per contractor per request, even under concurrent submissions
        CREATE UNIQUE INDEX IF NOT EXISTS idx_quotes_request_contractor ON quotes(request_id, contractor_id);
        CREATE INDEX IF NOT EXISTS idx_service_requests_customer ON service_requests(customer_id);
        CREATE INDEX IF NOT EXISTS idx_service_requests_status ON service_requests(status);
        """,
    ),
    # Migration 2: contractor jobs, notifications and audit trail
    (
        2,
        """
        CREATE TABLE IF NOT EXISTS contractor_jobs (
            id TEXT PRIMARY KEY,
            contractor_id INTEGER NOT NULL,
            service_request_id INTEGER,
            client_name TEXT NOT NULL,
            client_phone TEXT,
            client_email TEXT,
            service TEXT NOT NULL,
            description TEXT,
            address TEXT NOT NULL,
            amount REAL NOT NULL,
            status TEXT NOT NULL DEFAULT 'assigned',
            payment_status TEXT NOT NULL DEFAULT 'pending',
            notes TEXT,
            created_at TIMESTAMP NOT NULL,
            accepted_at TIMESTAMP,
            started_at TIMESTAMP,
            completed_at TIMESTAMP,
            scheduled_at TIMESTAMP,
            FOREIGN KEY(contractor_id) REFERENCES users(id) ON DELETE CASCADE,
            FOREIGN KEY(service_request_id) REFERENCES service_requests(id) ON DELETE SET NULL
        );

        CREATE TABLE IF NOT EXISTS notifications (
            id TEXT PRIMARY KEY,
            user_id INTEGER NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            priority TEXT NOT NULL DEFAULT 'normal',
            channels TEXT NOT NULL,
            sent_channels TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            read INTEGER NOT NULL DEFAULT 0,
            data TEXT,
            service_request_id INTEGER,
            amount REAL,
            action_url TEXT,
            action_label TEXT,
            expires_at TIMESTAMP,
            created_at TIMESTAMP NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS audit_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER,
            action TEXT NOT NULL,
            object_type TEXT,
            object_id TEXT,
            timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            details TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_contractor_jobs_contractor ON contractor_jobs(contractor_id);
        CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id);
        """,
    ),
    # Migration 3: Stripe Connect account of a contractor
    (
        3,
        """
        ALTER TABLE users ADD COLUMN stripe_account_id TEXT;
        """,
    ),
]


def init_db() -> None:
    """Initialise the database and apply pending migrations.

    Creates the ``migrations`` table if it does not exist, checks the
    current schema version and applies any newer entries of
    ``MIGRATIONS``.  Default roles are inserted on every start.
    """
    with get_cursor() as cursor:
        cursor.execute(
            "CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)"
        )
        cursor.execute("SELECT MAX(version) as version FROM migrations")
        row = cursor.fetchone()
        current_version = row["version"] if row and row["version"] is not None else 0

        for version, sql in MIGRATIONS:
            if version > current_version:
                cursor.executescript(sql)
                cursor.execute(
                    "INSERT INTO migrations (version) VALUES (?)", (version,)
                )
                current_version = version

        for role_id, name in (
            (ROLE_SUPER_ADMIN, "superadmin"),
            (ROLE_ADMIN, "admin"),
            (ROLE_CLIENT, "client"),
            (ROLE_CONTRACTOR, "contractor"),
        ):
            cursor.execute(
                "INSERT OR IGNORE INTO roles (id, name) VALUES (?, ?)", (role_id, name)
            )
