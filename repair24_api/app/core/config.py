"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables.  Defaults are provided for all fields so that
the API starts in development without any setup; in production the
secrets (``SECRET_KEY``, ``STRIPE_SECRET_KEY``, ``STRIPE_WEBHOOK_SECRET``)
must be overridden.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "Emergency Repair24 API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "false").lower() in {"1", "true", "yes"}
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "")
    secret_key: str = os.getenv("SECRET_KEY", "change_me")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))
    algorithm: str = os.getenv("ALGORITHM", "HS256")

    # Optional static token for super‑administrator API access.  Requests
    # carrying this token are treated as the first super administrator.
    super_admin_static_token: str = os.getenv("SUPER_ADMIN_TOKEN", "")

    # Path to the SQLite database.  Relative paths are resolved against
    # the project root by the ``db`` module.
    database_url: str = os.getenv("DATABASE_URL", "repair24.db")

    # Stripe.  Payment intents are created with manual capture so the
    # funds are only held until the customer confirms completion.
    stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    payment_currency: str = os.getenv("PAYMENT_CURRENCY", "usd")
    payment_min_amount: float = float(os.getenv("PAYMENT_MIN_AMOUNT", "1"))
    payment_max_amount: float = float(os.getenv("PAYMENT_MAX_AMOUNT", "10000"))

    # Front end that Stripe Connect onboarding returns contractors to.
    app_url: str = os.getenv("APP_URL", "http://localhost:3000")

    # Google Maps key used for geocoding and nearby business search.
    # Both features are disabled when the key is empty.
    google_maps_api_key: str = os.getenv("GOOGLE_MAPS_API_KEY", "")

    # Number of notifications kept per user; older ones are pruned.
    notification_retention: int = int(os.getenv("NOTIFICATION_RETENTION", "50"))


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.
settings = Settings()
