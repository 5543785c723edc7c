"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables.  Defaults are provided for every field except
the administrator seeding credentials, whose absence disables seeding.
In a production deployment override these via environment variables or
the hosting platform's secret store.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "Enigma Backend API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    # ``production`` hides error details and restricts CORS origins.
    environment: str = os.getenv("ENVIRONMENT", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    secret_key: str = os.getenv("SECRET_KEY", "change_me")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))

    # Path to the SQLite database.  Relative paths are resolved against the
    # project root by the ``db`` module.  An empty value is reported as a
    # dependency failure on the first request rather than at import time.
    database_url: str = os.getenv("DATABASE_URL", "enigma.db")

    # Upper bound for the lazy datastore bootstrap.  Requests that wait
    # longer receive a 503 instead of queueing indefinitely.
    bootstrap_timeout_seconds: float = float(os.getenv("BOOTSTRAP_TIMEOUT_SECONDS", "10"))

    # Administrator seeded on the first request of every process.  Email and
    # password must both be set for seeding to run.
    default_admin_email: str = os.getenv("DEFAULT_ADMIN_EMAIL", "")
    default_admin_password: str = os.getenv("DEFAULT_ADMIN_PASSWORD", "")
    default_admin_name: str = os.getenv("DEFAULT_ADMIN_NAME", "")

    # Origin of the web frontend; only consulted in production.
    frontend_url: str = os.getenv("FRONTEND_URL", "")

    # Per-address budgets in ``limits`` notation.  The auth tier covers
    # login and registration.
    rate_limit_basic: str = os.getenv("RATE_LIMIT_BASIC", "100 per 15 minutes")
    rate_limit_auth: str = os.getenv("RATE_LIMIT_AUTH", "5 per 15 minutes")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Because the dataclass
# computes defaults when the class body runs, environment variables
# should be set before importing this module.
settings = Settings()
