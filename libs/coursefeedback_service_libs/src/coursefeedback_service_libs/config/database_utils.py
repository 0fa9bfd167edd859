"""Database URL construction shared by all services."""

from __future__ import annotations

import os
from urllib.parse import quote_plus


def build_database_url(
    database_name: str,
    service_env_var_prefix: str,
    is_production: bool,
    dev_port: int = 5432,
    dev_host: str = "localhost",
    url_encode_password: bool = True,
) -> str:
    """
    Build an asyncpg database URL for a service.

    Resolution order:
    1. ``{SERVICE_PREFIX}_DATABASE_URL`` (service-specific override)
    2. ``SERVICE_DATABASE_URL`` (generic override)
    3. Production: ``COURSEFEEDBACK_PROD_DB_{HOST,PORT,PASSWORD}`` with
       ``COURSEFEEDBACK_DB_USER``
    4. Development: ``COURSEFEEDBACK_DB_USER`` / ``COURSEFEEDBACK_DB_PASSWORD``
       against ``dev_host:dev_port``

    Raises:
        ValueError: if the required credentials are missing.
    """
    service_override = os.getenv(f"{service_env_var_prefix}_DATABASE_URL")
    if service_override:
        return service_override

    generic_override = os.getenv("SERVICE_DATABASE_URL")
    if generic_override:
        return generic_override

    db_user = os.getenv("COURSEFEEDBACK_DB_USER")

    if is_production:
        host = os.getenv("COURSEFEEDBACK_PROD_DB_HOST")
        port = os.getenv("COURSEFEEDBACK_PROD_DB_PORT", "5432")
        password = os.getenv("COURSEFEEDBACK_PROD_DB_PASSWORD")
        if not db_user or not password or not host:
            raise ValueError(
                "Production database requires COURSEFEEDBACK_DB_USER, "
                "COURSEFEEDBACK_PROD_DB_HOST and COURSEFEEDBACK_PROD_DB_PASSWORD"
            )
    else:
        host = dev_host
        port = str(dev_port)
        password = os.getenv("COURSEFEEDBACK_DB_PASSWORD")
        if not db_user or not password:
            raise ValueError(
                "Missing required database credentials: "
                "COURSEFEEDBACK_DB_USER and COURSEFEEDBACK_DB_PASSWORD must be set"
            )

    encoded_password = quote_plus(password) if url_encode_password else password
    return f"postgresql+asyncpg://{db_user}:{encoded_password}@{host}:{port}/{database_name}"
