from __future__ import annotations

import os

from coursefeedback_service_libs.config import SecureServiceSettings
from dotenv import find_dotenv, load_dotenv
from pydantic import Field
from pydantic_settings import SettingsConfigDict

# Load .env file from repository root, regardless of current working directory
load_dotenv(find_dotenv(".env"))


class Settings(SecureServiceSettings):
    """
    Configuration settings for the Feedback Service.

    These settings can be overridden via environment variables prefixed with
    FEEDBACK_SERVICE_.
    """

    LOG_LEVEL: str = "INFO"
    SERVICE_NAME: str = "feedback_service"
    USE_MOCK_REPOSITORY: bool = False

    @property
    def DATABASE_URL(self) -> str:
        """Return the PostgreSQL database URL for both runtime and schema setup."""
        env_type = os.getenv("ENV_TYPE", "development").lower()
        if env_type == "docker":
            dev_host = os.getenv("FEEDBACK_SERVICE_DB_HOST", "feedback_db")
            dev_port_str = os.getenv("FEEDBACK_SERVICE_DB_PORT", "5432")
        else:
            dev_host = "localhost"
            dev_port_str = "5441"

        return self.build_database_url(
            database_name="coursefeedback_feedback",
            service_env_var_prefix="FEEDBACK_SERVICE",
            dev_port=int(dev_port_str),
            dev_host=dev_host,
        )

    # Database Pool Configuration
    DATABASE_POOL_SIZE: int = Field(default=10, description="Database connection pool size")
    DATABASE_MAX_OVERFLOW: int = Field(default=20, description="Maximum overflow connections")
    DATABASE_POOL_PRE_PING: bool = Field(default=True, description="Pre-ping connections")
    DATABASE_POOL_RECYCLE: int = Field(
        default=3600, description="Recycle connections after seconds"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="FEEDBACK_SERVICE_",
    )


settings = Settings()
