"""Base settings class for CourseFeedback services."""

from __future__ import annotations

from common_core.config_enums import Environment
from pydantic import Field
from pydantic_settings import BaseSettings

from .database_utils import build_database_url


class SecureServiceSettings(BaseSettings):
    """
    Common settings base.

    ENVIRONMENT is read from the unprefixed ``ENVIRONMENT`` variable so that
    every service in a deployment agrees on it.
    """

    ENVIRONMENT: Environment = Field(
        default=Environment.DEVELOPMENT, validation_alias="ENVIRONMENT"
    )

    def is_production(self) -> bool:
        return self.ENVIRONMENT == Environment.PRODUCTION

    def is_testing(self) -> bool:
        return self.ENVIRONMENT == Environment.TESTING

    def build_database_url(
        self,
        database_name: str,
        service_env_var_prefix: str,
        dev_port: int = 5432,
        dev_host: str = "localhost",
    ) -> str:
        return build_database_url(
            database_name=database_name,
            service_env_var_prefix=service_env_var_prefix,
            is_production=self.is_production(),
            dev_port=dev_port,
            dev_host=dev_host,
        )
