from __future__ import annotations

from coursefeedback_service_libs.logging_utils import (
    configure_service_logging,
    create_service_logger,
)
from dishka import AsyncContainer
from sqlalchemy.ext.asyncio import AsyncEngine

from services.feedback_service.config import Settings, settings
from services.feedback_service.di import create_container, uses_mock_repository
from services.feedback_service.models_db import Base

logger = create_service_logger("feedback_service.startup")


async def initialize_database_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    try:
        logger.info("Initializing database schema...")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema initialized successfully")
    except Exception as e:
        logger.critical(f"Failed to initialize database schema: {e}", exc_info=True)
        raise


async def shutdown_database(engine: AsyncEngine) -> None:
    """Dispose of the engine's connection pool."""
    try:
        await engine.dispose()
        logger.info("Database engine disposed")
    except Exception as e:
        logger.error(f"Error during database engine shutdown: {e}")


async def initialize_services(service_settings: Settings | None = None) -> AsyncContainer:
    """Configure logging, build the DI container and prepare the schema."""
    active_settings = service_settings or settings
    configure_service_logging(
        active_settings.SERVICE_NAME,
        environment=active_settings.ENVIRONMENT.value,
        log_level=active_settings.LOG_LEVEL,
    )
    container = create_container(active_settings)

    if not uses_mock_repository(active_settings):
        engine = await container.get(AsyncEngine)
        await initialize_database_schema(engine)

    logger.info(
        "Feedback Service initialized",
        environment=active_settings.ENVIRONMENT.value,
        mock_repository=uses_mock_repository(active_settings),
    )
    return container


async def shutdown_services(
    container: AsyncContainer, service_settings: Settings | None = None
) -> None:
    """Release the database engine (if any) and close the container."""
    active_settings = service_settings or settings
    if not uses_mock_repository(active_settings):
        await shutdown_database(await container.get(AsyncEngine))
    await container.close()
    logger.info("Feedback Service shutdown completed")
